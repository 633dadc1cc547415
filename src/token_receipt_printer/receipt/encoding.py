"""
Text encoding for single-codepage thermal printers.

The printer accepts one fixed codepage at a time and no arbitrary Unicode, so
each text fragment is encoded with the first codec in a prioritized list that
can represent it. UTF-8 is the unconditional last resort.
"""
import codecs
import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from token_receipt_printer.errors import ConfigError, EncodingError

logger = logging.getLogger(__name__)

DEFAULT_ENCODINGS: Tuple[str, ...] = ('euc_kr', 'cp949', 'latin_1', 'utf_8')
FALLBACK_ENCODING = 'utf_8'

# Faces, pictographs, transport, flags, misc symbols, dingbats
_EMOJI_RE = re.compile(
    '['
    '\U0001F600-\U0001F64F'
    '\U0001F300-\U0001F3FF'
    '\U0001F400-\U0001F4FF'
    '\U0001F500-\U0001F5FF'
    '\U0001F680-\U0001F6FF'
    '\U0001F1E0-\U0001F1FF'
    '\u2600-\u26FF'
    '\u2700-\u27BF'
    ']'
)


def remove_emojis(text: str) -> str:
    cleaned = _EMOJI_RE.sub('', text)
    if cleaned != text:
        logger.debug(f"Stripped emoji: {text!r} -> {cleaned!r}")
    return cleaned


@dataclass(frozen=True)
class EncodingChoice:
    encoding: str
    data: bytes


class TextEncoder:
    """Encode text with a fixed, ordered fallback chain of codecs."""

    def __init__(self, encodings: Optional[Iterable[str]] = None):
        names = list(encodings) if encodings else list(DEFAULT_ENCODINGS)
        self.encodings = tuple(_canonical_codec(name) for name in names)

    @property
    def primary(self) -> str:
        return self.encodings[0]

    def choose(self, text: str) -> EncodingChoice:
        for encoding in self.encodings:
            try:
                data = encode_strict(text, encoding)
            except EncodingError as e:
                logger.debug(str(e))
                continue
            self._verify(text, encoding, data)
            return EncodingChoice(encoding, data)

        logger.warning(f"No candidate encoding fits {text!r}, using {FALLBACK_ENCODING}")
        return EncodingChoice(FALLBACK_ENCODING, text.encode(FALLBACK_ENCODING, errors='replace'))

    def encode(self, text: str) -> bytes:
        """Encode ``text``; never raises and always returns bytes."""
        return self.choose(text).data

    @staticmethod
    def _verify(text: str, encoding: str, data: bytes) -> None:
        # Advisory only: a mismatch is logged, the bytes are still used.
        try:
            decoded = data.decode(encoding)
        except UnicodeDecodeError as e:
            logger.warning(f"[{encoding}] round-trip decode failed for {text!r}: {e}")
            return
        if decoded != text:
            logger.warning(f"[{encoding}] round-trip mismatch: {text!r} -> {decoded!r}")
        else:
            logger.debug(f"[{encoding}] {text!r} -> {data[:20].hex(' ')}{'...' if len(data) > 20 else ''}")


def encode_strict(text: str, encoding: str) -> bytes:
    try:
        return text.encode(encoding)
    except UnicodeEncodeError as e:
        raise EncodingError(f"{encoding} cannot encode {text!r}: {e.reason}",
                            {'encoding': encoding, 'position': e.start})


def _canonical_codec(name: str) -> str:
    try:
        return codecs.lookup(name).name.replace('-', '_')
    except LookupError:
        raise ConfigError(f"Unknown text encoding: {name!r}")
