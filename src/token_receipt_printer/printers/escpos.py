"""
ESC/POS command stream builder.

Wraps receipt fragments in the device envelope:

    ESC @            printer reset
    ESC t n          codepage for the encoder's primary codec
    ...fragments...  alignment / font opcodes, encoded text, line feeds
    GS V B 1         feed and cut

The builder keeps no state between calls; every job gets a fresh buffer.
"""
import logging
from typing import Iterable, List, Optional

from token_receipt_printer.receipt.encoding import TextEncoder
from token_receipt_printer.receipt.formatter import (
    Align, Font, Fragment, LineFeed, ReceiptMode, SetAlign, SetFont, Separator, Text,
    KOREAN, rule_line,
)

logger = logging.getLogger(__name__)

INIT = b'\x1b\x40'
LINE_FEED = b'\x0a'
CUT = b'\x1d\x56\x42\x01'

ALIGN = {
    Align.LEFT: b'\x1b\x61\x00',
    Align.CENTER: b'\x1b\x61\x01',
}

FONT = {
    Font.NORMAL: b'\x1b\x21\x00',
    Font.BOLD: b'\x1b\x21\x08',
    Font.BOLD_LARGE: b'\x1b\x21\x38',
}

# ESC t n table for the codecs TextEncoder can select (canonical codec names)
CODEPAGES = {
    'ascii': 0x00,
    'cp932': 0x01,
    'shift_jis': 0x01,
    'iso8859_1': 0x10,
    'euc_kr': 0x12,
    'cp949': 0x12,
    'utf_8': 0xFF,
}
DEFAULT_CODEPAGE = 0xFF


def codepage_command(encoding: str) -> bytes:
    page = CODEPAGES.get(encoding)
    if page is None:
        logger.warning(f"No codepage known for {encoding!r}, selecting 0x{DEFAULT_CODEPAGE:02X}")
        page = DEFAULT_CODEPAGE
    return b'\x1b\x74' + bytes([page])


class EscPosBuilder:
    """Maps fragments to ESC/POS bytes and adds the init/codepage/cut envelope."""

    def __init__(self, encoder: Optional[TextEncoder] = None, mode: ReceiptMode = KOREAN):
        self.encoder = encoder or TextEncoder()
        self.mode = mode

    def build(self, fragments: Iterable[Fragment]) -> bytes:
        buffer = bytearray(INIT)
        buffer += codepage_command(self.encoder.primary)
        for fragment in fragments:
            buffer += self.fragment_bytes(fragment)
        buffer += CUT

        result = bytes(buffer)
        logger.debug(f"Built command buffer: {len(result)} bytes")
        if len(result) > 40:
            logger.debug(f"  start: {result[:20].hex(' ')}")
            logger.debug(f"  end:   {result[-20:].hex(' ')}")
        return result

    def fragment_bytes(self, fragment: Fragment) -> bytes:
        if isinstance(fragment, Text):
            return self.encoder.encode(fragment.text)
        if isinstance(fragment, LineFeed):
            return LINE_FEED
        if isinstance(fragment, SetAlign):
            return ALIGN[fragment.align]
        if isinstance(fragment, SetFont):
            return FONT[fragment.font]
        if isinstance(fragment, Separator):
            return self.encoder.encode(rule_line(self.mode)) + LINE_FEED
        raise TypeError(f"Unsupported receipt fragment: {fragment!r}")


def describe(buffer: bytes) -> List[str]:
    """
    Human-readable opcode listing of a command buffer.

    Runs of printable bytes are collapsed into one TEXT entry; multi-byte
    text is shown as hex.
    """
    lines: List[str] = []
    text = bytearray()

    def flush():
        if text:
            raw = bytes(text)
            if all(32 <= b < 127 for b in raw):
                lines.append(f"TEXT {raw.decode('ascii')!r}")
            else:
                lines.append(f"TEXT [{len(raw)} bytes] {raw.hex(' ')}")
            text.clear()

    i = 0
    while i < len(buffer):
        b = buffer[i]
        pair = buffer[i:i + 2]
        if pair == b'\x1b\x40':
            flush()
            lines.append('ESC @ (initialize)')
            i += 2
        elif pair in (b'\x1b\x74', b'\x1b\x61', b'\x1b\x21') and i + 2 < len(buffer):
            flush()
            name = {b'\x1b\x74': 'ESC t (codepage)', b'\x1b\x61': 'ESC a (align)',
                    b'\x1b\x21': 'ESC ! (font)'}[pair]
            lines.append(f"{name} {buffer[i + 2]}")
            i += 3
        elif buffer[i:i + 3] == b'\x1d\x56\x42' and i + 3 < len(buffer):
            flush()
            lines.append(f"GS V B {buffer[i + 3]} (cut)")
            i += 4
        elif b == 0x0A:
            flush()
            lines.append('LF')
            i += 1
        else:
            text.append(b)
            i += 1
    flush()
    return lines
