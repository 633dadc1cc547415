"""
Receipt layout. Turns a PrintJob into an ordered list of printer fragments.

Fragments are device independent; printers/escpos.py maps them to bytes.

Modes:
  korean   : 40 columns, Korean labels, box-drawing rule
  english  : 42 columns, English labels padded to 12 columns, dashed rule

Column counting treats every non-ASCII character as double width, which is
how CJK glyphs come out on the target printers.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from token_receipt_printer.errors import ConfigError
from token_receipt_printer.jobs.models import PrintJob

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_NAME = 'CUBE COFFEE'
DEFAULT_TIMEZONE = 'Asia/Seoul'
TIME_FORMAT = '%Y-%m-%d %H:%M:%S'
ELLIPSIS = '...'

# fromisoformat before 3.11 accepts only 3 or 6 fractional digits
_FRACTION_RE = re.compile(r'\.(\d+)')


class Align(Enum):
    LEFT = 'left'
    CENTER = 'center'


class Font(Enum):
    NORMAL = 'normal'
    BOLD = 'bold'
    BOLD_LARGE = 'bold_large'


@dataclass(frozen=True)
class SetAlign:
    align: Align


@dataclass(frozen=True)
class SetFont:
    font: Font


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class LineFeed:
    pass


@dataclass(frozen=True)
class Separator:
    pass


Fragment = Union[SetAlign, SetFont, Text, LineFeed, Separator]

LF = LineFeed()
SEPARATOR = Separator()


@dataclass(frozen=True)
class ReceiptMode:
    name: str
    width: int
    rule_char: str
    label_width: int = 0


KOREAN = ReceiptMode('korean', width=40, rule_char='─')
ENGLISH = ReceiptMode('english', width=42, rule_char='-', label_width=12)

MODES = {mode.name: mode for mode in (KOREAN, ENGLISH)}


# ---------------------------------------------------------------------------
# Display-width helpers
# ---------------------------------------------------------------------------

def char_width(char: str) -> int:
    return 2 if ord(char) > 127 else 1


def display_width(text: str) -> int:
    return sum(char_width(c) for c in text)


def truncate_to_width(text: str, max_width: int) -> str:
    """Longest prefix of ``text`` whose display width is <= ``max_width``."""
    width = 0
    for i, char in enumerate(text):
        width += char_width(char)
        if width > max_width:
            return text[:i]
    return text


def pad_to_width(text: str, width: int) -> str:
    return text + ' ' * max(0, width - display_width(text))


def info_line(label: str, value: str, width: int, label_width: int = 0) -> str:
    """
    Build a ``label: value`` line that never exceeds ``width`` columns.

    A value that does not fit is cut and suffixed with an ellipsis so the
    cut value plus ellipsis fits the remaining space.
    """
    head = pad_to_width(label, label_width) + ': '
    if display_width(head) >= width:
        return truncate_to_width(head, width)

    available = width - display_width(head)
    if display_width(value) > available:
        if available <= len(ELLIPSIS):
            value = truncate_to_width(value, available)
        else:
            value = truncate_to_width(value, available - len(ELLIPSIS)) + ELLIPSIS
    return head + value


def shorten_hash(tx_hash: str) -> str:
    if len(tx_hash) > 20:
        return f"{tx_hash[:8]}{ELLIPSIS}{tx_hash[-8:]}"
    return tx_hash


def shorten_address(address: str) -> str:
    if len(address) > 16:
        return f"{address[:6]}{ELLIPSIS}{address[-6:]}"
    return address


def rule_line(mode: ReceiptMode) -> str:
    """Horizontal rule that spans exactly the mode's display width."""
    return mode.rule_char * (mode.width // char_width(mode.rule_char))


def format_timestamp(timestamp: str, tz: tzinfo,
                     now: Optional[Callable[[], datetime]] = None) -> str:
    """
    Render an ISO-8601 UTC timestamp in ``tz``.

    Falls back to the current time in ``tz`` when the value cannot be parsed.
    """
    try:
        text = timestamp.strip()
        if text[-1:] in ('Z', 'z'):
            text = text[:-1] + '+00:00'
        text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text, count=1)
        moment = datetime.fromisoformat(text)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
    except (AttributeError, TypeError, ValueError):
        logger.warning(f"Could not parse timestamp {timestamp!r}, using current time")
        moment = now() if now else datetime.now(tz)
    return moment.astimezone(tz).strftime(TIME_FORMAT)


def load_timezone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Unknown time zone: {name!r}")


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

class ReceiptFormatter:
    """Produces the fixed receipt sections: header, item, transaction, footer."""

    def __init__(self, mode: Union[str, ReceiptMode] = KOREAN,
                 product_name: str = DEFAULT_PRODUCT_NAME,
                 timezone_name: str = DEFAULT_TIMEZONE,
                 now: Optional[Callable[[], datetime]] = None):
        if isinstance(mode, str):
            if mode not in MODES:
                raise ConfigError(f"Unknown receipt mode: {mode!r}", {'choices': sorted(MODES)})
            mode = MODES[mode]
        self.mode = mode
        self.product_name = product_name
        self.tz = load_timezone(timezone_name)
        self.now = now

    @property
    def width(self) -> int:
        return self.mode.width

    def line(self, label: str, value: str) -> Text:
        return Text(info_line(label, value, self.mode.width, self.mode.label_width))

    def format(self, job: PrintJob, display_amount: str) -> List[Fragment]:
        product = job.product_name or self.product_name
        timestamp = format_timestamp(job.timestamp, self.tz, self.now)
        if self.mode is ENGLISH:
            fragments = self._english(job, product, display_amount, timestamp)
        else:
            fragments = self._korean(job, product, display_amount, timestamp)
        logger.debug(f"Formatted {self.mode.name} receipt for job {job.id}: {len(fragments)} fragments")
        return fragments

    def _korean(self, job: PrintJob, product: str, amount: str, timestamp: str) -> List[Fragment]:
        header = [
            SetAlign(Align.CENTER), SetFont(Font.BOLD_LARGE),
            Text('결제 영수증'), LF, LF,
            SetFont(Font.NORMAL), SetAlign(Align.LEFT),
            SEPARATOR,
        ]
        item = [
            SetFont(Font.BOLD), Text('[상품 정보]'), SetFont(Font.NORMAL), LF, LF,
            self.line('상품명', product), LF, LF,
            SEPARATOR,
        ]
        transaction = [
            SetFont(Font.BOLD), Text('[거래 정보]'), SetFont(Font.NORMAL), LF, LF,
            self.line('거래 해시', shorten_hash(job.transaction_hash)), LF, LF,
            self.line('결제 금액', amount), LF, LF,
            self.line('거래 시간', timestamp), LF, LF,
            SEPARATOR,
        ]
        footer = [
            LF, SetAlign(Align.CENTER),
            Text('결제가 완료되었습니다'), LF,
            Text('감사합니다!'), LF, LF, LF,
        ]
        return header + item + transaction + footer

    def _english(self, job: PrintJob, product: str, amount: str, timestamp: str) -> List[Fragment]:
        border = '*' * 32
        header = [
            LF, SetAlign(Align.CENTER),
            Text(border), LF,
            SetFont(Font.BOLD_LARGE), Text('Welcome!!'), LF,
            SetFont(Font.NORMAL), Text(border), LF, LF,
        ]
        item = [
            SEPARATOR,
            SetFont(Font.BOLD), Text('PAYMENT INFORMATION'), LF, SetFont(Font.NORMAL),
            SEPARATOR,
            SetAlign(Align.LEFT),
            self.line('Item', f"{product} * 1"), LF,
        ]
        transaction = [
            self.line('Tx Hash', shorten_hash(job.transaction_hash)), LF,
            SetFont(Font.BOLD), self.line('Amount', amount), LF, SetFont(Font.NORMAL),
            self.line('From', shorten_address(job.from_address)), LF,
            self.line('To', shorten_address(job.to_address)), LF,
            self.line('Time', timestamp), LF,
            SEPARATOR,
        ]
        footer = [
            SetAlign(Align.CENTER),
            Text(border), LF,
            SetFont(Font.BOLD), Text('Thank You!'), LF, SetFont(Font.NORMAL),
            Text(border), LF, LF,
            Text('Have a Wonderful Day!'), LF,
            Text('We Appreciate Your Trust'), LF, LF, LF,
        ]
        return header + item + transaction + footer
