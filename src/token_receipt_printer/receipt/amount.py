"""
Wei amount normalization.

Turns the raw on-chain amount reported by the queue server (decimal or
0x-prefixed hex, always in wei) into a display string such as ``4.5 USDT``.
Arithmetic is exact (``decimal.Decimal``); floats are never involved.
"""
import logging
import re
from decimal import Decimal, ROUND_HALF_UP, localcontext

from token_receipt_printer.errors import ParseError

logger = logging.getLogger(__name__)

DEFAULT_SYMBOL = 'USDT'
WEI_DECIMALS = 18

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

# Below this quotient we keep all 18 fractional digits so tiny amounts never
# fall back to scientific notation.
SMALL_AMOUNT = Decimal('0.000001')

_HEX_RE = re.compile(r'[0-9a-fA-F]+')
_DIGITS_RE = re.compile(r'[0-9]+')
_INT64_RE = re.compile(r'[+-]?[0-9]{1,19}')


def normalize_token_symbol(token: str) -> str:
    # Only one token is accepted by the payment terminal right now; the
    # queue reports either a contract address or a symbol, both map here.
    return DEFAULT_SYMBOL


def parse_wei(amount_raw: str) -> int:
    """
    Parse a raw amount string into an integer number of wei.

    Priority:
      1. ``0x``/``0X`` prefix  -> unsigned base-16
      2. all digits, > 15 chars -> unsigned base-10 (arbitrary precision)
      3. anything else          -> signed 64-bit integer, 0 if unparseable

    Raises ParseError only for a malformed hex string.
    """
    if amount_raw[:2] in ('0x', '0X'):
        digits = amount_raw[2:]
        if not _HEX_RE.fullmatch(digits):
            raise ParseError(f"Invalid hex amount: {amount_raw!r}")
        return int(digits, 16)

    if len(amount_raw) > 15 and _DIGITS_RE.fullmatch(amount_raw):
        # int(str) is capped by sys.get_int_max_str_digits(); Decimal is not
        return int(Decimal(amount_raw))

    if _INT64_RE.fullmatch(amount_raw):
        value = int(amount_raw)
        if INT64_MIN <= value <= INT64_MAX:
            return value
    logger.debug(f"Amount {amount_raw!r} is not a 64-bit integer, treating as 0")
    return 0


def wei_to_token(wei: int) -> Decimal:
    """Exact wei -> token conversion (1 token = 10**18 wei)."""
    value = Decimal(wei)
    with localcontext() as ctx:
        ctx.prec = _precision_for(value)
        return value.scaleb(-WEI_DECIMALS)


def format_quantity(quantity: Decimal) -> str:
    """Render a token quantity with the receipt's rounding rules."""
    if quantity == 0:
        return '0'

    with localcontext() as ctx:
        ctx.prec = _precision_for(quantity)
        if quantity == quantity.to_integral_value():
            return format(quantity.quantize(Decimal(1)), 'f')
        if quantity < SMALL_AMOUNT:
            places = Decimal(1).scaleb(-WEI_DECIMALS)
        else:
            places = SMALL_AMOUNT
        rounded = quantity.quantize(places, rounding=ROUND_HALF_UP).normalize()
        return format(rounded, 'f')


def _precision_for(value: Decimal) -> int:
    # Enough digits for the integer part plus all 18 fractional places
    return max(50, value.adjusted() + WEI_DECIMALS + 2)


def shorten_raw_amount(amount_raw: str) -> str:
    if len(amount_raw) > 20:
        return f"{amount_raw[:8]}...{amount_raw[-4:]}"
    return amount_raw


def normalize(amount_raw: str, token: str) -> str:
    """
    Convert a raw wei amount into ``"<quantity> <SYMBOL>"``.

    Never raises: anything that cannot be parsed or formatted falls back to
    the (shortened) raw input followed by the symbol.
    """
    symbol = normalize_token_symbol(token)
    try:
        quantity = wei_to_token(parse_wei(amount_raw))
        formatted = format_quantity(quantity)
        logger.debug(f"Amount {amount_raw} wei -> {formatted} {symbol}")
        return f"{formatted} {symbol}"
    except Exception as e:
        logger.warning(f"Could not format amount {amount_raw!r}: {e}")
        return f"{shorten_raw_amount(str(amount_raw))} {symbol}"
