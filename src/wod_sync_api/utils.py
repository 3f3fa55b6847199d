"""Utility functions.

Source activity records are loosely typed: the same logical field arrives as
a string in one record and as a number in the next. Fields are read through
an ordered chain of typed extractors; the first extractor that produces a
value wins, and the order of each chain is part of its contract.
"""
import html
import re
from typing import Any, Callable, Mapping, Optional, Sequence, TypeVar

T = TypeVar("T")

Extractor = Callable[[Any], Optional[T]]


def to_int(s: Optional[str]) -> Optional[int]:
    """Convert string to int, returning None if conversion fails."""
    try:
        return int(s) if s is not None else None
    except Exception:
        return None


def to_float(s: Optional[str]) -> Optional[float]:
    """Convert string to float, returning None if conversion fails."""
    try:
        return float(s) if s is not None else None
    except Exception:
        return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def str_value(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def nonempty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value != "" else None


def int_from_str(value: Any) -> Optional[int]:
    if not isinstance(value, str):
        return None
    return to_int(value.strip())


def int_from_number(value: Any) -> Optional[int]:
    return int(value) if _is_number(value) else None


def float_from_str(value: Any) -> Optional[float]:
    if not isinstance(value, str):
        return None
    return to_float(value.strip())


def float_from_number(value: Any) -> Optional[float]:
    return float(value) if _is_number(value) else None


def id_from_number(value: Any) -> Optional[str]:
    """Numeric IDs are rendered without a decimal part: 123.0 -> '123'."""
    return str(int(value)) if _is_number(value) else None


def flag_from_str(value: Any) -> Optional[bool]:
    return value.strip() == "1" if isinstance(value, str) else None


def flag_from_number(value: Any) -> Optional[bool]:
    return value == 1 if _is_number(value) else None


# Extraction chains, tried left to right
INT_CHAIN: Sequence[Extractor] = (int_from_str, int_from_number)
FLOAT_CHAIN: Sequence[Extractor] = (float_from_str, float_from_number)
ID_CHAIN: Sequence[Extractor] = (id_from_number, nonempty_str)
FLAG_CHAIN: Sequence[Extractor] = (flag_from_str, flag_from_number)
TEXT_CHAIN: Sequence[Extractor] = (str_value,)


def extract(raw: Mapping[str, Any], key: str, chain: Sequence[Extractor]) -> Optional[Any]:
    """Return the first non-None result of `chain` applied to raw[key]."""
    if not isinstance(raw, Mapping) or key not in raw:
        return None
    value = raw[key]
    for extractor in chain:
        result = extractor(value)
        if result is not None:
            return result
    return None


def extract_first(raw: Mapping[str, Any], keys: Sequence[str], chain: Sequence[Extractor]) -> Optional[Any]:
    """Like `extract`, trying each key in order until one yields a value."""
    for key in keys:
        result = extract(raw, key, chain)
        if result is not None:
            return result
    return None


def extract_int(raw: Mapping[str, Any], key: str, default: int = 0) -> int:
    result = extract(raw, key, INT_CHAIN)
    return default if result is None else result


def extract_float(raw: Mapping[str, Any], key: str, default: float = 0.0) -> float:
    result = extract(raw, key, FLOAT_CHAIN)
    return default if result is None else result


def extract_text(raw: Mapping[str, Any], key: str, default: str = "") -> str:
    result = extract(raw, key, TEXT_CHAIN)
    return default if result is None else result


def format_elapsed(seconds: int) -> str:
    """Format seconds as 'Xh Ym Zs', dropping leading zero units."""
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


_BR_PATTERN = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_QUOTES = str.maketrans({
    "\u2018": "'", "\u2019": "'", "\u201c": '"', "\u201d": '"',
    "\u2032": "'", "\u2033": '"', "\u00a0": " ",
})


def clean_html_text(text: Optional[str]) -> str:
    """Strip markup and typographic quotes from coach notes, keeping line breaks."""
    text = _BR_PATTERN.sub("\n", text or "")
    text = _TAG_PATTERN.sub("", text)
    text = html.unescape(text).translate(_QUOTES)
    while "\n\n\n" in text:
        text = text.replace("\n\n\n", "\n\n")
    return text.strip()
