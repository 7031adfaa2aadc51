import math
import re
from datetime import date, datetime
from typing import Any, List, Optional

from formloom.data.dto import TransformResult
from formloom.data.models import FieldDefinition
from formloom.utils.dates import to_iso_instant

TRUE_TOKENS = frozenset({"true", "yes", "1", "y", "on"})
FALSE_TOKENS = frozenset({"false", "no", "0", "n", "off", ""})

NUMERIC_FIELD_TYPES = frozenset({"number", "currency", "rating", "scale"})
DATE_FIELD_TYPES = frozenset({"date", "datetime"})

_CURRENCY_AND_SPACE = re.compile(r"[$€£¥\s]")
_NUMBER_SHAPE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
_MULTI_SPLIT = re.compile(r"[,;]")

_YMD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_SLASHED = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_DASHED_DMY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_DOTTED_DMY = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_number(value: Any) -> Optional[float]:
    """
    Locale-tolerant numeric parsing for US (``1,234.56``) and EU (``1.234,56``)
    conventions. Returns None when the value is not a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    cleaned = _CURRENCY_AND_SPACE.sub("", str(value))
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        parts = cleaned.split(",")
        if len(parts) == 2 and len(parts[1]) <= 2:
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")

    if not _NUMBER_SHAPE.match(cleaned):
        return None
    number = float(cleaned)
    return number if math.isfinite(number) else None


def _build_date(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """
    Native ISO first, then YYYY-MM-DD, MM/DD/YYYY (DD/MM/YYYY when the first
    part cannot be a month), DD-MM-YYYY and DD.MM.YYYY.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass

    match = _YMD.match(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        return _build_date(year, month, day)

    match = _SLASHED.match(text)
    if match:
        first, second, year = (int(g) for g in match.groups())
        return _build_date(year, first, second) or _build_date(year, second, first)

    for pattern in (_DASHED_DMY, _DOTTED_DMY):
        match = pattern.match(text)
        if match:
            day, month, year = (int(g) for g in match.groups())
            return _build_date(year, month, day)
    return None


def is_boolean_token(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    return str(value).strip().lower() in TRUE_TOKENS | FALSE_TOKENS


def parse_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    token = str(value).strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    return None


def split_multi_value(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [token.strip() for token in _MULTI_SPLIT.split(str(value)) if token.strip()]


def transform(field: FieldDefinition, value: Any) -> TransformResult:
    """
    Coerce a raw cell into the canonical value for ``field``. Absence is never
    a transform error; whether it is allowed is the validator's call.
    """
    if is_empty(value):
        return TransformResult.ok(None)

    if field.type in NUMERIC_FIELD_TYPES:
        number = parse_number(value)
        if number is None:
            return TransformResult.fail("Invalid number format")
        return TransformResult.ok(number)

    if field.type in DATE_FIELD_TYPES:
        parsed = parse_date(value)
        if parsed is None:
            return TransformResult.fail("Invalid date format")
        return TransformResult.ok(to_iso_instant(parsed))

    if field.type == "checkbox":
        flag = parse_boolean(value)
        if flag is None:
            return TransformResult.fail(f"Cannot interpret '{value}' as true/false")
        return TransformResult.ok(flag)

    if field.type == "multi_select":
        return TransformResult.ok(split_multi_value(value))

    return TransformResult.ok(str(value).strip())
