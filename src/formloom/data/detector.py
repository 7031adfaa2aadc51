import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from formloom.data.dto import DetectedField, DetectionResult, FieldSuggestion
from formloom.data.transformer import is_empty, parse_date

logger = logging.getLogger(__name__)

DETECTED_FIELD_TYPES = (
    "text",
    "textarea",
    "number",
    "email",
    "phone",
    "url",
    "date",
    "time",
    "datetime",
    "checkbox",
    "radio",
    "dropdown",
    "file",
)

BOOLEAN_WORDS = frozenset({"true", "false", "yes", "no", "1", "0", "y", "n"})

_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_GROUPED_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")

_EMAIL_TOKENS = ("mail",)
_PHONE_TOKENS = ("phone", "contact", "mobile")
_URL_TOKENS = ("url", "website", "link")
_DATE_TOKENS = ("date", "time", "created", "updated", "birthday", "dob")
_GENERIC_FILE_TOKENS = ("import", "data", "export")
_ADMIN_COLUMN_TOKENS = ("id", "created", "updated")


class _Guess:
    __slots__ = ("type", "confidence", "options", "suggestions")

    def __init__(self, type_: str, confidence: float, reason: str, options: Optional[List[str]] = None,
                 suggested_type: Optional[str] = None):
        self.type = type_
        self.confidence = confidence
        self.options = options
        self.suggestions = [FieldSuggestion(type=suggested_type or type_, reason=reason)]


class FieldDetector:
    """
    Heuristic column typing for the "create form from file" flow.
    Rules are evaluated in a fixed order and the first one that fires wins.
    Only the first ``sample_size`` rows are inspected, so ``required`` is a
    guess about the sample, not a guarantee about the file.
    """

    DEFAULT_SAMPLE_SIZE = 100

    @classmethod
    def detect(
        cls,
        columns: Sequence[str],
        rows: Sequence[Dict[str, Any]],
        sample_size: int = DEFAULT_SAMPLE_SIZE,
    ) -> DetectionResult:
        sample = list(rows[: max(0, sample_size)])
        warnings: List[str] = []
        fields: List[DetectedField] = []
        used_names: set[str] = set()

        for position, column in enumerate(columns, start=1):
            values = [row.get(column) for row in sample]
            present = [v for v in values if not is_empty(v)]
            empty_count = len(values) - len(present)

            if empty_count > len(sample) * 0.5:
                warnings.append(f'Column "{column}" has {empty_count} empty values out of {len(sample)}')

            guess = cls._guess(column, present)
            name = cls._unique_name(cls.sanitize_field_name(column) or f"field_{position}", used_names)
            fields.append(
                DetectedField(
                    name=name,
                    label=column,
                    type=guess.type,
                    required=bool(sample) and empty_count == 0,
                    confidence=guess.confidence,
                    sample_size=len(sample),
                    options=guess.options,
                    suggestions=guess.suggestions,
                )
            )

        logger.info(
            "field detection finished",
            extra={"columns": len(columns), "sampled_rows": len(sample), "warnings": len(warnings)},
        )
        return DetectionResult(fields=fields, warnings=warnings, total_rows=len(rows), sample_size=len(sample))

    @classmethod
    def _guess(cls, column: str, values: List[Any]) -> _Guess:
        if not values:
            return _Guess("text", 0.3, "No data to analyze")

        name = column.lower()
        total = len(values)
        texts = [str(v).strip() for v in values]

        if cls._contains(name, _EMAIL_TOKENS):
            matches = sum(1 for t in texts if _EMAIL_SHAPE.match(t))
            if matches / total >= 0.8:
                return _Guess("email", 0.9, "Column name and data suggest email")

        if cls._contains(name, _PHONE_TOKENS):
            return _Guess("text", 0.7, "Column name suggests phone number", suggested_type="phone")

        if cls._contains(name, _URL_TOKENS):
            return _Guess("text", 0.7, "Column name suggests URL", suggested_type="url")

        if cls._contains(name, _DATE_TOKENS):
            matches = sum(1 for v in values if parse_date(v) is not None)
            if matches / total >= 0.7:
                return _Guess("date", 0.85, "Column name and data suggest date")

        distinct = sorted(set(texts))
        if len(distinct) == 2 and all(v.lower() in BOOLEAN_WORDS for v in distinct):
            return _Guess("checkbox", 0.9, "Only 2 boolean-like values found")

        if 3 <= len(distinct) <= 20:
            mean_length = sum(len(v) for v in distinct) / len(distinct)
            if mean_length < 30 and len(distinct) / total < 0.3:
                return _Guess(
                    "dropdown",
                    0.8,
                    f"{len(distinct)} unique values found (suggest categories)",
                    options=distinct,
                )

        numeric = sum(1 for t in texts if cls._is_number(t))
        if numeric / total >= 0.9:
            return _Guess("number", 0.85, "Values are numeric")

        if sum(len(t) for t in texts) / total > 100:
            return _Guess("textarea", 0.7, "Long text values detected")

        return _Guess("text", 0.6, "Default text field")

    @staticmethod
    def _contains(name: str, tokens: Sequence[str]) -> bool:
        return any(token in name for token in tokens)

    @staticmethod
    def _is_number(text: str) -> bool:
        return bool(_GROUPED_NUMBER.match(text.replace(",", "")))

    @staticmethod
    def sanitize_field_name(label: str) -> str:
        return re.sub(r"[^a-z0-9]+", "_", label.lower()).strip("_")

    @staticmethod
    def _unique_name(name: str, used: set[str]) -> str:
        candidate, suffix = name, 2
        while candidate in used:
            candidate = f"{name}_{suffix}"
            suffix += 1
        used.add(candidate)
        return candidate

    @staticmethod
    def suggest_form_name(filename: str, columns: Sequence[str]) -> str:
        stem = Path(filename or "").name
        stem = re.sub(r"\.(csv|xlsx|xls)$", "", stem, flags=re.IGNORECASE)
        words = [w for w in re.sub(r"[-_]", " ", stem).split(" ") if w]
        name = " ".join(w[:1].upper() + w[1:] for w in words)

        lowered = name.lower()
        if any(token in lowered for token in _GENERIC_FILE_TOKENS):
            descriptive = [c for c in columns if not any(t in c.lower() for t in _ADMIN_COLUMN_TOKENS)]
            if descriptive:
                parts = [p for p in re.split(r"[_\s]+", descriptive[0]) if p]
                name = " ".join(p[:1].upper() + p[1:] for p in parts) + " Form"

        return name or "Imported Form"
