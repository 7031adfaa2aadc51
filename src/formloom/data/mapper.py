import logging
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from formloom.data.dto import AutoMappingResult, ColumnMapping, ConfidenceTier, MappingSuggestion
from formloom.data.models import FieldDefinition
from formloom.data.parser import normalize_column_name

logger = logging.getLogger(__name__)

_Candidate = Tuple[FieldDefinition, str, set]
_Rule = Callable[[str, set, str, set], bool]


def _exact(column: str, column_words: set, label: str, label_words: set) -> bool:
    return column == label


def _partial(column: str, column_words: set, label: str, label_words: set) -> bool:
    return bool(label) and (column in label or label in column)


def _word_overlap(column: str, column_words: set, label: str, label_words: set) -> bool:
    return bool(column_words & label_words)


# Tried in order per column; the first tier with any hit decides.
MATCH_TIERS: Sequence[Tuple[ConfidenceTier, _Rule]] = (
    ("high", _exact),
    ("medium", _partial),
    ("low", _word_overlap),
)


class ColumnAutoMapper:
    """
    Greedy, column-first matcher from spreadsheet headers to form fields.
    Two columns may land on the same field; the structural validator is
    what rejects such a mapping, not this class.
    """

    def auto_map(self, source_columns: Iterable[str], target_fields: Iterable[FieldDefinition]) -> AutoMappingResult:
        candidates = self._candidates(target_fields)
        mapping: ColumnMapping = {}
        suggestions: List[MappingSuggestion] = []
        unmapped_columns: List[str] = []

        for column in source_columns:
            match = self.match_column(column, candidates)
            if match is None:
                unmapped_columns.append(column)
                continue
            field, tier = match
            mapping[column] = field.id
            suggestions.append(
                MappingSuggestion(source_column=column, field_id=field.id, field_label=field.label, confidence=tier)
            )

        mapped_ids = set(mapping.values())
        unmapped_fields = [field for field, _, _ in candidates if field.required and field.id not in mapped_ids]

        logger.info(
            "auto mapping finished",
            extra={
                "mapped": len(mapping),
                "unmapped_columns": len(unmapped_columns),
                "unmapped_required_fields": len(unmapped_fields),
            },
        )
        return AutoMappingResult(
            mapping=mapping,
            suggestions=suggestions,
            unmapped_columns=unmapped_columns,
            unmapped_fields=unmapped_fields,
        )

    @staticmethod
    def _candidates(target_fields: Iterable[FieldDefinition]) -> List[_Candidate]:
        candidates: List[_Candidate] = []
        for field in target_fields:
            if not field.is_importable:
                continue
            label = normalize_column_name(field.label)
            candidates.append((field, label, set(label.split())))
        return candidates

    @staticmethod
    def match_column(column: str, candidates: List[_Candidate]) -> Optional[Tuple[FieldDefinition, ConfidenceTier]]:
        normalized = normalize_column_name(column)
        if not normalized:
            return None
        words = set(normalized.split())
        for tier, rule in MATCH_TIERS:
            for field, label, label_words in candidates:
                if rule(normalized, words, label, label_words):
                    return field, tier
        return None
