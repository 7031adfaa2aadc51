import base64
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

from formloom.data.models import FieldDefinition

# Mapping value meaning "leave this column out of the import".
SKIP_COLUMN = "__skip__"

ColumnMapping = Dict[str, str]
ConfidenceTier = Literal["high", "medium", "low"]


@dataclass
class ParsedTable:
    columns: List[str]
    rows: List[Dict[str, Any]]
    row_count: int
    preview: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "columns": self.columns,
            "row_count": self.row_count,
            "preview": self.preview,
        }


@dataclass(frozen=True)
class FieldSuggestion:
    type: str
    reason: str


@dataclass(frozen=True)
class DetectedField:
    name: str
    label: str
    type: str
    required: bool
    confidence: float
    sample_size: int  # rows the required/type inference was based on
    options: Optional[List[str]] = None
    suggestions: List[FieldSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DetectionResult:
    fields: List[DetectedField]
    warnings: List[str]
    total_rows: int
    sample_size: int


@dataclass
class MappingSuggestion:
    source_column: str
    field_id: str
    field_label: str
    confidence: ConfidenceTier

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class AutoMappingResult:
    mapping: ColumnMapping
    suggestions: List[MappingSuggestion]
    unmapped_columns: List[str]
    unmapped_fields: List[FieldDefinition]


@dataclass
class MappingValidation:
    is_valid: bool
    errors: List[str]


@dataclass
class RowError:
    """Single cell (or row persistence) failure; row is 1-based over data rows."""
    row: int
    field: str
    field_id: str
    value: Any
    error: str
    suggestion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationResult:
    valid_row_count: int
    invalid_row_count: int
    errors: List[RowError]
    warnings: List[str]
    skipped_fields: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid_row_count": self.valid_row_count,
            "invalid_row_count": self.invalid_row_count,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": self.warnings,
            "skipped_fields": self.skipped_fields,
        }


@dataclass
class TransformResult:
    success: bool
    value: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "TransformResult":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "TransformResult":
        return cls(success=False, error=error)


@dataclass
class RowOutcome:
    row_number: int
    status: Literal["ready", "failed", "skipped"]
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[RowError] = field(default_factory=list)


@dataclass
class ErrorReport:
    filename: str
    content: bytes
    row_count: int

    @property
    def encoded(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "data": self.encoded, "row_count": self.row_count}


@dataclass
class ImportSummary:
    imported: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[RowError] = field(default_factory=list)
    cancelled: bool = False
    error_report: Optional[ErrorReport] = None


@dataclass
class CommitResult:
    job_id: str
    imported: int
    failed: int
    skipped: int
    errors: List[RowError]
    message: str
    cancelled: bool = False
    error_report: Optional[ErrorReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "imported": self.imported,
            "failed": self.failed,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "errors": [e.to_dict() for e in self.errors],
            "error_report": self.error_report.to_dict() if self.error_report else None,
            "message": self.message,
        }
