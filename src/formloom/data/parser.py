import csv
import io
import logging
import re
import unicodedata
from collections import Counter
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from openpyxl import load_workbook

from formloom.data.dto import ParsedTable
from formloom.exceptions import ParseError
from formloom.utils.dates import to_iso_instant

logger = logging.getLogger(__name__)

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


def normalize_column_name(text: Optional[str]) -> str:
    """
    Canonical form of a header or field label used for fuzzy matching:
    accents dropped, lower-case, ``_``/``-``/whitespace runs collapsed to one
    space, remaining punctuation removed.
    """
    if text is None:
        return ""
    normalized = unicodedata.normalize("NFKD", str(text))
    normalized = "".join(ch for ch in normalized if unicodedata.category(ch) != "Mn")
    normalized = normalized.lower()
    normalized = re.sub(r"[_\s-]+", " ", normalized)
    normalized = re.sub(r"[^\w\s]", "", normalized, flags=re.UNICODE)
    normalized = re.sub(r"\s+", " ", normalized)
    return normalized.strip()


_FORMAT_NOISE = re.compile(r"\[[^\]]*\]|_.|\*.")
_FORMAT_LITERAL = re.compile(r'"([^"]*)"|\\(.)')
_NUMBER_PATTERN = re.compile(r"([^0#]*?)([0#][0#,]*(?:\.[0#]*)?)([^0#]*)")


def format_number(value: Any, number_format: Optional[str]) -> Optional[str]:
    """
    Render a numeric xlsx cell the way Excel shows it for plain number formats:
    zero padding, fixed or optional decimals, thousands separators and percent.
    Returns None when the format is General or something fancier (dates,
    scientific, fractions, text), leaving the raw value to the caller.
    """
    if not number_format or number_format == "General":
        return None
    section = _FORMAT_NOISE.sub("", number_format.split(";")[0])
    if re.search(r"[A-Za-z@?/]", _FORMAT_LITERAL.sub("", section)):
        return None
    section = _FORMAT_LITERAL.sub(lambda m: m.group(1) if m.group(1) is not None else m.group(2), section)
    match = _NUMBER_PATTERN.fullmatch(section)
    if not match:
        return None
    prefix, pattern, suffix = match.groups()

    number = float(value) * (100 ** section.count("%"))
    integer_part, _, fraction_part = pattern.partition(".")
    min_decimals = fraction_part.count("0")
    max_decimals = len(fraction_part)

    rounded = Decimal(repr(abs(number))).quantize(Decimal(1).scaleb(-max_decimals), rounding=ROUND_HALF_UP)
    text = f"{rounded:f}"
    digits, _, decimals = text.partition(".")
    decimals = decimals.rstrip("0").ljust(min_decimals, "0") if max_decimals > min_decimals else decimals
    digits = digits.lstrip("0").zfill(integer_part.count("0"))
    if "," in integer_part and digits:
        digits = f"{int(digits):,}"

    rendered = (digits or "0") + (f".{decimals}" if decimals else "")
    sign = "-" if number < 0 and any(ch in "123456789" for ch in rendered) else ""
    return f"{sign}{prefix}{rendered}{suffix}".strip()


class TabularParser:
    """
    Decodes an uploaded Excel/CSV payload into columns + row dicts.
    Only the first sheet is read and row 1 is always the header.
    """

    PREVIEW_ROWS = 5

    @classmethod
    def parse(cls, content: bytes, filename: Optional[str] = None) -> ParsedTable:
        if not content:
            raise ParseError("File is empty")

        kind = cls.detect_format(content, filename)
        try:
            if kind == "xlsx":
                grid = cls._read_xlsx(content)
            elif kind == "xls":
                grid = cls._read_xls(content)
            else:
                grid = cls._read_csv(content)
        except ParseError:
            raise
        except Exception as exc:
            raise ParseError(f"Failed to parse file: {exc}") from exc

        table = cls._build_table(grid)
        logger.info(
            "parsed spreadsheet",
            extra={"file_name": filename, "format": kind, "columns": len(table.columns), "rows": table.row_count},
        )
        return table

    @staticmethod
    def detect_format(content: bytes, filename: Optional[str] = None) -> str:
        suffix = Path(filename).suffix.lower() if filename else ""
        if suffix in (".xlsx", ".xls", ".csv"):
            return suffix.lstrip(".")
        if content.startswith(XLSX_MAGIC):
            return "xlsx"
        if content.startswith(XLS_MAGIC):
            return "xls"
        return "csv"

    @staticmethod
    def _cell_value(cell: Any) -> Any:
        value = cell.value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            formatted = format_number(value, cell.number_format)
            if formatted is not None:
                return formatted
        return value

    @staticmethod
    def _read_xlsx(content: bytes) -> List[List[Any]]:
        wb = load_workbook(io.BytesIO(content), data_only=True)
        try:
            if not wb.worksheets:
                raise ParseError("File contains no sheets")
            ws = wb.worksheets[0]
            return [[TabularParser._cell_value(cell) for cell in row] for row in ws.iter_rows()]
        finally:
            wb.close()

    @staticmethod
    def _read_xls(content: bytes) -> List[List[Any]]:
        sheets = pd.read_excel(io.BytesIO(content), sheet_name=None, header=None, dtype=object)
        if not sheets:
            raise ParseError("File contains no sheets")
        df = next(iter(sheets.values()))
        df = df.astype(object).where(pd.notna(df), None)
        return df.values.tolist()

    @staticmethod
    def _read_csv(content: bytes) -> List[List[Any]]:
        for encoding in ("utf-8-sig", "cp1252", "latin-1"):
            try:
                text = content.decode(encoding)
                break
            except UnicodeDecodeError:
                continue
        else:  # pragma: no cover - latin-1 decodes any byte sequence
            raise ParseError("Could not decode CSV file")

        sample = text[:4096]
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=",;\t|")
        except csv.Error:
            dialect = csv.excel
        return [row for row in csv.reader(io.StringIO(text), dialect)]

    @classmethod
    def _build_table(cls, raw_rows: List[List[Any]]) -> ParsedTable:
        grid = [[cls._display_value(v) for v in row] for row in raw_rows]
        if not grid or all(cls._is_blank(row) for row in grid):
            raise ParseError("File is empty")

        width = max(cls._filled_width(row) for row in grid)
        header = grid[0]
        columns: List[str] = []
        for idx in range(width):
            value = header[idx] if idx < len(header) else None
            columns.append(value.strip() if value else f"Column_{idx + 1}")

        duplicates = [name for name, count in Counter(columns).items() if count > 1]
        if duplicates:
            raise ParseError(
                f"Duplicate column names found: {', '.join(duplicates)}. "
                "Please ensure all column headers are unique."
            )

        rows: List[Dict[str, Any]] = []
        for raw in grid[1:]:
            if cls._is_blank(raw):
                continue
            rows.append({col: (raw[idx] if idx < len(raw) else None) for idx, col in enumerate(columns)})

        if not rows:
            raise ParseError("File has no data rows after the header row")

        return ParsedTable(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            preview=rows[: cls.PREVIEW_ROWS],
        )

    @staticmethod
    def _display_value(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (datetime, date)):
            return to_iso_instant(value)
        if isinstance(value, time):
            return value.isoformat()
        if isinstance(value, timedelta):
            return str(value)
        if isinstance(value, float):
            if value != value:  # NaN from pandas-backed readers
                return None
            if value.is_integer():
                return str(int(value))
            return str(value)
        text = str(value)
        if not text.strip():
            return None
        return text

    @staticmethod
    def _is_blank(row: List[Optional[str]]) -> bool:
        return all(cell is None for cell in row)

    @staticmethod
    def _filled_width(row: List[Optional[str]]) -> int:
        for idx in range(len(row) - 1, -1, -1):
            if row[idx] is not None:
                return idx + 1
        return 0
