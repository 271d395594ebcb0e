"""
Format parsers.

Each parser turns raw file bytes into row records and hands them to the
shared analyzer. No parser infers column types itself.
"""
import io
import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
from openpyxl import load_workbook

from datastory.core.errors import (
    EmptyInputError,
    EmptySheetError,
    InvalidSyntaxError,
    NoSheetsError,
    UnsupportedFormatError,
)
from datastory.core.performance import track_performance
from datastory.core.sanitization import sanitize_filename
from datastory.core.schemas import Dataset, Row, Scalar
from datastory.services.analyzer import analyze_rows, is_missing, parse_number_text

logger = logging.getLogger(__name__)

# Declared MIME type -> parser
MIME_TYPE_MAP = {
    'text/csv': 'csv',
    'application/csv': 'csv',
    'application/json': 'json',
    'application/vnd.ms-excel': 'excel',
    'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet': 'excel',
}

# Extension fallback when the MIME type is missing or generic
EXTENSION_MAP = {
    '.csv': 'csv',
    '.xlsx': 'excel',
    '.xlsm': 'excel',
    '.json': 'json',
}

# Sent by browsers for .csv files when Excel is installed; the extension decides
AMBIGUOUS_MIME_TYPES = frozenset({'application/vnd.ms-excel'})


def _decode_utf8(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InvalidSyntaxError(f"File is not valid UTF-8 text: {e}") from e


def type_cell(value: Any) -> Scalar:
    """
    Best-effort typing of one delimited-text cell.

    Empty -> None, true/false -> bool, numeric text -> int/float, else text.
    """
    if is_missing(value):
        return None
    if not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    number = parse_number_text(value)
    return number if number is not None else value


def read_csv_rows(content: bytes) -> List[Row]:
    """
    Read delimited text into typed rows; the first line holds the column names.

    The header line fixes the column count. Data lines with extra fields, such
    as the trailing delimiter spreadsheet exports write, are truncated to it;
    short lines are null-filled. pandas never promotes a column to the index.
    """
    text = _decode_utf8(content)
    read_options = dict(
        header=None,
        index_col=False,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine="python",
    )
    try:
        width = pd.read_csv(io.StringIO(text), nrows=1, **read_options).shape[1]
        truncated: List[int] = []

        def truncate_fields(fields: List[str]) -> List[str]:
            truncated.append(len(fields))
            return fields[:width]

        frame = pd.read_csv(io.StringIO(text), on_bad_lines=truncate_fields, **read_options)
    except pd.errors.EmptyDataError as e:
        raise EmptyInputError("The file contains no data") from e
    except pd.errors.ParserError as e:
        raise InvalidSyntaxError(f"Unable to parse delimited text: {e}") from e

    if truncated:
        logger.warning(
            f"{len(truncated)} lines had more than {width} fields; extra fields were dropped"
        )

    records = list(frame.itertuples(index=False, name=None))
    if not records:
        return []
    columns = _header_names(records[0])
    return [
        {name: type_cell(value) for name, value in zip(columns, record)}
        for record in records[1:]
    ]


@track_performance("parse_csv")
def parse_csv(content: bytes) -> Dataset:
    """
    Parse delimited text (UTF-8) into a Dataset.

    Raises:
        InvalidSyntaxError: undecodable or malformed text
        EmptyInputError: no data rows
    """
    rows = read_csv_rows(content)
    if not rows:
        raise EmptyInputError("The file has a header but no data rows")
    return analyze_rows(rows)


def _is_blank_row(cells: Sequence[Any]) -> bool:
    return all(is_missing(cell) for cell in cells)


def _sheet_cell(value: Any) -> Scalar:
    """Map an openpyxl cell value onto a Scalar; missing cells become None."""
    if value is None:
        return None
    if isinstance(value, (bool, int, float, str, datetime, date)):
        return value
    # time, timedelta and other exotic cell values
    return str(value)


def _header_names(cells: Sequence[Any]) -> List[str]:
    """Header cells as unique column names; blanks become 'Column N'."""
    names: List[str] = []
    seen: Dict[str, int] = {}
    for idx, cell in enumerate(cells):
        name = str(cell).strip() if not is_missing(cell) else f"Column {idx + 1}"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 0
        names.append(name)
    return names


def read_sheet_rows(values: Iterable[Sequence[Any]]) -> List[Row]:
    """Turn worksheet rows (first non-blank row = header) into null-filled records."""
    rows: List[Row] = []
    headers: Optional[List[str]] = None
    for cells in values:
        if _is_blank_row(cells):
            continue
        if headers is None:
            headers = _header_names(cells)
            continue
        rows.append({
            name: _sheet_cell(cells[idx]) if idx < len(cells) else None
            for idx, name in enumerate(headers)
        })
    return rows


@track_performance("parse_spreadsheet")
def parse_spreadsheet(content: bytes) -> Dataset:
    """
    Parse an .xlsx workbook into a Dataset.

    Only the first sheet is read; later sheets are ignored.

    Raises:
        InvalidSyntaxError: the workbook cannot be opened
        NoSheetsError: the workbook has no sheets
        EmptySheetError: the first sheet has no data rows
    """
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"openpyxl could not open workbook: {e}")
        raise InvalidSyntaxError(f"Unable to read spreadsheet: {e}") from e

    try:
        if not workbook.sheetnames:
            raise NoSheetsError("The workbook contains no sheets")
        sheet = workbook.worksheets[0]
        if len(workbook.sheetnames) > 1:
            logger.info(
                f"Workbook has {len(workbook.sheetnames)} sheets, reading only '{sheet.title}'"
            )
        rows = read_sheet_rows(sheet.iter_rows(values_only=True))
    finally:
        workbook.close()

    if not rows:
        raise EmptySheetError("The first sheet contains no data rows")
    return analyze_rows(rows)


def _record_cell(value: Any) -> Scalar:
    """Nested objects and arrays are kept as compact JSON text."""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return value


def normalize_records(records: Sequence[Dict[str, Any]]) -> List[Row]:
    """Give every record the same keys (first-seen order), filling gaps with None."""
    keys: Dict[str, None] = {}
    for record in records:
        for key in record:
            keys.setdefault(str(key), None)
    return [
        {key: _record_cell(record.get(key)) for key in keys}
        for record in records
    ]


@track_performance("parse_json")
def parse_json(content: bytes) -> Dataset:
    """
    Parse structured records (JSON) into a Dataset.

    A single top-level object is treated as a one-row dataset.

    Raises:
        InvalidSyntaxError: undecodable, malformed, or not object records
        EmptyInputError: an empty array
    """
    try:
        document = json.loads(_decode_utf8(content))
    except json.JSONDecodeError as e:
        raise InvalidSyntaxError(f"Invalid JSON: {e}") from e

    if isinstance(document, dict):
        records = [document]
    elif isinstance(document, list):
        records = document
    else:
        raise InvalidSyntaxError("JSON document must be an object or an array of objects")

    if not records:
        raise EmptyInputError("The JSON array is empty")
    if not all(isinstance(record, dict) for record in records):
        raise InvalidSyntaxError("Every JSON array element must be an object")

    return analyze_rows(normalize_records(records))


PARSERS = {
    'csv': parse_csv,
    'excel': parse_spreadsheet,
    'json': parse_json,
}


def detect_file_type(content_type: Optional[str], filename: Optional[str] = None) -> str:
    """
    Select a parser from the declared MIME type, falling back to the file extension.

    Returns one of 'csv', 'excel', 'json'.
    """
    mime = (content_type or "").split(";")[0].strip().lower()
    extension = Path(filename).suffix.lower() if filename else ""

    if mime in AMBIGUOUS_MIME_TYPES and extension in EXTENSION_MAP:
        return EXTENSION_MAP[extension]
    if mime in MIME_TYPE_MAP:
        return MIME_TYPE_MAP[mime]
    if 'sheet' in mime or 'excel' in mime:
        return 'excel'

    if extension in EXTENSION_MAP:
        if mime and mime != 'application/octet-stream':
            logger.warning(f"MIME type {mime} not recognized, using extension {extension}")
        return EXTENSION_MAP[extension]

    raise UnsupportedFormatError(
        f"Unsupported file type '{mime or extension or 'unknown'}'. "
        f"Allowed formats: CSV, XLSX, JSON"
    )


def parse_file(content: bytes, content_type: Optional[str], filename: Optional[str] = None) -> Dataset:
    """Parse raw file bytes with the parser matching its declared type."""
    file_type = detect_file_type(content_type, filename)
    if not content:
        raise EmptyInputError("File is empty")

    dataset = PARSERS[file_type](content)
    logger.info(
        f"Parsed {file_type} file {sanitize_filename(filename or '')}: "
        f"{dataset.row_count} rows, {dataset.column_count} columns"
    )
    return dataset
