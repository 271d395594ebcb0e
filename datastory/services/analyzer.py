"""
Dataset analyzer.

Turns the row records produced by any format parser into a typed Dataset:
column order, inferred column types, sample/unique/null counts and a preview.
"""
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from datastory.core.errors import EmptyDatasetError, NoColumnsError
from datastory.core.performance import track_performance
from datastory.core.schemas import Column, ColumnType, Dataset, Row, Scalar

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10
PREVIEW_SIZE = 10

# Case-insensitive boolean lexicon, including Arabic equivalents
BOOLEAN_LEXICON = frozenset({
    "true", "false", "yes", "no",
    "نعم", "لا", "صح", "صحيح", "خطأ",
})

# Plain decimal or scientific notation, nothing else ("nan", "inf", "1_000" excluded)
NUMERIC_PATTERN = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')

# Date strings carry at least one digit
DIGIT_PATTERN = re.compile(r'\d')


def is_missing(value: Any) -> bool:
    """Null, NaN/NaT and empty (or whitespace-only) strings all count as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, float):
        return math.isnan(value)
    if value is pd.NaT:
        return True
    return False


def parse_number_text(text: str) -> Optional[Union[int, float]]:
    """Parse a string that is entirely a number; None otherwise."""
    candidate = text.strip()
    if not NUMERIC_PATTERN.match(candidate):
        return None
    if re.fullmatch(r'[+-]?\d+', candidate):
        return int(candidate)
    return float(candidate)


def to_number(value: Any) -> Optional[Union[int, float]]:
    """
    Coerce a scalar to a number.

    Native numbers pass through, numeric strings are parsed. Booleans, dates,
    NaN and everything else are not numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value
    if isinstance(value, str):
        return parse_number_text(value)
    return None


def _naive_utc(timestamp: pd.Timestamp) -> pd.Timestamp:
    """Timezone-aware timestamps are converted to naive UTC so any mix compares."""
    return timestamp.tz_convert(None) if timestamp.tzinfo is not None else timestamp


def parse_date(value: Any) -> Optional[pd.Timestamp]:
    """
    Parse a scalar as a date; None if it does not produce a valid timestamp.

    Strings need at least one digit, so bare words pandas would accept
    ("March", "today", "now") stay text. Results are naive UTC.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (datetime, date)):
        return _naive_utc(pd.Timestamp(value))
    if not isinstance(value, str) or not DIGIT_PATTERN.search(value):
        return None
    try:
        parsed = pd.to_datetime(value.strip(), errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return _naive_utc(parsed)


def infer_column_type(value: Scalar) -> ColumnType:
    """
    Infer a column type from one representative value.

    Checked in fixed priority order: boolean, number, date, string.
    """
    if isinstance(value, bool):
        return 'boolean'
    if isinstance(value, str) and value.strip().lower() in BOOLEAN_LEXICON:
        return 'boolean'
    if to_number(value) is not None:
        return 'number'
    if parse_date(value) is not None:
        return 'date'
    return 'string'


def unique_key(value: Scalar) -> Tuple[bool, Hashable]:
    """Set key that keeps True/False apart from 1/0."""
    return (isinstance(value, bool), value)


def profile_column(name: str, rows: Sequence[Row]) -> Column:
    """Build the Column metadata for one column name."""
    values: List[Scalar] = [row.get(name) for row in rows if not is_missing(row.get(name))]

    # Single-sample inference: the first non-missing value decides the type
    column_type: ColumnType = infer_column_type(values[0]) if values else 'string'

    return Column(
        name=name,
        type=column_type,
        sample_values=values[:SAMPLE_SIZE],
        unique_count=len({unique_key(v) for v in values}),
        null_count=len(rows) - len(values),
    )


@track_performance("analyze_rows")
def analyze_rows(rows: Sequence[Row]) -> Dataset:
    """
    Analyze row records into a Dataset.

    The first row is authoritative for column names and order.

    Raises:
        EmptyDatasetError: no rows
        NoColumnsError: the first row has no keys
    """
    if not rows:
        raise EmptyDatasetError("The dataset contains no rows")

    column_names = list(rows[0].keys())
    if not column_names:
        raise NoColumnsError("The first row of the dataset has no columns")

    columns = [profile_column(name, rows) for name in column_names]

    logger.info(
        f"Analyzed dataset: {len(rows)} rows, {len(columns)} columns "
        f"({', '.join(f'{c.name}:{c.type}' for c in columns[:20])})"
    )

    return Dataset(
        rows=list(rows),
        columns=columns,
        row_count=len(rows),
        column_count=len(columns),
        preview_data=[dict(row) for row in rows[:PREVIEW_SIZE]],
    )


def columns_by_type(dataset: Dataset) -> Dict[str, List[Column]]:
    """Group a dataset's columns by inferred type, preserving column order."""
    grouped: Dict[str, List[Column]] = {'number': [], 'string': [], 'date': [], 'boolean': []}
    for column in dataset.columns:
        grouped[column.type].append(column)
    return grouped
