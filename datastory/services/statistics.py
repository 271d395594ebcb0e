"""
Statistics engine: numeric descriptive statistics and categorical frequency tables.
"""
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np

from datastory.core.performance import track_performance
from datastory.core.schemas import (
    ColumnStatistics,
    ColumnSummary,
    Dataset,
    DatasetStatistics,
    Row,
    StatisticsSummary,
    TopValue,
)
from datastory.services.analyzer import is_missing, to_number, unique_key

logger = logging.getLogger(__name__)

DEFAULT_TOP_VALUES = 5


def compute_numeric_stats(rows: Sequence[Row], column_name: str) -> Optional[ColumnStatistics]:
    """
    Descriptive statistics over the numeric-coercible values of a column.

    Values that fail coercion are silently dropped. Returns None when no
    value is left, so "no data" stays distinct from "all zeros".

    The median is the lower-middle element of the sorted values, with no
    averaging for even counts. Mean and population standard deviation are rounded to
    two decimals; count, min, max and median are not.
    """
    values = []
    for row in rows:
        raw = row.get(column_name)
        if is_missing(raw):
            continue
        number = to_number(raw)
        if number is not None:
            values.append(number)

    if not values:
        return None

    values.sort()
    array = np.asarray(values, dtype=float)

    return ColumnStatistics(
        count=len(values),
        mean=round(float(array.mean()), 2),
        median=values[(len(values) - 1) // 2],
        min=values[0],
        max=values[-1],
        std_dev=round(float(array.std()), 2),
    )


def compute_top_values(rows: Sequence[Row], column_name: str, limit: int = DEFAULT_TOP_VALUES) -> List[TopValue]:
    """
    Most frequent non-missing values of a column, by count descending.

    Percentages are shares of all rows, including rows where the value is
    missing, rounded to two decimals. Ties keep first-seen order.
    """
    counts: Counter = Counter()
    originals: Dict = {}
    for row in rows:
        raw = row.get(column_name)
        if is_missing(raw):
            continue
        key = unique_key(raw)
        counts[key] += 1
        originals.setdefault(key, raw)

    total = len(rows)
    return [
        TopValue(
            value=originals[key],
            count=count,
            percentage=round(100 * count / total, 2) if total else 0.0,
        )
        for key, count in counts.most_common(limit)
    ]


@track_performance("compute_statistics")
def compute_dataset_statistics(dataset: Dataset, top_values_limit: int = DEFAULT_TOP_VALUES) -> DatasetStatistics:
    """
    Statistics for every column of a dataset.

    Numeric columns get descriptive statistics, every other column a top-values
    table. When the full rows were dropped after persistence, the retained
    preview rows are used.
    """
    rows = dataset.analysis_rows
    if not dataset.rows:
        logger.info(f"Full rows unavailable, computing statistics over {len(rows)} preview rows")

    column_stats: Dict[str, ColumnSummary] = {}
    for column in dataset.columns:
        if column.type == 'number':
            column_stats[column.name] = ColumnSummary(
                type=column.type,
                numeric=compute_numeric_stats(rows, column.name),
            )
        else:
            column_stats[column.name] = ColumnSummary(
                type=column.type,
                top_values=compute_top_values(rows, column.name, top_values_limit),
            )

    return DatasetStatistics(
        summary=StatisticsSummary(
            total_rows=dataset.row_count,
            total_columns=dataset.column_count,
            numeric_columns=sum(1 for c in dataset.columns if c.type == 'number'),
            categorical_columns=sum(1 for c in dataset.columns if c.type == 'string'),
        ),
        column_stats=column_stats,
    )
