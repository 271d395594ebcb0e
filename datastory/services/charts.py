"""
Chart configuration generator.

Selects up to three chart-ready aggregates (bar, pie, line) from the column
type mix using deterministic rules, and attaches a Vega-Lite specification to
each so the frontend can render it directly.
"""
import logging
from typing import Any, Dict, List, Optional

from datastory.core.config import get_settings
from datastory.core.schemas import ChartConfig, Column, Dataset, DatasetStatistics, Row
from datastory.services.analyzer import is_missing, parse_date, to_number
from datastory.services.statistics import compute_top_values

logger = logging.getLogger(__name__)

CATEGORICAL_MAX_UNIQUE = 20
BAR_MAX_GROUPS = 10
PIE_MAX_SLICES = 6
LINE_MAX_POINTS = 50

# Colorblind-safe categorical palette
CATEGORICAL_PALETTE = [
    '#1f77b4',  # Blue
    '#ff7f0e',  # Orange
    '#2ca02c',  # Green
    '#d62728',  # Red
    '#9467bd',  # Purple
    '#8c564b',  # Brown
    '#e377c2',  # Pink
    '#7f7f7f',  # Gray
    '#bcbd22',  # Yellow-green
    '#17becf',  # Cyan
]

CHART_TITLES = {
    "en": {
        "bar": "{value} by {category}",
        "bar_description": "Average {value} for the top {limit} {category} groups",
        "pie": "Distribution of {category}",
        "pie_description": "Share of the {limit} most frequent {category} values",
        "line": "{value} over time",
        "line_description": "{value} by {date}, first {limit} points in date order",
    },
    "ar": {
        "bar": "{value} حسب {category}",
        "bar_description": "متوسط {value} لأعلى {limit} مجموعات من {category}",
        "pie": "توزيع {category}",
        "pie_description": "نسبة القيم الأكثر تكراراً في {category} (أعلى {limit})",
        "line": "اتجاه {value} عبر الزمن",
        "line_description": "{value} حسب {date}، أول {limit} نقطة بترتيب التاريخ",
    },
}


def _titles(locale: Optional[str]) -> Dict[str, str]:
    return CHART_TITLES.get(locale or get_settings().locale, CHART_TITLES["en"])


def sanitize_field_name(field: str) -> str:
    """
    Escape a field name for Vega-Lite's field accessor syntax.

    Newlines are collapsed; backslashes, dots, brackets and quotes are escaped
    so they are not read as nested paths.
    """
    if not field:
        return field
    result = ' '.join(field.replace('\n', ' ').replace('\r', ' ').split())
    for char in ('\\', '.', '[', ']', "'", '"'):
        result = result.replace(char, '\\' + char)
    return result


def build_vega_spec(
    chart_type: str,
    title: str,
    data: List[Dict[str, Any]],
    x: str,
    y: str,
    x_type: str = "nominal",
) -> Dict[str, Any]:
    """
    Build a Vega-Lite v5 specification with inline data values.

    For pie charts `x` is the category field and `y` the value field.
    """
    x_field = sanitize_field_name(x)
    y_field = sanitize_field_name(y)
    display_title = title if len(title) <= 60 else title[:57] + "..."

    spec: Dict[str, Any] = {
        "$schema": "https://vega.github.io/schema/vega-lite/v5.json",
        "title": {"text": display_title, "anchor": "start", "fontSize": 16},
        "width": "container",
        "height": 360,
        "data": {"values": data},
        "config": {
            "axis": {"labelLimit": 120, "labelOverlap": "parity", "gridColor": "#f3f4f6"},
            "view": {"stroke": "transparent"},
            "range": {"category": CATEGORICAL_PALETTE},
        },
    }

    if chart_type == "bar":
        spec["mark"] = {"type": "bar", "cornerRadiusEnd": 4, "tooltip": True}
        spec["encoding"] = {
            "x": {"field": x_field, "type": "nominal", "sort": "-y", "axis": {"labelAngle": -45}},
            "y": {"field": y_field, "type": "quantitative"},
            "color": {"value": CATEGORICAL_PALETTE[0]},
        }
    elif chart_type == "pie":
        spec["mark"] = {"type": "arc", "innerRadius": 60, "tooltip": True}
        spec["encoding"] = {
            "theta": {"field": y_field, "type": "quantitative"},
            "color": {"field": x_field, "type": "nominal", "sort": "-theta"},
        }
    elif chart_type == "line":
        spec["mark"] = {"type": "line", "point": True, "strokeWidth": 2, "tooltip": True}
        spec["encoding"] = {
            "x": {"field": x_field, "type": x_type},
            "y": {"field": y_field, "type": "quantitative"},
            "color": {"value": CATEGORICAL_PALETTE[0]},
        }
    else:
        raise ValueError(f"Unsupported chart type: {chart_type}")

    return spec


def aggregate_mean_by_group(rows: List[Row], group_by: str, value_column: str) -> List[Dict[str, Any]]:
    """
    Mean of `value_column` per distinct `group_by` value, highest mean first.

    Rows with a missing group or a non-numeric value are skipped. Ties keep
    first-seen group order.
    """
    groups: Dict[Any, List[float]] = {}
    for row in rows:
        key = row.get(group_by)
        value = to_number(row.get(value_column))
        if is_missing(key) or value is None:
            continue
        groups.setdefault(key, []).append(value)

    aggregated = [
        {group_by: key, value_column: sum(values) / len(values), "count": len(values)}
        for key, values in groups.items()
    ]
    aggregated.sort(key=lambda item: item[value_column], reverse=True)
    return aggregated


def build_trend_points(rows: List[Row], date_column: str, value_column: str) -> List[Dict[str, Any]]:
    """(date, value) pairs with a parseable date and numeric value, in date order."""
    points = []
    for row in rows:
        raw_date = row.get(date_column)
        value = to_number(row.get(value_column))
        timestamp = parse_date(raw_date)
        if timestamp is None or value is None:
            continue
        points.append((timestamp, {"date": raw_date, "value": value}))
    points.sort(key=lambda pair: pair[0])
    return [point for _, point in points]


def _categorical_columns(dataset: Dataset) -> List[Column]:
    return [
        c for c in dataset.columns
        if c.type == 'string' and 0 < c.unique_count <= CATEGORICAL_MAX_UNIQUE
    ]


def generate_charts(
    dataset: Dataset,
    statistics: Optional[DatasetStatistics] = None,
    locale: Optional[str] = None,
) -> List[ChartConfig]:
    """
    Generate at most three chart configurations for a dataset.

    1. bar  (chart-1): first numeric column averaged by the first categorical
       column, top 10 groups.
    2. pie  (chart-2): top 6 values of the first categorical column.
    3. line (chart-3): first numeric column over the first date column,
       ascending by date, first 50 points.

    A chart whose columns are absent is omitted. Pure and deterministic.
    `statistics` is accepted for callers that already hold it; aggregation
    always reads the rows (or the preview once rows were dropped).
    """
    titles = _titles(locale)
    rows = dataset.analysis_rows
    numeric_columns = [c for c in dataset.columns if c.type == 'number']
    categorical_columns = _categorical_columns(dataset)
    date_column = next((c for c in dataset.columns if c.type == 'date'), None)

    charts: List[ChartConfig] = []

    if categorical_columns and numeric_columns:
        category, value = categorical_columns[0], numeric_columns[0]
        data = aggregate_mean_by_group(rows, category.name, value.name)[:BAR_MAX_GROUPS]
        title = titles["bar"].format(value=value.name, category=category.name)
        charts.append(ChartConfig(
            id="chart-1",
            type="bar",
            title=title,
            description=titles["bar_description"].format(
                value=value.name, category=category.name, limit=BAR_MAX_GROUPS
            ),
            data_key=value.name,
            x_axis=category.name,
            y_axis=value.name,
            data=data,
            config=build_vega_spec("bar", title, data, x=category.name, y=value.name),
        ))

    if categorical_columns:
        category = categorical_columns[0]
        data = [
            {"name": top.value, "value": top.count, "percentage": top.percentage}
            for top in compute_top_values(rows, category.name, PIE_MAX_SLICES)
        ]
        title = titles["pie"].format(category=category.name)
        charts.append(ChartConfig(
            id="chart-2",
            type="pie",
            title=title,
            description=titles["pie_description"].format(category=category.name, limit=PIE_MAX_SLICES),
            data_key="value",
            data=data,
            config=build_vega_spec("pie", title, data, x="name", y="value"),
        ))

    if date_column is not None and numeric_columns:
        value = numeric_columns[0]
        data = build_trend_points(rows, date_column.name, value.name)[:LINE_MAX_POINTS]
        title = titles["line"].format(value=value.name)
        charts.append(ChartConfig(
            id="chart-3",
            type="line",
            title=title,
            description=titles["line_description"].format(
                value=value.name, date=date_column.name, limit=LINE_MAX_POINTS
            ),
            data_key="value",
            x_axis="date",
            y_axis="value",
            data=data,
            config=build_vega_spec("line", title, data, x="date", y="value", x_type="temporal"),
        ))

    logger.info(f"Generated {len(charts)} chart configs: {[c.type for c in charts]}")
    return charts
