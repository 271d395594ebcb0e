from datetime import date, datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

# A single cell. bool precedes int so True/False are never widened to 1/0.
Scalar = Union[bool, int, float, str, datetime, date, None]
Row = Dict[str, Scalar]

ColumnType = Literal['number', 'string', 'date', 'boolean']

# Generated text fields; blank or whitespace-only responses fail validation
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class Column(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType
    sample_values: List[Scalar] = []
    unique_count: int
    null_count: int


class Dataset(BaseModel):
    """A normalized, typed, in-memory representation of one uploaded file."""
    rows: List[Row] = []  # may be empty once the source is persisted
    columns: List[Column]
    row_count: int
    column_count: int
    preview_data: List[Row] = []

    @property
    def analysis_rows(self) -> List[Row]:
        """Rows available for aggregation: all rows, or the preview once rows were dropped."""
        return self.rows or self.preview_data


class ColumnStatistics(BaseModel):
    count: int
    mean: float
    median: Union[int, float]
    min: Union[int, float]
    max: Union[int, float]
    std_dev: float


class TopValue(BaseModel):
    value: Scalar
    count: int
    percentage: float


class ColumnSummary(BaseModel):
    type: ColumnType
    numeric: Optional[ColumnStatistics] = None
    top_values: Optional[List[TopValue]] = None


class StatisticsSummary(BaseModel):
    total_rows: int
    total_columns: int
    numeric_columns: int
    categorical_columns: int


class DatasetStatistics(BaseModel):
    summary: StatisticsSummary
    column_stats: Dict[str, ColumnSummary] = {}


class ChartConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal['bar', 'pie', 'line']
    title: str
    description: Optional[str] = None
    data_key: str
    x_axis: Optional[str] = None
    y_axis: Optional[str] = None
    data: List[Dict[str, Any]] = []
    config: Optional[Dict[str, Any]] = None  # Vega-Lite spec


class AIInsights(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key_findings: List[str] = Field(default_factory=list, alias="keyFindings")
    trends: List[str] = []
    anomalies: List[str] = []
    recommendations: List[str] = []
    narrative: NonEmptyStr


class StorySection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    heading: str
    content: str
    data_references: List[str] = Field(default_factory=list, alias="dataReferences")


class StoryOutline(BaseModel):
    sections: List[StorySection] = []


class StoryDraft(BaseModel):
    title: NonEmptyStr
    subtitle: NonEmptyStr
    excerpt: NonEmptyStr
    content: NonEmptyStr
    outline: StoryOutline


class InsightResult(BaseModel):
    insights: AIInsights
    provider: str
    model: str
    tokens_used: int = 0


class AnalysisResult(BaseModel):
    statistics: DatasetStatistics
    insights: AIInsights
    charts: List[ChartConfig] = []
    provider: str
    model: str
    tokens_used: int = 0
    processing_time_ms: int = 0


class StoryResult(BaseModel):
    draft: StoryDraft
    provider: str
    model: str
    tokens_used: int = 0
    generation_time_ms: int = 0


# Persisted records. History is append-only: each run creates a new record.

def _new_id() -> str:
    return uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    file_name: str
    file_type: Literal['csv', 'excel', 'json']
    file_size: int
    parse_status: Literal['parsing', 'completed', 'failed'] = 'parsing'
    parse_error: Optional[str] = None
    row_count: Optional[int] = None
    column_count: Optional[int] = None
    columns: List[Column] = []
    preview_data: List[Row] = []
    rows: List[Row] = []
    created_at: datetime = Field(default_factory=_utcnow)
    parsed_at: Optional[datetime] = None

    def to_dataset(self) -> Dataset:
        """Re-hydrate the Dataset persisted on this record."""
        return Dataset(
            rows=self.rows,
            columns=self.columns,
            row_count=self.row_count or 0,
            column_count=self.column_count or 0,
            preview_data=self.preview_data,
        )


class AnalysisRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    source_id: str
    status: Literal['analyzing', 'completed', 'failed'] = 'analyzing'
    error: Optional[str] = None
    statistics: Optional[DatasetStatistics] = None
    insights: Optional[AIInsights] = None
    charts: List[ChartConfig] = []
    provider: Optional[str] = None
    model: Optional[str] = None
    tokens_used: int = 0
    processing_time_ms: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def to_result(self) -> AnalysisResult:
        """Re-hydrate the AnalysisResult of a completed record."""
        return AnalysisResult(
            statistics=self.statistics,
            insights=self.insights,
            charts=self.charts,
            provider=self.provider or "",
            model=self.model or "",
            tokens_used=self.tokens_used,
            processing_time_ms=self.processing_time_ms,
        )


class DraftRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    analysis_id: str
    status: Literal['generating', 'completed', 'failed'] = 'generating'
    error: Optional[str] = None
    title: Optional[str] = None
    subtitle: Optional[str] = None
    excerpt: Optional[str] = None
    content: Optional[str] = None
    outline: Optional[StoryOutline] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    tokens_used: int = 0
    generation_time_ms: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None


class SourceDetails(BaseModel):
    source: SourceRecord
    analyses: List[AnalysisRecord] = []
