"""
Data story pipeline.

Parser -> Analyzer -> (Statistics, Charts) -> Insights -> Story, with every
stage persisted as its own record so the pipeline can resume from any
completed stage. A failed stage marks only its own record `failed` and
re-raises; earlier records are left intact.
"""
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from datastory.core.config import Settings, get_settings
from datastory.core.errors import InvalidStateError, RecordNotFoundError
from datastory.core.performance import track_performance
from datastory.core.schemas import (
    AnalysisRecord,
    AnalysisResult,
    Dataset,
    DraftRecord,
    SourceDetails,
    SourceRecord,
)
from datastory.core.storage import DataStoryRepository
from datastory.services import story
from datastory.services.charts import generate_charts
from datastory.services.insights import generate_insights
from datastory.services.parsers import detect_file_type, parse_file
from datastory.services.providers import GenerativeCaller
from datastory.services.statistics import compute_dataset_statistics

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@track_performance("analyze_dataset")
def analyze_dataset(
    dataset: Dataset,
    source_name: str,
    caller: GenerativeCaller,
    locale: Optional[str] = None,
) -> AnalysisResult:
    """
    Run one analysis over a dataset: statistics, insights, then charts.

    Raises:
        InsightGenerationError: the insight stage failed
    """
    start = time.perf_counter()
    statistics = compute_dataset_statistics(dataset)
    insight = generate_insights(dataset, statistics, source_name, caller, locale)
    charts = generate_charts(dataset, statistics, locale)

    return AnalysisResult(
        statistics=statistics,
        insights=insight.insights,
        charts=charts,
        provider=insight.provider,
        model=insight.model,
        tokens_used=insight.tokens_used,
        processing_time_ms=int((time.perf_counter() - start) * 1000),
    )


class DataStoryPipeline:
    """Runs pipeline stages against a repository, one record per run."""

    def __init__(
        self,
        repository: DataStoryRepository,
        insight_caller: GenerativeCaller,
        story_caller: GenerativeCaller,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository
        self.insight_caller = insight_caller
        self.story_caller = story_caller
        self.settings = settings or get_settings()

    # Lookups

    def get_source(self, source_id: str) -> SourceRecord:
        record = self.repository.get_source(source_id)
        if record is None:
            raise RecordNotFoundError(f"Source '{source_id}' does not exist")
        return record

    def get_analysis(self, analysis_id: str) -> AnalysisRecord:
        record = self.repository.get_analysis(analysis_id)
        if record is None:
            raise RecordNotFoundError(f"Analysis '{analysis_id}' does not exist")
        return record

    def get_draft(self, draft_id: str) -> DraftRecord:
        record = self.repository.get_draft(draft_id)
        if record is None:
            raise RecordNotFoundError(f"Draft '{draft_id}' does not exist")
        return record

    def get_source_details(self, source_id: str) -> SourceDetails:
        source = self.get_source(source_id)
        return SourceDetails(source=source, analyses=self.repository.list_analyses(source_id))

    # Stages

    def ingest(
        self,
        content: bytes,
        content_type: Optional[str],
        file_name: str,
    ) -> SourceRecord:
        """
        Parse an uploaded file into a new source record.

        Raises:
            UnsupportedFormatError: before any record is created
            DataValidationError: the record is marked failed first
        """
        file_type = detect_file_type(content_type, file_name)
        record = self.repository.create_source(SourceRecord(
            file_name=file_name,
            file_type=file_type,
            file_size=len(content),
        ))

        try:
            dataset = parse_file(content, content_type, file_name)
        except Exception as e:
            logger.warning(f"Source {record.id} failed to parse: {e}")
            self.repository.update_source(
                record.id, parse_status='failed', parse_error=str(e), parsed_at=_now()
            )
            raise

        retain_rows = self.settings.retain_full_rows
        logger.info(
            f"Source {record.id} parsed: {dataset.row_count} rows, {dataset.column_count} columns"
            f"{'' if retain_rows else ' (rows dropped, preview kept)'}"
        )
        return self.repository.update_source(
            record.id,
            parse_status='completed',
            row_count=dataset.row_count,
            column_count=dataset.column_count,
            columns=dataset.columns,
            preview_data=dataset.preview_data,
            rows=dataset.rows if retain_rows else [],
            parsed_at=_now(),
        )

    def analyze(self, source_id: str) -> AnalysisRecord:
        """
        Analyze a parsed source into a new analysis record.

        Raises:
            RecordNotFoundError, InvalidStateError: before any record is created
            InsightGenerationError: the record is marked failed first
        """
        source = self.get_source(source_id)
        if source.parse_status != 'completed':
            raise InvalidStateError(
                f"Source '{source_id}' is '{source.parse_status}', expected 'completed'"
            )

        record = self.repository.create_analysis(AnalysisRecord(source_id=source_id))
        logger.info(f"Analysis {record.id} started for source {source_id}")

        try:
            result = analyze_dataset(
                source.to_dataset(), source.file_name, self.insight_caller, self.settings.locale
            )
        except Exception as e:
            logger.error(f"Analysis {record.id} failed: {e}")
            self.repository.update_analysis(
                record.id, status='failed', error=str(e), completed_at=_now()
            )
            raise

        logger.info(f"Analysis {record.id} completed in {result.processing_time_ms}ms")
        return self.repository.update_analysis(
            record.id,
            status='completed',
            statistics=result.statistics,
            insights=result.insights,
            charts=result.charts,
            provider=result.provider,
            model=result.model,
            tokens_used=result.tokens_used,
            processing_time_ms=result.processing_time_ms,
            completed_at=_now(),
        )

    def generate_story(self, analysis_id: str) -> DraftRecord:
        """
        Write a story draft for a completed analysis into a new draft record.

        Raises:
            RecordNotFoundError, InvalidStateError: before any record is created
            StoryGenerationError: the record is marked failed first
        """
        analysis = self.get_analysis(analysis_id)
        if analysis.status != 'completed':
            raise InvalidStateError(
                f"Analysis '{analysis_id}' is '{analysis.status}', expected 'completed'"
            )
        source = self.get_source(analysis.source_id)

        record = self.repository.create_draft(DraftRecord(analysis_id=analysis_id))
        logger.info(f"Draft {record.id} started for analysis {analysis_id}")

        try:
            result = story.generate_story(
                source.to_dataset(),
                analysis.to_result(),
                source.file_name,
                self.story_caller,
                self.settings.locale,
            )
        except Exception as e:
            logger.error(f"Draft {record.id} failed: {e}")
            self.repository.update_draft(
                record.id, status='failed', error=str(e), completed_at=_now()
            )
            raise

        draft = result.draft
        return self.repository.update_draft(
            record.id,
            status='completed',
            title=draft.title,
            subtitle=draft.subtitle,
            excerpt=draft.excerpt,
            content=draft.content,
            outline=draft.outline,
            provider=result.provider,
            model=result.model,
            tokens_used=result.tokens_used,
            generation_time_ms=result.generation_time_ms,
            completed_at=_now(),
        )
