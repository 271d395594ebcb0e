"""
Persistence layer for data story records.

Provides pluggable storage backends:
- In-memory (development, tests)
- Redis (production)

Configure via the STORAGE_BACKEND setting. Records are append-only: every
upload, analysis and story run creates a new record; updates only move a
record through its own status lifecycle.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from datastory.core.config import Settings, get_settings
from datastory.core.errors import RecordNotFoundError
from datastory.core.schemas import AnalysisRecord, DraftRecord, SourceRecord

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

SOURCE = "source"
ANALYSIS = "analysis"
DRAFT = "draft"


class DataStoryRepository(ABC):
    """Create/get/update access to sources, analyses and drafts."""

    @abstractmethod
    def _write(self, kind: str, record_id: str, payload: Dict[str, Any]) -> None:
        """Store the JSON-compatible payload of a record."""

    @abstractmethod
    def _read(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return the stored payload, or None if missing."""

    @abstractmethod
    def _add_child(self, parent_kind: str, parent_id: str, child_id: str) -> None:
        """Append child_id to the ordered child index of a parent record."""

    @abstractmethod
    def _children(self, parent_kind: str, parent_id: str) -> List[str]:
        """Child ids of a parent record, oldest first."""

    # Generic helpers

    def _save(self, kind: str, record: RecordT) -> RecordT:
        self._write(kind, record.id, record.model_dump(mode="json"))
        return record

    def _load(self, kind: str, record_id: str, model: Type[RecordT]) -> Optional[RecordT]:
        payload = self._read(kind, record_id)
        if payload is None:
            return None
        return model.model_validate(payload)

    def _update(self, kind: str, record_id: str, model: Type[RecordT], changes: Dict[str, Any]) -> RecordT:
        current = self._load(kind, record_id, model)
        if current is None:
            raise RecordNotFoundError(f"{kind} '{record_id}' does not exist")
        updated = model.model_validate({**current.model_dump(), **changes})
        return self._save(kind, updated)

    # Sources

    def create_source(self, record: SourceRecord) -> SourceRecord:
        logger.debug(f"Creating source record {record.id}")
        return self._save(SOURCE, record)

    def get_source(self, source_id: str) -> Optional[SourceRecord]:
        return self._load(SOURCE, source_id, SourceRecord)

    def update_source(self, source_id: str, **changes: Any) -> SourceRecord:
        return self._update(SOURCE, source_id, SourceRecord, changes)

    # Analyses

    def create_analysis(self, record: AnalysisRecord) -> AnalysisRecord:
        logger.debug(f"Creating analysis record {record.id} for source {record.source_id}")
        self._save(ANALYSIS, record)
        self._add_child(SOURCE, record.source_id, record.id)
        return record

    def get_analysis(self, analysis_id: str) -> Optional[AnalysisRecord]:
        return self._load(ANALYSIS, analysis_id, AnalysisRecord)

    def update_analysis(self, analysis_id: str, **changes: Any) -> AnalysisRecord:
        return self._update(ANALYSIS, analysis_id, AnalysisRecord, changes)

    def list_analyses(self, source_id: str) -> List[AnalysisRecord]:
        records = (self.get_analysis(i) for i in self._children(SOURCE, source_id))
        return [r for r in records if r is not None]

    # Drafts

    def create_draft(self, record: DraftRecord) -> DraftRecord:
        logger.debug(f"Creating draft record {record.id} for analysis {record.analysis_id}")
        self._save(DRAFT, record)
        self._add_child(ANALYSIS, record.analysis_id, record.id)
        return record

    def get_draft(self, draft_id: str) -> Optional[DraftRecord]:
        return self._load(DRAFT, draft_id, DraftRecord)

    def update_draft(self, draft_id: str, **changes: Any) -> DraftRecord:
        return self._update(DRAFT, draft_id, DraftRecord, changes)

    def list_drafts(self, analysis_id: str) -> List[DraftRecord]:
        records = (self.get_draft(i) for i in self._children(ANALYSIS, analysis_id))
        return [r for r in records if r is not None]


class InMemoryRepository(DataStoryRepository):
    """
    In-memory storage for development and tests.

    NOT suitable for production with multiple workers.
    """

    def __init__(self):
        self._store: Dict[str, Dict[str, Any]] = {}
        self._index: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def _write(self, kind: str, record_id: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._store[f"{kind}:{record_id}"] = payload

    def _read(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            payload = self._store.get(f"{kind}:{record_id}")
        return dict(payload) if payload is not None else None

    def _add_child(self, parent_kind: str, parent_id: str, child_id: str) -> None:
        with self._lock:
            self._index.setdefault(f"{parent_kind}:{parent_id}", []).append(child_id)

    def _children(self, parent_kind: str, parent_id: str) -> List[str]:
        with self._lock:
            return list(self._index.get(f"{parent_kind}:{parent_id}", []))

    def size(self) -> int:
        """Number of stored records."""
        with self._lock:
            return len(self._store)


class RedisRepository(DataStoryRepository):
    """
    Redis storage for production.

    Records are JSON strings under `datastory:<kind>:<id>`; child indexes are
    Redis lists under `datastory:<kind>:<id>:children`.
    """

    KEY_PREFIX = "datastory"

    def __init__(self, redis_url: str, client=None):
        if client is not None:
            self._client = client
            return
        try:
            import redis
        except ImportError:
            raise RuntimeError(
                "Redis storage requires 'redis' package. "
                "Install with: pip install 'datastory[redis]'"
            )
        try:
            self._client = redis.from_url(redis_url, decode_responses=True)
            self._client.ping()
        except redis.RedisError as e:
            raise RuntimeError(f"Failed to connect to Redis: {e}") from e
        logger.info("Connected to Redis storage backend")

    def _key(self, kind: str, record_id: str) -> str:
        return f"{self.KEY_PREFIX}:{kind}:{record_id}"

    def _write(self, kind: str, record_id: str, payload: Dict[str, Any]) -> None:
        self._client.set(self._key(kind, record_id), json.dumps(payload, ensure_ascii=False))

    def _read(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        data = self._client.get(self._key(kind, record_id))
        return json.loads(data) if data else None

    def _add_child(self, parent_kind: str, parent_id: str, child_id: str) -> None:
        self._client.rpush(f"{self._key(parent_kind, parent_id)}:children", child_id)

    def _children(self, parent_kind: str, parent_id: str) -> List[str]:
        return list(self._client.lrange(f"{self._key(parent_kind, parent_id)}:children", 0, -1))


_repository_instance: Optional[DataStoryRepository] = None


def get_repository(settings: Optional[Settings] = None) -> DataStoryRepository:
    """
    Get the configured repository (singleton).

    STORAGE_BACKEND selects "memory" (default) or "redis"; REDIS_URL is
    required for redis.
    """
    global _repository_instance

    if _repository_instance is None:
        settings = settings or get_settings()
        if settings.storage_backend == 'redis':
            if not settings.redis_url:
                raise RuntimeError("REDIS_URL environment variable required for redis storage")
            _repository_instance = RedisRepository(settings.redis_url)
        else:
            _repository_instance = InMemoryRepository()
            logger.info("Using in-memory storage backend (development only)")

    return _repository_instance


def reset_repository():
    """Reset repository instance (for testing)."""
    global _repository_instance
    _repository_instance = None
