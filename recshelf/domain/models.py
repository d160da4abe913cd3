"""
Transient domain records used by the metadata pipeline.

None of these are persisted: catalog hits live for one enrichment pass and
job statuses live in process memory until restart.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any


def now_utc() -> datetime:
    """Timezone-aware UTC now for default timestamps."""
    return datetime.now(timezone.utc)


class EnrichmentPass(Enum):
    """Order in which adapter results are merged into a book (first writer wins)."""
    CATALOG = 1
    AUDIO = 2
    COVER_FALLBACK = 3


@dataclass
class CatalogResult:
    """Normalized search hit from one external metadata source."""
    id: Optional[str] = None
    title: Optional[str] = None
    authors: Optional[str] = None
    description: Optional[str] = None  # Short form (truncated)
    full_description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    page_count: Optional[int] = None
    categories: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    language: Optional[str] = None
    # Audio/review sources
    narrator: Optional[str] = None
    listening_length: Optional[str] = None
    average_rating: Optional[str] = None
    source: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SeriesBook:
    """One entry of a series listing page."""
    title: str
    authors: str = ""
    order: float = 0
    thumbnail_url: Optional[str] = None


class JobState(Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class JobStatus:
    """Snapshot of one background job's progress."""
    percent: int = 0
    message: str = "Starting..."
    state: JobState = JobState.RUNNING
    kind: str = ""
    created_at: datetime = field(default_factory=now_utc)
    updated_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.state is JobState.COMPLETE

    @property
    def is_error(self) -> bool:
        return self.state is JobState.FAILED

    @property
    def is_terminal(self) -> bool:
        return self.state is not JobState.RUNNING

    @classmethod
    def unknown(cls) -> "JobStatus":
        return cls(percent=0, message="Unknown process", state=JobState.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        """Polling payload consumed by the progress bar."""
        return {
            'percent': self.percent,
            'message': self.message,
            'isComplete': self.is_complete,
            'isError': self.is_error,
        }
