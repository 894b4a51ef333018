from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from gmaps_scraper.config import MAX_CONCURRENCY, MAX_RESULTS_LIMIT
from gmaps_scraper.errors import ErrorType, RequestValidationError

# Field-level marker: the lookup ran but nothing matched
NOT_FOUND = "Not Found"


def is_found(value: Any) -> bool:
    return value is not None and value != NOT_FOUND


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionMode(str, Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "parallel"

    @classmethod
    def parse(cls, value: Any) -> "ExtractionMode":
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        if text in ('parallel', 'concurrent', 'pro'):
            return cls.CONCURRENT
        if text in ('sequential', 'standard', ''):
            return cls.SEQUENTIAL
        raise RequestValidationError(f"Unknown mode '{value}', expected 'sequential' or 'parallel'")


class ExtractionRequest(BaseModel):
    """One extraction job. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    query: str
    target_count: int = Field(ge=1, le=MAX_RESULTS_LIMIT)
    mode: ExtractionMode = ExtractionMode.SEQUENTIAL
    concurrency_limit: int = Field(default=2, ge=1, le=MAX_CONCURRENCY)

    @field_validator('query')
    @classmethod
    def _strip_query(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("query must not be empty")
        return value

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], concurrency: int = 2) -> "ExtractionRequest":
        """
        Validate the HTTP request shape {query, maxResults, mode} and build a request.

        The worker count is a server-side setting passed in by the caller;
        any concurrency field in the payload itself is ignored.

        Raises:
            RequestValidationError: on any invalid field
        """
        if not isinstance(payload, dict):
            raise RequestValidationError("Request body must be a JSON object")

        query = payload.get('query')
        if not isinstance(query, str) or not query.strip():
            raise RequestValidationError("Query is required and must be a non-empty string")

        max_results = payload.get('maxResults')
        if max_results is None:
            raise RequestValidationError("maxResults is required")
        if isinstance(max_results, bool):
            raise RequestValidationError("maxResults must be an integer")
        if isinstance(max_results, float) and not max_results.is_integer():
            raise RequestValidationError("maxResults must be an integer")
        try:
            max_results = int(max_results)
        except (TypeError, ValueError):
            raise RequestValidationError("maxResults must be an integer")
        if max_results < 1:
            raise RequestValidationError("maxResults must be at least 1")
        if max_results > MAX_RESULTS_LIMIT:
            raise RequestValidationError(f"Maximum results cannot exceed {MAX_RESULTS_LIMIT}")

        mode = ExtractionMode.parse(payload.get('mode'))

        try:
            return cls(
                query=query,
                target_count=max_results,
                mode=mode,
                concurrency_limit=concurrency,
            )
        except ValidationError as e:
            raise RequestValidationError(f"Invalid request: {e.errors()[0].get('msg', str(e))}")


class FeedStopReason(str, Enum):
    TARGET_REACHED = "target_reached"
    STAGNATED = "stagnated"
    END_OF_FEED = "end_of_feed"
    MAX_ATTEMPTS = "max_attempts"


@dataclass
class FeedState:
    """Scroll progress, mutated by the feed scroller once per cycle"""
    item_count: int = 0
    scroll_attempts: int = 0
    consecutive_stagnant_attempts: int = 0
    at_bottom: bool = False
    last_growth: int = 0
    stop_reason: Optional[FeedStopReason] = None

    @property
    def stopped(self) -> bool:
        return self.stop_reason is not None


@dataclass(frozen=True)
class DiscoveredItem:
    url: str
    ordinal: int


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class BusinessRecord(BaseModel):
    """One extracted place. Serialized with camelCase keys."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = NOT_FOUND
    category: str = NOT_FOUND
    website: str = NOT_FOUND
    phone: str = NOT_FOUND
    address: str = NOT_FOUND
    rating: str = NOT_FOUND
    review_count: str = NOT_FOUND
    hours: str = NOT_FOUND
    price_level: str = NOT_FOUND
    coordinates: Optional[Coordinates] = None
    search_query: str
    result_ordinal: int
    source_url: str
    extracted_at: datetime = Field(default_factory=utc_now)

    @property
    def is_valid(self) -> bool:
        """A record without a business name counts as a failed extraction"""
        return is_found(self.name)

    def to_flat_row(self) -> Dict[str, str]:
        """Flat row for tabular export, empty string for absent values"""
        def cell(value: Any) -> str:
            return value if is_found(value) else ''

        return {
            'Name': cell(self.name),
            'Category': cell(self.category),
            'Phone': cell(self.phone),
            'Website': cell(self.website),
            'Address': cell(self.address),
            'Rating': cell(self.rating),
            'Reviews': cell(self.review_count),
        }


class ItemStatus(str, Enum):
    SUCCESS = "success"
    NO_DATA = "no_data"
    ERROR = "error"


@dataclass
class ItemOutcome:
    """Tagged result of processing one discovered item"""
    item: DiscoveredItem
    status: ItemStatus
    record: Optional[BusinessRecord] = None
    error: Optional[str] = None
    error_type: Optional[ErrorType] = None

    @classmethod
    def from_record(cls, item: DiscoveredItem, record: BusinessRecord) -> "ItemOutcome":
        if record.is_valid:
            return cls(item=item, status=ItemStatus.SUCCESS, record=record)
        return cls(item=item, status=ItemStatus.NO_DATA, record=record,
                   error="no recognizable business on page", error_type=ErrorType.NO_DATA)

    @classmethod
    def from_error(cls, item: DiscoveredItem, error: BaseException, error_type: ErrorType) -> "ItemOutcome":
        return cls(item=item, status=ItemStatus.ERROR, error=str(error) or type(error).__name__,
                   error_type=error_type)

    @property
    def succeeded(self) -> bool:
        return self.status == ItemStatus.SUCCESS


class RunStats(BaseModel):
    """Run aggregate. Only the dispatch loop writes to it."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    requested: int = 0
    discovered: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    scroll_attempts: int = 0
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    mode: ExtractionMode = ExtractionMode.SEQUENTIAL
    requested_mode: ExtractionMode = ExtractionMode.SEQUENTIAL
    fallback_reason: Optional[str] = None
    failures_by_type: Dict[str, int] = Field(default_factory=dict)
    processing_time_ms: Optional[float] = None
    avg_time_per_result_ms: Optional[float] = None

    def start(self) -> None:
        self.started_at = utc_now()

    def record_outcome(self, outcome: ItemOutcome) -> None:
        self.processed += 1
        if outcome.succeeded:
            self.successful += 1
            return
        self.failed += 1
        key = (outcome.error_type or ErrorType.UNKNOWN).value
        self.failures_by_type[key] = self.failures_by_type.get(key, 0) + 1

    def finalize(self) -> None:
        self.ended_at = utc_now()
        if self.started_at is not None:
            elapsed = (self.ended_at - self.started_at).total_seconds() * 1000
            self.processing_time_ms = round(elapsed, 1)
            self.avg_time_per_result_ms = round(elapsed / self.successful, 1) if self.successful else 0.0


class ExtractionResult(BaseModel):
    query: str
    records: List[BusinessRecord] = Field(default_factory=list)
    stats: RunStats

    def to_response(self) -> Dict[str, Any]:
        """Success payload for the HTTP adapter"""
        return {
            'success': True,
            'query': self.query,
            'totalResults': len(self.records),
            'processingTime': self.stats.processing_time_ms,
            'mode': self.stats.mode.value,
            'results': [record.model_dump(mode='json', by_alias=True) for record in self.records],
            'stats': self.stats.model_dump(mode='json', by_alias=True),
        }
