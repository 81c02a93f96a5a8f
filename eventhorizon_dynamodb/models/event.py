"""
Event stream models

``Event`` is the stored form of an aggregate event: an immutable fact with a
version that orders it within its aggregate's stream. ``MaintenanceReport``
is what a maintenance pass over an event table returns.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils import to_utc


class Event(BaseModel):
    """An event appended to an aggregate stream.

    ``data`` is the payload: a plain dict, or a pydantic model when the event
    type has a payload model registered on the event store.
    """

    event_type: str = Field(..., min_length=1, description="Type of the event")
    data: Any = Field(None, description="Event payload")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="When the event happened")
    aggregate_type: str = Field(..., min_length=1, description="Type of the aggregate the event belongs to")
    aggregate_id: str = Field(..., min_length=1, description="Identifier of the aggregate")
    version: int = Field(..., ge=1, description="Position of the event in the aggregate stream")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Operational metadata")

    model_config = ConfigDict(
        frozen=True
    )

    @field_validator('timestamp')
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        """Store every timestamp as timezone-aware UTC."""
        return to_utc(v)

    def __str__(self) -> str:
        return f"{self.event_type}@{self.version}"


def new_event_for_aggregate(
    event_type: str,
    data: Any,
    timestamp: datetime,
    aggregate_type: str,
    aggregate_id: str,
    version: int,
    metadata: Optional[Dict[str, Any]] = None,
) -> Event:
    """Create an event bound to an aggregate and a stream version."""
    return Event(
        event_type=event_type,
        data=data,
        timestamp=timestamp,
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        version=version,
        metadata=metadata or {},
    )


class VersionGap(BaseModel):
    """A hole in an aggregate stream found during maintenance."""

    aggregate_id: str
    expected_version: int
    found_version: int


class MaintenanceReport(BaseModel):
    """Outcome of one maintenance pass over a namespace's event table."""

    namespace: str
    table_name: str
    table_exists: bool = False
    aggregates_checked: int = 0
    events_checked: int = 0
    gaps: List[VersionGap] = Field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not self.gaps
