"""
FSM Pydantic Models

Type-safe data models for traverser records and deferred state requests.
All models use Pydantic V2 for validation and serialization.

Models:
- QueuedState: A trigger postponed until it is safe to apply
- TraverserRecord: Complete persisted record of one traverser
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import START_STATE


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


class QueuedState(BaseModel):
    """
    Deferred request to move a traverser into ``slug``.

    Created by ``trigger_state`` when immediate application is unsafe and
    consumed exactly once by the traverser's next ``step``.

    Attributes:
        slug: Target state slug
        payload: Opaque payload stashed under TRANSITION_INFO_KEY when applied
        queued_at: UTC timestamp when the request was queued
    """
    slug: str = Field(..., min_length=1)
    payload: Any = None
    queued_at: datetime = Field(default_factory=utcnow)

    @field_validator('queued_at')
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure queued_at is timezone-aware (UTC)."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "slug": "reminder",
                    "payload": {"appointment_id": "apt_123"},
                    "queued_at": "2025-10-18T10:30:00Z"
                }
            ]
        }
    }


class TraverserRecord(BaseModel):
    """
    Persisted state of one traverser.

    Attributes:
        uuid: Traverser identifier
        platform: Platform the traverser first contacted us on
        current_state: Slug of the state the traverser is in
        last_update_time: UTC timestamp of the last state entry
        queue: Pending deferred requests, oldest first
        data: Open-ended key/value bag for state behaviour
    """
    uuid: str = Field(..., min_length=1)
    platform: str = ""
    current_state: str = START_STATE
    last_update_time: Optional[datetime] = None
    queue: List[QueuedState] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('last_update_time')
    @classmethod
    def validate_timezone_aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure last_update_time is timezone-aware (UTC)."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
