from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.domain.enums import RealtimeMessageType


def _utc_now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


class RealtimeMessage(BaseModel):
    """Outbound WebSocket frame. Built once, serialized once, shared by all recipients."""

    type: RealtimeMessageType
    message: str | None = None
    data: Any = None
    timestamp: datetime = Field(default_factory=_utc_now)
    gtfs_loaded: bool | None = None

    model_config = ConfigDict(frozen=True)

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return value.astimezone(UTC).isoformat().replace("+00:00", "Z")
