import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Protocol

from pydantic import BaseModel, ConfigDict, Field

ASSET_REGISTERED = "catalog.episode.asset_registered"
METRICS_APPLIED = "engagement.metrics.applied"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CatalogEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    partition_key: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = Field(default_factory=_now)


class CatalogEventPublisher(Protocol):
    async def publish(self, partition_key: str, event: CatalogEvent) -> str:
        ...
