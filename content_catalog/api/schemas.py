from typing import List, Optional

from pydantic import BaseModel, Field

from content_catalog.application.models import AssetVariant, EngagementMetric, RegisterEpisodeAsset


class AssetRegistrationBody(BaseModel):
    status: str
    source_upload_id: Optional[str] = None
    streaming_asset_id: Optional[str] = None
    manifest_url: Optional[str] = None
    default_thumbnail_url: Optional[str] = None
    variants: List[AssetVariant] = Field(default_factory=list)

    def for_episode(self, episode_id: str) -> RegisterEpisodeAsset:
        return RegisterEpisodeAsset(episode_id=episode_id, **self.model_dump())


class MediaProcessedEvent(AssetRegistrationBody):
    episode_id: str

    def to_registration(self) -> RegisterEpisodeAsset:
        return RegisterEpisodeAsset(**self.model_dump())


class EngagementMetricsEvent(BaseModel):
    metrics: List[EngagementMetric] = Field(min_length=1)
