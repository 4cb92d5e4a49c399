from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class TrendingKeys:
    scores: str
    ratings: str
    updated: str
    epoch: str


@dataclass(frozen=True)
class ScoreUpdate:
    """Everything one metrics event changes for one content id."""

    member: str
    score_delta: float
    updated_at: str
    rating: Optional[float] = None


class TrendingStore(Protocol):
    """Ranked set and hash operations, each atomic at the store."""

    async def ensure_epoch(self, key: str, default: float) -> float:
        """Current decay epoch in unix seconds; ``default`` is stored when none is set."""
        ...

    async def apply_update(self, keys: TrendingKeys, update: ScoreUpdate, epoch: Optional[float]) -> Optional[float]:
        """Apply the score delta, rating and update time as one transaction.

        Returns the member's new score, or None without writing anything when
        ``epoch`` is given and no longer matches the stored epoch.
        """
        ...

    async def rescale(self, keys: TrendingKeys, epoch: float, new_epoch: float, factor: float) -> bool:
        """Multiply every score by ``factor`` and move the epoch, unless another writer moved it first."""
        ...

    async def top(self, key: str, limit: int) -> List[Tuple[str, float]]:
        ...

    async def members_with_score(self, key: str, score: float, limit: int) -> List[str]:
        """Up to ``limit`` members holding exactly ``score``, in ascending member order."""
        ...

    async def scores(self, key: str, members: Sequence[str]) -> List[Optional[float]]:
        ...

    async def get_fields(self, key: str, fields: Sequence[str]) -> List[Optional[str]]:
        ...
