from typing import List, Optional, Sequence, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from content_catalog.application.ports.trending_store import ScoreUpdate, TrendingKeys, TrendingStore
from content_catalog.core.exceptions import StoreUnavailableError


def _same_epoch(stored, expected: float) -> bool:
    return stored is not None and float(stored) == expected


class RedisTrendingStore(TrendingStore):
    """Sorted set for scores, hashes for ratings and update times.

    Writes go through MULTI/EXEC. Writers that depend on the decay epoch
    WATCH its key, so a concurrent rescale aborts them instead of mixing
    scales.
    """

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def ensure_epoch(self, key: str, default: float) -> float:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(key, str(default), nx=True)
                pipe.get(key)
                _, current = await pipe.execute()
        except RedisError as exc:
            raise StoreUnavailableError("ensure_epoch", exc) from exc
        return float(current)

    async def apply_update(self, keys: TrendingKeys, update: ScoreUpdate, epoch: Optional[float]) -> Optional[float]:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                if epoch is not None:
                    await pipe.watch(keys.epoch)
                    if not _same_epoch(await pipe.get(keys.epoch), epoch):
                        return None
                pipe.multi()
                if update.score_delta:
                    pipe.zincrby(keys.scores, update.score_delta, update.member)
                else:
                    pipe.zscore(keys.scores, update.member)
                if update.rating is not None:
                    pipe.hincrbyfloat(keys.ratings, f"{update.member}:sum", update.rating)
                    pipe.hincrbyfloat(keys.ratings, f"{update.member}:count", 1)
                pipe.hset(keys.updated, update.member, update.updated_at)
                results = await pipe.execute()
        except WatchError:
            return None
        except RedisError as exc:
            raise StoreUnavailableError("apply_update", exc) from exc
        score = results[0]
        return float(score) if score is not None else 0.0

    async def rescale(self, keys: TrendingKeys, epoch: float, new_epoch: float, factor: float) -> bool:
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(keys.epoch)
                if not _same_epoch(await pipe.get(keys.epoch), epoch):
                    return False
                pipe.multi()
                pipe.zunionstore(keys.scores, {keys.scores: factor})
                pipe.set(keys.epoch, str(new_epoch))
                await pipe.execute()
        except WatchError:
            return False
        except RedisError as exc:
            raise StoreUnavailableError("rescale", exc) from exc
        return True

    async def top(self, key: str, limit: int) -> List[Tuple[str, float]]:
        if limit <= 0:
            return []
        try:
            rows = await self._redis.zrevrange(key, 0, limit - 1, withscores=True)
        except RedisError as exc:
            raise StoreUnavailableError("zrevrange", exc) from exc
        return [(member, float(score)) for member, score in rows]

    async def members_with_score(self, key: str, score: float, limit: int) -> List[str]:
        if limit <= 0:
            return []
        try:
            # equal scores come back in lexicographic member order
            return list(await self._redis.zrangebyscore(key, score, score, start=0, num=limit))
        except RedisError as exc:
            raise StoreUnavailableError("zrangebyscore", exc) from exc

    async def scores(self, key: str, members: Sequence[str]) -> List[Optional[float]]:
        if not members:
            return []
        try:
            rows = await self._redis.zmscore(key, list(members))
        except RedisError as exc:
            raise StoreUnavailableError("zmscore", exc) from exc
        return [float(score) if score is not None else None for score in rows]

    async def get_fields(self, key: str, fields: Sequence[str]) -> List[Optional[str]]:
        if not fields:
            return []
        try:
            return list(await self._redis.hmget(key, list(fields)))
        except RedisError as exc:
            raise StoreUnavailableError("hmget", exc) from exc
