import json
import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from src.core.config import settings

logger = logging.getLogger(__name__)

REDIS_EXPIRE_SECONDS = 30
SLOT_CACHE_PREFIX = "slots"

_client: Optional[aioredis.Redis] = None


def get_redis_client() -> Optional[aioredis.Redis]:
    global _client
    if not settings.SLOT_CACHE_ENABLED:
        return None
    if _client is None:
        _client = aioredis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def build_cache_key(prefix: str, *parts: str) -> str:
    base_parts = [prefix, *parts]
    return ':'.join(filter(None, base_parts))


async def get_cached_slots(service_uid: str, target_date: date) -> Optional[list[str]]:
    client = get_redis_client()
    if not client:
        return None
    key = build_cache_key(SLOT_CACHE_PREFIX, target_date.isoformat(), service_uid)
    try:
        raw = await client.get(key)
    except RedisError as exc:
        logger.warning("读取时间槽缓存失败 %s: %s", key, exc)
        return None
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


async def set_cached_slots(
    service_uid: str,
    target_date: date,
    slots: list[str],
    expire_seconds: int = REDIS_EXPIRE_SECONDS,
) -> None:
    client = get_redis_client()
    if not client:
        return
    key = build_cache_key(SLOT_CACHE_PREFIX, target_date.isoformat(), service_uid)
    try:
        await client.set(key, json.dumps(slots), ex=expire_seconds)
    except RedisError as exc:
        logger.warning("写入时间槽缓存失败 %s: %s", key, exc)


async def clear_slots_for_dates(dates: Iterable[date]) -> None:
    """
    某些日期的预约或请假发生变化时，清空这些日期下所有服务的时间槽缓存
    (不同服务可能共用技师和资源)。

    只有一天时按该天的前缀扫描；多天时只扫描一遍 slots:*，按 key 中的日期段过滤。
    """
    client = get_redis_client()
    if not client:
        return
    wanted = {target_date.isoformat() for target_date in dates}
    if not wanted:
        return

    if len(wanted) == 1:
        pattern = build_cache_key(SLOT_CACHE_PREFIX, next(iter(wanted))) + ':*'
    else:
        pattern = build_cache_key(SLOT_CACHE_PREFIX, '*')

    try:
        keys = []
        async for key in client.scan_iter(pattern):
            # key 格式: slots:<date>:<service_uid>
            parts = key.split(':')
            if len(parts) >= 3 and parts[1] in wanted:
                keys.append(key)
        if keys:
            await client.delete(*keys)
    except RedisError as exc:
        logger.warning("清理时间槽缓存失败 %s (%s): %s", pattern, ", ".join(sorted(wanted)), exc)


async def clear_slots_for_date(target_date: date) -> None:
    await clear_slots_for_dates([target_date])


async def clear_slots_between(start_date: date, end_date: date) -> None:
    """清空 [start_date, end_date] 之间每一天的时间槽缓存 (请假跨多天时使用)。"""
    days = (end_date - start_date).days
    await clear_slots_for_dates(start_date + timedelta(days=offset) for offset in range(days + 1))
