from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from carrier_ledger.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """Enqueue a task to the arq worker and return its Job."""
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_movement_backfill(store_id: str | None = None, dry_run: bool = True) -> Job:
    """Enqueue a movement backfill, optionally limited to one store."""
    return await enqueue_task("backfill_fix_movements_task", store_id=store_id, dry_run=dry_run)


async def enqueue_movement_health_check(store_id: str | None = None) -> Job:
    return await enqueue_task("movement_health_check_task", store_id=store_id)
