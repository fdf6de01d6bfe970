import logging
from typing import Any
from uuid import UUID

from arq import cron

from carrier_ledger.core.config import settings
from carrier_ledger.core.database import SessionLocal
from carrier_ledger.services.movement_repair_service import (
    HEALTH_CRITICAL,
    HEALTH_HEALTHY,
    MovementRepairService,
)
from carrier_ledger.tasks import redis_settings

logger = logging.getLogger(__name__)


async def backfill_fix_movements_task(
    ctx: dict[str, Any],
    store_id: str | None = None,
    dry_run: bool | None = None,
) -> int:
    """Background task: detect and repair inconsistent carrier movements.

    Runs daily. Dry run unless ``dry_run=False`` is passed or
    BACKFILL_CRON_DRY_RUN is disabled. Returns the number of orders affected.
    """
    if dry_run is None:
        dry_run = settings.BACKFILL_CRON_DRY_RUN
    db = SessionLocal()
    try:
        service = MovementRepairService(db)
        result = service.backfill_fix_movements(
            store_id=UUID(store_id) if store_id else None,
            dry_run=dry_run,
        )
        if result.orders_affected:
            logger.info(
                "Movement backfill touched %d orders (dry_run=%s)",
                len(result.orders_affected),
                dry_run,
            )
        return len(result.orders_affected)
    except Exception:
        logger.exception("Movement backfill failed")
        raise
    finally:
        db.close()


async def movement_health_check_task(ctx: dict[str, Any], store_id: str | None = None) -> int:
    """Background task: log carriers whose movements look inconsistent.

    Runs hourly over every store, or on demand for one. Returns the number
    of unhealthy carriers.
    """
    db = SessionLocal()
    try:
        report = MovementRepairService(db).get_movement_health_report(
            UUID(store_id) if store_id else None
        )
        unhealthy = [entry for entry in report if entry.health_status != HEALTH_HEALTHY]
        for entry in unhealthy:
            log = logger.error if entry.health_status == HEALTH_CRITICAL else logger.warning
            log(
                "Carrier %s (%s) movement health %s: %d incorrect COD, %d missing fees",
                entry.carrier_name,
                entry.carrier_id,
                entry.health_status,
                entry.incorrect_cod_movements,
                entry.missing_fee_movements,
            )
        return len(unhealthy)
    finally:
        db.close()


def _cron_jobs() -> list[Any]:
    jobs = [cron(movement_health_check_task, minute={0})]  # hourly
    if settings.BACKFILL_CRON_ENABLED:
        jobs.append(cron(backfill_fix_movements_task, hour=3, minute=0))  # daily at 03:00
    return jobs


class WorkerSettings:
    functions = [
        backfill_fix_movements_task,
        movement_health_check_task,
    ]
    cron_jobs = _cron_jobs()
    redis_settings = redis_settings
