from __future__ import annotations

from datetime import datetime, timezone

import structlog

from app.db.repo.ledger_repo import LedgerRepo
from app.db.session import SessionLocal
from app.economy.errors import BalanceConflictError, UserNotFoundError
from app.economy.ledger.service import LedgerService
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

RECONCILIATION_INTERVAL_SECONDS = 900.0


async def _repair_user(user_id: str, *, now_utc: datetime) -> int:
    async with SessionLocal.begin() as session:
        result = await LedgerService.reconcile_balance(session, user_id=user_id, now_utc=now_utc)
    return result.drift


async def run_balance_reconciliation_async(*, batch_size: int = 500) -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        drifted = await LedgerRepo.list_users_with_balance_drift(session, limit=batch_size)

    repaired = 0
    failed = 0
    total_drift = 0
    for user_id, cached, ledger_sum in drifted:
        logger.warning(
            "ledger_reconciliation_drift_detected",
            user_id=user_id,
            cached_balance=cached,
            ledger_sum=ledger_sum,
        )
        try:
            drift = await _repair_user(user_id, now_utc=now_utc)
        except (BalanceConflictError, UserNotFoundError):
            failed += 1
            logger.exception("ledger_reconciliation_repair_failed", user_id=user_id)
            continue
        repaired += 1
        total_drift += abs(drift)

    result = {
        "users_with_drift": len(drifted),
        "repaired": repaired,
        "failed": failed,
        "total_abs_drift": total_drift,
    }
    logger.info("ledger_reconciliation_finished", **result)
    return result


@celery_app.task(name="app.workers.tasks.ledger_reconciliation.run_balance_reconciliation")
def run_balance_reconciliation(batch_size: int = 500) -> dict[str, int]:
    return run_async_job(run_balance_reconciliation_async(batch_size=batch_size))


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "ledger-balance-reconciliation-every-15-minutes": {
            "task": "app.workers.tasks.ledger_reconciliation.run_balance_reconciliation",
            "schedule": RECONCILIATION_INTERVAL_SECONDS,
            "options": {"queue": "q_normal"},
        },
    }
)
