from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])

CELERY_PING_TIMEOUT_SECONDS = 1.0


def _check_result(error: str | None = None, **extra: Any) -> dict[str, Any]:
    if error is not None:
        return {"status": "failed", "error": error}
    return {"status": "ok", **extra}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return _check_result(str(exc))
    return _check_result()


async def _check_redis() -> dict[str, Any]:
    redis_client = Redis.from_url(get_settings().redis_url)
    try:
        pong = await redis_client.ping()
    except Exception as exc:
        return _check_result(str(exc))
    finally:
        await redis_client.aclose()
    if pong is not True:
        return _check_result(f"unexpected redis ping response: {pong!r}")
    return _check_result()


def _ping_celery_workers() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS)
        replies = inspector.ping() if inspector is not None else None
    except Exception as exc:
        return _check_result(str(exc))
    if not replies:
        return _check_result("no celery workers responded to ping")
    return _check_result(workers=len(replies))


async def _run_checks(*, include_workers: bool) -> dict[str, dict[str, Any]]:
    names = ["database", "redis"]
    checks = [_check_database(), _check_redis()]
    if include_workers:
        names.append("celery")
        checks.append(asyncio.to_thread(_ping_celery_workers))
    results = await asyncio.gather(*checks)
    return dict(zip(names, results))


def _report(checks: dict[str, dict[str, Any]], *, ok_label: str, failed_label: str) -> JSONResponse:
    passed = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if passed else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if passed else failed_label, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    checks = await _run_checks(include_workers=False)
    return _report(checks, ok_label="ok", failed_label="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    checks = await _run_checks(include_workers=True)
    return _report(checks, ok_label="ready", failed_label="not_ready")
