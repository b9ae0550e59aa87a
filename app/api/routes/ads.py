from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.db.session import SessionLocal
from app.economy.errors import EconomyError
from app.economy.unlocks.service import UnlockService

from .economy_helpers import _raise_http_error, _resolve_user_id
from .economy_models import AdWatchResponse

router = APIRouter(prefix="/api/ads", tags=["ads"])


@router.post("/watch", response_model=AdWatchResponse)
async def watch_ad(request: Request) -> AdWatchResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await UnlockService.record_ad_view(session, user_id=user_id, now_utc=now_utc)
    except EconomyError as exc:
        _raise_http_error(exc)
    return AdWatchResponse(
        coins_earned=result.coins_earned,
        ads_watched_today=result.ads_watched_today,
        max_ads_per_day=result.max_ads_per_day,
        balance=result.balance,
    )
