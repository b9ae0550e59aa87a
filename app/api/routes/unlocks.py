from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Path, Request

from app.db.session import SessionLocal
from app.economy.errors import EconomyError
from app.economy.unlocks.service import UnlockService
from app.economy.unlocks.types import UnlockMethod, UnlockResult

from .economy_helpers import _raise_http_error, _resolve_user_id
from .economy_models import (
    UnlockedCheckResponse,
    UnlockedEpisodeResponse,
    UnlockedListResponse,
    UnlockRequest,
    UnlockResponse,
)

router = APIRouter(prefix="/api", tags=["unlocks"])

MAX_EPISODE_ID_LENGTH = 64


def _as_response(result: UnlockResult) -> UnlockResponse:
    return UnlockResponse(
        episode_id=result.episode_id,
        unlock_method=result.unlock_method.value,
        coins_deducted=result.coins_deducted,
        balance=result.balance,
        unlocked_at=result.unlocked_at,
    )


async def _unlock(
    request: Request,
    *,
    episode_id: str,
    requested_method: UnlockMethod | None,
) -> UnlockResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await UnlockService.unlock(
                session,
                user_id=user_id,
                episode_id=episode_id,
                requested_method=requested_method,
                now_utc=now_utc,
            )
    except EconomyError as exc:
        _raise_http_error(exc)
    return _as_response(result)


@router.post("/unlock/{episode_id}", response_model=UnlockResponse)
async def unlock_episode(
    request: Request,
    episode_id: str = Path(min_length=1, max_length=MAX_EPISODE_ID_LENGTH),
    payload: UnlockRequest | None = None,
) -> UnlockResponse:
    requested_method = UnlockMethod(payload.method) if payload is not None and payload.method else None
    return await _unlock(request, episode_id=episode_id, requested_method=requested_method)


@router.post("/episodes/{episode_id}/unlock-with-coins", response_model=UnlockResponse)
async def unlock_episode_with_coins(
    request: Request,
    episode_id: str = Path(min_length=1, max_length=MAX_EPISODE_ID_LENGTH),
) -> UnlockResponse:
    return await _unlock(request, episode_id=episode_id, requested_method=UnlockMethod.COINS)


@router.get("/unlocked", response_model=UnlockedListResponse)
async def list_unlocked(request: Request) -> UnlockedListResponse:
    user_id = _resolve_user_id(request)
    try:
        async with SessionLocal.begin() as session:
            grants = await UnlockService.list_unlocked(session, user_id=user_id)
            items = [
                UnlockedEpisodeResponse(
                    episode_id=grant.episode_id,
                    unlock_method=grant.unlock_method,
                    unlocked_at=grant.unlocked_at,
                )
                for grant in grants
            ]
    except EconomyError as exc:
        _raise_http_error(exc)
    return UnlockedListResponse(items=items)


@router.get("/unlocked/{episode_id}", response_model=UnlockedCheckResponse)
async def check_unlocked(
    request: Request,
    episode_id: str = Path(min_length=1, max_length=MAX_EPISODE_ID_LENGTH),
) -> UnlockedCheckResponse:
    user_id = _resolve_user_id(request)
    try:
        async with SessionLocal.begin() as session:
            unlocked = await UnlockService.is_unlocked(session, user_id=user_id, episode_id=episode_id)
    except EconomyError as exc:
        _raise_http_error(exc)
    return UnlockedCheckResponse(episode_id=episode_id, unlocked=unlocked)
