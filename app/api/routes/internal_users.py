from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Path, Request

from app.db.session import SessionLocal
from app.economy.errors import EconomyError
from app.economy.ledger.service import LedgerService
from app.services.user_provisioning import UserProvisioningService

from .economy_helpers import MAX_USER_ID_LENGTH, _assert_internal_access, _raise_http_error
from .economy_models import ReconcileResponse, UpsertUserRequest, UserResponse

router = APIRouter(prefix="/internal", tags=["internal"])


@router.put("/users/{user_id}", response_model=UserResponse)
async def upsert_user(
    request: Request,
    user_id: str = Path(min_length=1, max_length=MAX_USER_ID_LENGTH),
    payload: UpsertUserRequest | None = None,
) -> UserResponse:
    _assert_internal_access(request)
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        result = await UserProvisioningService.ensure_user(
            session,
            user_id=user_id,
            display_name=payload.display_name if payload is not None else None,
            now_utc=now_utc,
        )
        response = UserResponse(
            id=result.user.id,
            display_name=result.user.display_name,
            coin_balance=result.user.coin_balance,
            is_premium=result.user.is_premium,
            premium_expires_at=result.user.premium_expires_at,
            created=result.created,
        )
    return response


@router.post("/ledger/reconcile/{user_id}", response_model=ReconcileResponse)
async def reconcile_user_balance(
    request: Request,
    user_id: str = Path(min_length=1, max_length=MAX_USER_ID_LENGTH),
) -> ReconcileResponse:
    _assert_internal_access(request)
    try:
        async with SessionLocal.begin() as session:
            result = await LedgerService.reconcile_balance(session, user_id=user_id)
    except EconomyError as exc:
        _raise_http_error(exc)
    return ReconcileResponse(
        user_id=result.user_id,
        cached=result.cached,
        ledger_sum=result.ledger_sum,
        drift=result.drift,
    )
