from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Query, Request

from app.db.session import SessionLocal
from app.economy.errors import EconomyError
from app.economy.ledger.service import LedgerService, clamp_history_limit
from app.economy.ledger.types import HISTORY_DEFAULT_LIMIT
from app.economy.purchases.service import CoinPurchaseService
from app.services.receipt_verification import get_receipt_verifier

from .economy_helpers import _raise_http_error, _resolve_user_id, _transaction_as_response
from .economy_models import (
    BalanceResponse,
    CoinHistoryResponse,
    EarnCoinsRequest,
    EarnCoinsResponse,
    VerifyPurchaseRequest,
    VerifyPurchaseResponse,
)

router = APIRouter(prefix="/api/coins", tags=["coins"])


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(request: Request) -> BalanceResponse:
    user_id = _resolve_user_id(request)
    try:
        async with SessionLocal.begin() as session:
            balance = await LedgerService.get_balance(session, user_id=user_id)
    except EconomyError as exc:
        _raise_http_error(exc)
    return BalanceResponse(user_id=user_id, balance=balance)


@router.get("/history", response_model=CoinHistoryResponse)
async def get_history(
    request: Request,
    limit: int = Query(default=HISTORY_DEFAULT_LIMIT),
) -> CoinHistoryResponse:
    user_id = _resolve_user_id(request)
    effective_limit = clamp_history_limit(limit)
    try:
        async with SessionLocal.begin() as session:
            entries = await LedgerService.get_history(session, user_id=user_id, limit=effective_limit)
            items = [_transaction_as_response(entry) for entry in entries]
    except EconomyError as exc:
        _raise_http_error(exc)
    return CoinHistoryResponse(user_id=user_id, limit=effective_limit, items=items)


@router.post("/earn", response_model=EarnCoinsResponse)
async def earn_coins(payload: EarnCoinsRequest, request: Request) -> EarnCoinsResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            entry = await LedgerService.earn(
                session,
                user_id=user_id,
                amount=payload.amount,
                reason=payload.reason,
                now_utc=now_utc,
            )
            transaction = _transaction_as_response(entry)
    except EconomyError as exc:
        _raise_http_error(exc)
    return EarnCoinsResponse(transaction=transaction, balance=transaction.balance_after)


@router.post("/verify-purchase", response_model=VerifyPurchaseResponse)
async def verify_purchase(payload: VerifyPurchaseRequest, request: Request) -> VerifyPurchaseResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        result = await CoinPurchaseService.verify_coin_purchase(
            SessionLocal,
            verifier=get_receipt_verifier(),
            user_id=user_id,
            product_id=payload.product_id,
            purchase_token=payload.purchase_token,
            platform=payload.platform,
            now_utc=now_utc,
        )
    except EconomyError as exc:
        _raise_http_error(exc)
    return VerifyPurchaseResponse(
        coins_added=result.coins_added,
        balance=result.balance,
        platform=result.platform,
        product_id=result.product_id,
        simulated=result.simulated,
        idempotent_replay=result.idempotent_replay,
    )
