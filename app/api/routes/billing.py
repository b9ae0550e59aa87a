from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from app.db.session import SessionLocal
from app.economy.errors import EconomyError
from app.economy.subscriptions.plans import list_plans
from app.economy.subscriptions.service import SubscriptionService
from app.services.receipt_verification import get_receipt_verifier

from .economy_helpers import _raise_http_error, _resolve_user_id, _subscription_as_response
from .economy_models import (
    BillingCancelResponse,
    BillingStatusResponse,
    BillingVerifyRequest,
    BillingVerifyResponse,
    PlanResponse,
    PlansResponse,
)

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/plans", response_model=PlansResponse)
async def get_plans() -> PlansResponse:
    return PlansResponse(
        plans=[
            PlanResponse(
                id=spec.plan.value,
                name=spec.name,
                price=spec.price,
                product_id=spec.product_id,
                period=spec.period,
                benefits=list(spec.benefits),
            )
            for spec in list_plans()
        ]
    )


@router.get("/status", response_model=BillingStatusResponse)
async def get_status(request: Request) -> BillingStatusResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            result = await SubscriptionService.current_status(session, user_id=user_id, now_utc=now_utc)
    except EconomyError as exc:
        _raise_http_error(exc)
    return BillingStatusResponse(
        subscribed=result.subscribed,
        is_premium=result.is_premium,
        subscription=(
            _subscription_as_response(result.subscription) if result.subscription is not None else None
        ),
    )


@router.post("/verify", response_model=BillingVerifyResponse)
async def verify_subscription(payload: BillingVerifyRequest, request: Request) -> BillingVerifyResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        result = await SubscriptionService.activate(
            SessionLocal,
            verifier=get_receipt_verifier(),
            user_id=user_id,
            platform=payload.platform,
            product_id=payload.product_id,
            purchase_token=payload.purchase_token,
            plan=payload.plan,
            receipt_data=payload.receipt_data,
            now_utc=now_utc,
        )
    except EconomyError as exc:
        _raise_http_error(exc)
    return BillingVerifyResponse(
        entitled=result.entitled,
        expires_at=result.expires_at,
        days_remaining=result.days_remaining,
        idempotent_replay=result.idempotent_replay,
        subscription=_subscription_as_response(result.subscription),
    )


@router.post("/cancel", response_model=BillingCancelResponse)
async def cancel_subscription(request: Request) -> BillingCancelResponse:
    user_id = _resolve_user_id(request)
    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            view = await SubscriptionService.cancel(session, user_id=user_id, now_utc=now_utc)
    except EconomyError as exc:
        _raise_http_error(exc)
    return BillingCancelResponse(
        subscription=_subscription_as_response(view),
        message="Subscription canceled. Premium benefits remain until the expiry date.",
    )
