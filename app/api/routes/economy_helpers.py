from __future__ import annotations

from typing import Any, NoReturn

import structlog
from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.db.models.coin_transactions import CoinTransaction
from app.economy.errors import (
    AlreadyUnlockedError,
    DailyLimitExceededError,
    EconomyError,
    InsufficientCoinsError,
    InvalidAmountError,
    NoActiveSubscriptionError,
    PremiumIneligibleError,
    UnknownPlatformError,
    UnknownProductError,
    UserNotFoundError,
    VerificationFailedError,
)
from app.economy.subscriptions.types import SubscriptionView
from app.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

from .economy_models import CoinTransactionResponse, SubscriptionResponse

logger = structlog.get_logger(__name__)

USER_ID_HEADER = "X-User-Id"
MAX_USER_ID_LENGTH = 64

_ERROR_STATUS: tuple[tuple[type[EconomyError], int, str], ...] = (
    (UserNotFoundError, 404, "E_USER_NOT_FOUND"),
    (AlreadyUnlockedError, 409, "E_ALREADY_UNLOCKED"),
    (InsufficientCoinsError, 402, "E_INSUFFICIENT_COINS"),
    (DailyLimitExceededError, 429, "E_DAILY_AD_LIMIT"),
    (PremiumIneligibleError, 403, "E_PREMIUM_INELIGIBLE"),
    (VerificationFailedError, 400, "E_VERIFICATION_FAILED"),
    (NoActiveSubscriptionError, 404, "E_NO_ACTIVE_SUBSCRIPTION"),
    (UnknownProductError, 400, "E_UNKNOWN_PRODUCT"),
    (UnknownPlatformError, 400, "E_UNKNOWN_PLATFORM"),
    (InvalidAmountError, 422, "E_INVALID_AMOUNT"),
)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(
        request,
        trusted_proxies=settings.internal_api_trusted_proxies,
    )

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_api_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(
        request,
        expected_token=settings.internal_api_token,
    ):
        logger.warning(
            "internal_api_auth_failed",
            reason="invalid_credentials",
            client_ip=client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _resolve_user_id(request: Request) -> str:
    _assert_internal_access(request)
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHENTICATED"})
    return user_id


def _error_fields(exc: EconomyError) -> dict[str, Any]:
    if isinstance(exc, InsufficientCoinsError):
        return {"required": exc.required, "current": exc.current, "shortfall": exc.shortfall}
    if isinstance(exc, DailyLimitExceededError):
        return {"limit": exc.limit, "watched": exc.watched}
    if isinstance(exc, VerificationFailedError):
        return {"reason": exc.reason}
    return {}


def _raise_http_error(exc: EconomyError) -> NoReturn:
    for error_type, status_code, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            raise HTTPException(
                status_code=status_code,
                detail={"code": code, **_error_fields(exc)},
            ) from exc
    raise exc


def _transaction_as_response(entry: CoinTransaction) -> CoinTransactionResponse:
    return CoinTransactionResponse(
        id=entry.id,
        amount=entry.amount,
        type=entry.tx_type,
        reason=entry.reason,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        created_at=entry.created_at,
    )


def _subscription_as_response(view: SubscriptionView) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=view.id,
        plan=view.plan,
        platform=view.platform,
        product_id=view.product_id,
        status=view.status.value,
        expires_at=view.expires_at,
        renews_at=view.renews_at,
        purchased_at=view.purchased_at,
        cancelled_at=view.cancelled_at,
    )
