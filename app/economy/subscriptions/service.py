from __future__ import annotations

import math
from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.subscriptions import Subscription
from app.db.repo.subscriptions_repo import SubscriptionsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.errors import NoActiveSubscriptionError, UserNotFoundError, VerificationFailedError
from app.economy.subscriptions.plans import SubscriptionPlan, compute_expires_at, resolve_plan
from app.economy.subscriptions.types import (
    SubscriptionActivationResult,
    SubscriptionStatus,
    SubscriptionStatusResult,
    SubscriptionView,
)
from app.services.receipt_verification import (
    Platform,
    ReceiptKind,
    ReceiptVerifier,
    VerificationResult,
    parse_platform,
)

logger = structlog.get_logger(__name__)

_ENTITLING_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.CANCELED.value}


def effective_status(subscription: Subscription, *, now_utc: datetime) -> SubscriptionStatus:
    if now_utc >= subscription.expires_at:
        return SubscriptionStatus.EXPIRED
    return SubscriptionStatus(subscription.status)


def is_entitled(subscription: Subscription | None, *, now_utc: datetime) -> bool:
    if subscription is None:
        return False
    return subscription.status in _ENTITLING_STATUSES and now_utc < subscription.expires_at


def _is_live_replay(
    subscription: Subscription,
    *,
    platform: Platform,
    purchase_token: str,
    now_utc: datetime,
) -> bool:
    return (
        subscription.purchase_token == purchase_token
        and subscription.platform == platform.value
        and subscription.status == SubscriptionStatus.ACTIVE.value
        and now_utc < subscription.expires_at
    )


def _days_remaining(expires_at: datetime, *, now_utc: datetime) -> int:
    seconds = (expires_at - now_utc).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)


def _to_view(subscription: Subscription, *, now_utc: datetime) -> SubscriptionView:
    return SubscriptionView(
        id=subscription.id,
        plan=subscription.plan,
        platform=subscription.platform,
        product_id=subscription.product_id,
        status=effective_status(subscription, now_utc=now_utc),
        expires_at=subscription.expires_at,
        renews_at=subscription.renews_at,
        purchased_at=subscription.purchased_at,
        cancelled_at=subscription.cancelled_at,
    )


class SubscriptionService:
    @staticmethod
    async def is_premium_active(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime,
    ) -> bool:
        subscription = await SubscriptionsRepo.get_by_user(session, user_id)
        return is_entitled(subscription, now_utc=now_utc)

    @staticmethod
    def _replay_result(subscription: Subscription, *, now_utc: datetime) -> SubscriptionActivationResult:
        return SubscriptionActivationResult(
            subscription=_to_view(subscription, now_utc=now_utc),
            entitled=True,
            expires_at=subscription.expires_at,
            days_remaining=_days_remaining(subscription.expires_at, now_utc=now_utc),
            idempotent_replay=True,
        )

    @staticmethod
    async def _check_token_owner(
        session: AsyncSession,
        *,
        user_id: str,
        platform: Platform,
        purchase_token: str,
    ) -> None:
        token_owner = await SubscriptionsRepo.get_by_purchase_token(
            session,
            platform=platform.value,
            purchase_token=purchase_token,
        )
        if token_owner is not None and token_owner.user_id != user_id:
            raise VerificationFailedError("receipt_already_used")

    @staticmethod
    async def _apply_verified(
        session: AsyncSession,
        *,
        verification: VerificationResult,
        user_id: str,
        plan: SubscriptionPlan,
        platform: Platform,
        product_id: str,
        purchase_token: str,
        now_utc: datetime,
    ) -> SubscriptionActivationResult:
        # The user row lock orders first activations that have no subscription row to lock yet.
        if await UsersRepo.get_by_id_for_update(session, user_id) is None:
            raise UserNotFoundError
        await SubscriptionService._check_token_owner(
            session,
            user_id=user_id,
            platform=platform,
            purchase_token=purchase_token,
        )

        subscription = await SubscriptionsRepo.get_by_user_for_update(session, user_id)
        if subscription is not None and _is_live_replay(
            subscription,
            platform=platform,
            purchase_token=purchase_token,
            now_utc=now_utc,
        ):
            return SubscriptionService._replay_result(subscription, now_utc=now_utc)

        expires_at = compute_expires_at(plan, now_utc=now_utc)
        if subscription is None:
            subscription = await SubscriptionsRepo.create(
                session,
                subscription=Subscription(
                    user_id=user_id,
                    plan=plan.value,
                    platform=platform.value,
                    product_id=product_id,
                    purchase_token=purchase_token,
                    status=SubscriptionStatus.ACTIVE.value,
                    expires_at=expires_at,
                    renews_at=expires_at,
                    purchased_at=now_utc,
                    cancelled_at=None,
                    updated_at=now_utc,
                ),
            )
        else:
            subscription.plan = plan.value
            subscription.platform = platform.value
            subscription.product_id = product_id
            subscription.purchase_token = purchase_token
            subscription.status = SubscriptionStatus.ACTIVE.value
            subscription.expires_at = expires_at
            subscription.renews_at = expires_at
            subscription.purchased_at = now_utc
            subscription.cancelled_at = None
            subscription.updated_at = now_utc
            await session.flush()

        await UsersRepo.set_premium_projection(
            session,
            user_id=user_id,
            is_premium=True,
            premium_expires_at=expires_at,
            now_utc=now_utc,
        )
        logger.info(
            "subscription_activated",
            user_id=user_id,
            plan=plan.value,
            platform=platform.value,
            expires_at=expires_at.isoformat(),
            order_ref=verification.order_ref,
            simulated=verification.simulated,
        )
        return SubscriptionActivationResult(
            subscription=_to_view(subscription, now_utc=now_utc),
            entitled=True,
            expires_at=expires_at,
            days_remaining=_days_remaining(expires_at, now_utc=now_utc),
            idempotent_replay=False,
        )

    @staticmethod
    async def activate(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        verifier: ReceiptVerifier,
        user_id: str,
        platform: Platform | str,
        product_id: str,
        purchase_token: str,
        plan: SubscriptionPlan | str | None = None,
        receipt_data: str | None = None,
        now_utc: datetime | None = None,
    ) -> SubscriptionActivationResult:
        """Verifies a subscription receipt and starts or renews the user's term.

        The store call runs between two short units, outside any transaction.
        Re-sending the token of the active subscription is a replay; a canceled
        one is verified again and resumes renewal.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        resolved_plan = SubscriptionPlan(plan) if plan is not None else resolve_plan(product_id)
        resolved_platform = parse_platform(platform)

        async with session_factory.begin() as session:
            if await UsersRepo.get_by_id(session, user_id) is None:
                raise UserNotFoundError
            existing = await SubscriptionsRepo.get_by_user(session, user_id)
            if existing is not None and _is_live_replay(
                existing,
                platform=resolved_platform,
                purchase_token=purchase_token,
                now_utc=now_utc,
            ):
                return SubscriptionService._replay_result(existing, now_utc=now_utc)
            await SubscriptionService._check_token_owner(
                session,
                user_id=user_id,
                platform=resolved_platform,
                purchase_token=purchase_token,
            )

        verification = await verifier.verify(
            platform=resolved_platform,
            product_ref=product_id,
            token=receipt_data or purchase_token,
            kind=ReceiptKind.SUBSCRIPTION,
        )
        if not verification.valid:
            logger.info(
                "subscription_verification_rejected",
                user_id=user_id,
                platform=resolved_platform.value,
                product_id=product_id,
                reason=verification.reason,
            )
            raise VerificationFailedError(verification.reason)

        async with session_factory.begin() as session:
            return await SubscriptionService._apply_verified(
                session,
                verification=verification,
                user_id=user_id,
                plan=resolved_plan,
                platform=resolved_platform,
                product_id=product_id,
                purchase_token=purchase_token,
                now_utc=now_utc,
            )

    @staticmethod
    async def current_status(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime | None = None,
    ) -> SubscriptionStatusResult:
        now_utc = now_utc or datetime.now(timezone.utc)
        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise UserNotFoundError

        subscription = await SubscriptionsRepo.get_by_user(session, user_id)
        entitled = is_entitled(subscription, now_utc=now_utc)
        expires_at = subscription.expires_at if entitled and subscription is not None else None
        if user.is_premium != entitled or user.premium_expires_at != expires_at:
            await UsersRepo.set_premium_projection(
                session,
                user_id=user_id,
                is_premium=entitled,
                premium_expires_at=expires_at,
                now_utc=now_utc,
            )
            logger.info("premium_projection_refreshed", user_id=user_id, is_premium=entitled)

        return SubscriptionStatusResult(
            subscribed=entitled,
            is_premium=entitled,
            subscription=_to_view(subscription, now_utc=now_utc) if subscription is not None else None,
        )

    @staticmethod
    async def cancel(
        session: AsyncSession,
        *,
        user_id: str,
        now_utc: datetime | None = None,
    ) -> SubscriptionView:
        now_utc = now_utc or datetime.now(timezone.utc)
        if await UsersRepo.get_by_id(session, user_id) is None:
            raise UserNotFoundError

        subscription = await SubscriptionsRepo.get_by_user_for_update(session, user_id)
        if (
            subscription is None
            or subscription.status != SubscriptionStatus.ACTIVE.value
            or now_utc >= subscription.expires_at
        ):
            raise NoActiveSubscriptionError

        subscription.status = SubscriptionStatus.CANCELED.value
        subscription.cancelled_at = now_utc
        subscription.renews_at = None
        subscription.updated_at = now_utc
        await session.flush()

        logger.info(
            "subscription_canceled",
            user_id=user_id,
            expires_at=subscription.expires_at.isoformat(),
        )
        return _to_view(subscription, now_utc=now_utc)
