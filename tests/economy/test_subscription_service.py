from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.db.session import SessionLocal
from app.economy.errors import (
    NoActiveSubscriptionError,
    UnknownPlatformError,
    UnknownProductError,
    UserNotFoundError,
    VerificationFailedError,
)
from app.economy.ledger.service import LedgerService
from app.economy.subscriptions.service import SubscriptionService
from app.economy.subscriptions.types import SubscriptionStatus
from app.services.receipt_verification import Platform, ReceiptKind
from tests.economy.ledger_fixtures import (
    NOW_UTC,
    StubVerifier,
    create_subscription,
    create_user,
    list_transactions,
    load_subscription,
    load_user,
)

MONTHLY = "com.premiumdramastream.premium.monthly"


async def _activate(verifier: StubVerifier, *, user_id: str = "user-1", now_utc=NOW_UTC, **overrides):
    params = {"platform": "android", "product_id": MONTHLY, "purchase_token": "sub-token-1"}
    params.update(overrides)
    return await SubscriptionService.activate(
        SessionLocal,
        verifier=verifier,
        user_id=user_id,
        now_utc=now_utc,
        **params,
    )


async def _status(now_utc=NOW_UTC, user_id: str = "user-1"):
    async with SessionLocal.begin() as session:
        return await SubscriptionService.current_status(session, user_id=user_id, now_utc=now_utc)


@pytest.mark.asyncio
async def test_activate_rejected_receipt_leaves_no_trace(ledger_db) -> None:
    await create_user()
    verifier = StubVerifier(valid=False, reason="canceled")

    with pytest.raises(VerificationFailedError) as exc_info:
        await _activate(verifier, plan="monthly")

    assert exc_info.value.reason == "canceled"
    assert await load_subscription() is None
    assert (await load_user()).is_premium is False
    assert await list_transactions() == []


@pytest.mark.asyncio
async def test_activate_monthly_projects_premium(ledger_db) -> None:
    await create_user()
    verifier = StubVerifier()
    now_utc = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)

    result = await _activate(verifier, now_utc=now_utc)

    expected_expiry = datetime(2026, 2, 28, 9, 0, tzinfo=timezone.utc)
    assert result.entitled is True
    assert result.idempotent_replay is False
    assert result.expires_at == expected_expiry
    assert result.days_remaining == 28
    assert result.subscription.status == SubscriptionStatus.ACTIVE
    assert verifier.calls == [
        {
            "platform": Platform.ANDROID,
            "product_ref": MONTHLY,
            "token": "sub-token-1",
            "kind": ReceiptKind.SUBSCRIPTION,
        }
    ]

    user = await load_user()
    assert user.is_premium is True
    assert user.premium_expires_at == expected_expiry
    stored = await load_subscription()
    assert stored is not None
    assert (stored.plan, stored.status, stored.renews_at) == ("monthly", "active", expected_expiry)


@pytest.mark.asyncio
async def test_activate_same_token_is_idempotent(ledger_db) -> None:
    await create_user()
    verifier = StubVerifier()
    first = await _activate(verifier)

    replay = await _activate(verifier, now_utc=NOW_UTC + timedelta(hours=1))

    assert replay.idempotent_replay is True
    assert replay.expires_at == first.expires_at
    assert len(verifier.calls) == 1


@pytest.mark.asyncio
async def test_renewal_updates_existing_row(ledger_db) -> None:
    await create_user()
    await create_subscription(status="expired", expires_at=NOW_UTC - timedelta(days=1), purchase_token="old-token")
    before = await load_subscription()

    result = await _activate(StubVerifier(), product_id="com.premiumdramastream.premium.weekly", purchase_token="new")

    after = await load_subscription()
    assert after is not None and before is not None
    assert after.id == before.id
    assert (after.plan, after.status, after.purchase_token) == ("weekly", "active", "new")
    assert result.expires_at == NOW_UTC + timedelta(days=7)


@pytest.mark.asyncio
async def test_activate_rejects_token_of_another_user(ledger_db) -> None:
    await create_user("user-1")
    await create_user("user-2")
    await _activate(StubVerifier(), user_id="user-1")

    verifier = StubVerifier()
    with pytest.raises(VerificationFailedError) as exc_info:
        await _activate(verifier, user_id="user-2")

    assert exc_info.value.reason == "receipt_already_used"
    assert verifier.calls == []


@pytest.mark.asyncio
async def test_activate_validates_inputs_before_verification(ledger_db) -> None:
    await create_user()
    verifier = StubVerifier()

    with pytest.raises(UnknownProductError):
        await _activate(verifier, product_id="com.premiumdramastream.coins.100")
    with pytest.raises(UnknownPlatformError):
        await _activate(verifier, platform="windows")
    with pytest.raises(UserNotFoundError):
        await _activate(verifier, user_id="ghost")

    assert verifier.calls == []


@pytest.mark.asyncio
async def test_status_applies_lazy_expiry(ledger_db) -> None:
    await create_user()
    await _activate(StubVerifier())

    stale = await _status(NOW_UTC + timedelta(days=45))

    assert stale.subscribed is False
    assert stale.is_premium is False
    assert stale.subscription is not None
    assert stale.subscription.status == SubscriptionStatus.EXPIRED
    stored = await load_subscription()
    assert stored is not None and stored.status == "active"
    user = await load_user()
    assert user.is_premium is False
    assert user.premium_expires_at is None


@pytest.mark.asyncio
async def test_status_without_subscription(ledger_db) -> None:
    await create_user()

    result = await _status()

    assert (result.subscribed, result.is_premium, result.subscription) == (False, False, None)
    with pytest.raises(UserNotFoundError):
        await _status(user_id="ghost")


@pytest.mark.asyncio
async def test_cancel_keeps_access_until_expiry(ledger_db) -> None:
    await create_user()
    activation = await _activate(StubVerifier())

    async with SessionLocal.begin() as session:
        view = await SubscriptionService.cancel(session, user_id="user-1", now_utc=NOW_UTC + timedelta(days=1))

    assert view.status == SubscriptionStatus.CANCELED
    assert view.expires_at == activation.expires_at
    assert view.renews_at is None
    assert view.cancelled_at == NOW_UTC + timedelta(days=1)

    during_term = await _status(NOW_UTC + timedelta(days=2))
    assert during_term.subscribed is True
    assert during_term.subscription is not None
    assert during_term.subscription.status == SubscriptionStatus.CANCELED

    async with SessionLocal() as session:
        assert await SubscriptionService.is_premium_active(
            session, user_id="user-1", now_utc=NOW_UTC + timedelta(days=2)
        ) is True
        assert await SubscriptionService.is_premium_active(
            session, user_id="user-1", now_utc=activation.expires_at
        ) is False


@pytest.mark.asyncio
async def test_cancel_requires_active_subscription(ledger_db) -> None:
    await create_user()

    with pytest.raises(NoActiveSubscriptionError):
        async with SessionLocal.begin() as session:
            await SubscriptionService.cancel(session, user_id="user-1", now_utc=NOW_UTC)

    await create_subscription(expires_at=NOW_UTC - timedelta(minutes=1))
    with pytest.raises(NoActiveSubscriptionError):
        async with SessionLocal.begin() as session:
            await SubscriptionService.cancel(session, user_id="user-1", now_utc=NOW_UTC)


@pytest.mark.asyncio
async def test_resubscribe_after_cancel_verifies_again(ledger_db) -> None:
    await create_user()
    verifier = StubVerifier()
    await _activate(verifier)
    async with SessionLocal.begin() as session:
        await SubscriptionService.cancel(session, user_id="user-1", now_utc=NOW_UTC + timedelta(days=1))

    resumed = await _activate(verifier, now_utc=NOW_UTC + timedelta(days=2))

    assert resumed.idempotent_replay is False
    assert resumed.subscription.status == SubscriptionStatus.ACTIVE
    assert resumed.expires_at == datetime(2026, 4, 16, 12, 0, tzinfo=timezone.utc)
    assert len(verifier.calls) == 2
    stored = await load_subscription()
    assert stored is not None
    assert (stored.status, stored.cancelled_at, stored.renews_at) == ("active", None, resumed.expires_at)


@pytest.mark.asyncio
async def test_other_users_write_while_subscription_is_verified(ledger_db) -> None:
    await create_user("user-1")
    await create_user("user-2")

    async def earn_for_other_user() -> None:
        async with SessionLocal.begin() as session:
            await LedgerService.earn(session, user_id="user-2", amount=4, now_utc=NOW_UTC)

    async def slow_store() -> None:
        await asyncio.wait_for(earn_for_other_user(), timeout=2)

    result = await _activate(StubVerifier(on_verify=slow_store), user_id="user-1")

    assert result.entitled is True
    assert (await load_user("user-2")).coin_balance == 4


@pytest.mark.asyncio
async def test_row_created_during_verification_is_updated(ledger_db) -> None:
    await create_user()

    async def concurrent_first_activation() -> None:
        await _activate(StubVerifier(), purchase_token="sub-token-1")

    result = await _activate(StubVerifier(on_verify=concurrent_first_activation), purchase_token="sub-token-2")

    assert result.idempotent_replay is False
    stored = await load_subscription()
    assert stored is not None
    assert (stored.purchase_token, stored.status) == ("sub-token-2", "active")


@pytest.mark.asyncio
async def test_token_claimed_during_verification_is_rejected(ledger_db) -> None:
    await create_user("user-1")
    await create_user("user-2")

    async def other_user_claims_token() -> None:
        await _activate(StubVerifier(), user_id="user-2")

    with pytest.raises(VerificationFailedError) as exc_info:
        await _activate(StubVerifier(on_verify=other_user_claims_token), user_id="user-1")

    assert exc_info.value.reason == "receipt_already_used"
    assert (await load_user("user-1")).is_premium is False
    assert (await load_subscription("user-2")) is not None
