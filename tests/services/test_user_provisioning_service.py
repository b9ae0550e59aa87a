from __future__ import annotations

from datetime import timedelta

import pytest

from app.db.session import SessionLocal
from app.services.user_provisioning import UserProvisioningService
from tests.economy.ledger_fixtures import NOW_UTC, load_user


async def _ensure(user_id: str = "user-1", display_name: str | None = None, now_utc=NOW_UTC):
    async with SessionLocal.begin() as session:
        return await UserProvisioningService.ensure_user(
            session,
            user_id=user_id,
            display_name=display_name,
            now_utc=now_utc,
        )


@pytest.mark.asyncio
async def test_ensure_user_creates_with_zero_balance(ledger_db) -> None:
    provisioned = await _ensure(display_name="Mia")

    assert provisioned.created is True
    user = await load_user()
    assert user.display_name == "Mia"
    assert user.coin_balance == 0
    assert user.is_premium is False
    assert user.created_at == NOW_UTC


@pytest.mark.asyncio
async def test_ensure_user_is_idempotent_and_renames(ledger_db) -> None:
    await _ensure(display_name="Mia")

    repeated = await _ensure(display_name=None, now_utc=NOW_UTC + timedelta(minutes=1))
    assert repeated.created is False
    assert (await load_user()).display_name == "Mia"

    renamed = await _ensure(display_name="Mia R.", now_utc=NOW_UTC + timedelta(minutes=2))
    assert renamed.created is False
    user = await load_user()
    assert user.display_name == "Mia R."
    assert user.updated_at == NOW_UTC + timedelta(minutes=2)
    assert user.created_at == NOW_UTC


@pytest.mark.asyncio
async def test_ensure_user_recovers_from_concurrent_insert(ledger_db, monkeypatch) -> None:
    from app.services import user_provisioning

    await _ensure()
    lookups: list[str] = []
    real_get_by_id = user_provisioning.UsersRepo.get_by_id

    async def _miss_first_lookup(session, user_id: str):
        lookups.append(user_id)
        if len(lookups) == 1:
            return None
        return await real_get_by_id(session, user_id)

    monkeypatch.setattr(user_provisioning.UsersRepo, "get_by_id", _miss_first_lookup)

    provisioned = await _ensure(display_name="Late")

    assert provisioned.created is False
    assert provisioned.user.id == "user-1"
    assert lookups == ["user-1", "user-1"]
    assert (await load_user()).display_name == "Late"
