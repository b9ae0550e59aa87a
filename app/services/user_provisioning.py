from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User
from app.db.repo.users_repo import UsersRepo

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class ProvisionedUser:
    user: User
    created: bool


class UserProvisioningService:
    @staticmethod
    async def ensure_user(
        session: AsyncSession,
        *,
        user_id: str,
        display_name: str | None = None,
        now_utc: datetime | None = None,
    ) -> ProvisionedUser:
        now_utc = now_utc or datetime.now(timezone.utc)

        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            try:
                async with session.begin_nested():
                    user = await UsersRepo.create(
                        session,
                        user_id=user_id,
                        display_name=display_name,
                        now_utc=now_utc,
                    )
            except IntegrityError:
                user = await UsersRepo.get_by_id(session, user_id)
                if user is None:
                    raise
            else:
                logger.info("user_provisioned", user_id=user_id)
                return ProvisionedUser(user=user, created=True)

        if display_name is not None and user.display_name != display_name:
            user.display_name = display_name
            user.updated_at = now_utc
            await session.flush()
        return ProvisionedUser(user=user, created=False)
