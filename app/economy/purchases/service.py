from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.processed_receipts import ProcessedReceipt
from app.db.repo.receipts_repo import ReceiptsRepo
from app.db.repo.users_repo import UsersRepo
from app.economy.errors import UserNotFoundError, VerificationFailedError
from app.economy.ledger.service import LedgerService
from app.economy.ledger.types import TransactionReason, TransactionType
from app.economy.purchases.catalog import CoinPackSpec, get_coin_pack
from app.economy.purchases.types import CoinPurchaseResult
from app.services.receipt_verification import (
    Platform,
    ReceiptKind,
    ReceiptVerifier,
    VerificationResult,
    parse_platform,
)

logger = structlog.get_logger(__name__)


class CoinPurchaseService:
    @staticmethod
    async def _replay(
        session: AsyncSession,
        *,
        receipt: ProcessedReceipt,
        user_id: str,
    ) -> CoinPurchaseResult:
        if receipt.user_id != user_id:
            logger.warning(
                "coin_purchase_receipt_reused",
                user_id=user_id,
                platform=receipt.platform,
                product_id=receipt.product_id,
            )
            raise VerificationFailedError("receipt_already_used")

        user = await UsersRepo.get_by_id(session, user_id)
        if user is None:
            raise UserNotFoundError
        return CoinPurchaseResult(
            coins_added=receipt.coins_credited,
            balance=user.coin_balance,
            platform=receipt.platform,
            product_id=receipt.product_id,
            simulated=receipt.simulated,
            idempotent_replay=True,
        )

    @staticmethod
    async def _credit_verified(
        session: AsyncSession,
        *,
        verification: VerificationResult,
        user_id: str,
        pack: CoinPackSpec,
        purchase_token: str,
        platform: Platform,
        now_utc: datetime,
    ) -> CoinPurchaseResult:
        existing = await ReceiptsRepo.get_by_token(session, platform=platform.value, purchase_token=purchase_token)
        if existing is not None:
            return await CoinPurchaseService._replay(session, receipt=existing, user_id=user_id)

        try:
            async with session.begin_nested():
                receipt = await ReceiptsRepo.create(
                    session,
                    receipt=ProcessedReceipt(
                        user_id=user_id,
                        platform=platform.value,
                        product_id=pack.product_id,
                        purchase_token=purchase_token,
                        coins_credited=pack.coins,
                        credit_transaction_id=None,
                        order_ref=verification.order_ref,
                        simulated=verification.simulated,
                        created_at=now_utc,
                    ),
                )
                entry = await LedgerService.append_transaction(
                    session,
                    user_id=user_id,
                    amount=pack.coins,
                    tx_type=TransactionType.PURCHASE,
                    reason=TransactionReason.iap_purchase(pack.product_id, platform.value),
                    now_utc=now_utc,
                )
                receipt.credit_transaction_id = entry.id
                await session.flush()
        except IntegrityError:
            concurrent = await ReceiptsRepo.get_by_token(
                session,
                platform=platform.value,
                purchase_token=purchase_token,
            )
            if concurrent is None:
                raise
            return await CoinPurchaseService._replay(session, receipt=concurrent, user_id=user_id)

        logger.info(
            "coin_purchase_credited",
            user_id=user_id,
            platform=platform.value,
            product_id=pack.product_id,
            coins=pack.coins,
            balance=entry.balance_after,
            order_ref=verification.order_ref,
            simulated=verification.simulated,
        )
        return CoinPurchaseResult(
            coins_added=pack.coins,
            balance=entry.balance_after,
            platform=platform.value,
            product_id=pack.product_id,
            simulated=verification.simulated,
            idempotent_replay=False,
        )

    @staticmethod
    async def verify_coin_purchase(
        session_factory: async_sessionmaker[AsyncSession],
        *,
        verifier: ReceiptVerifier,
        user_id: str,
        product_id: str,
        purchase_token: str,
        platform: Platform | str,
        now_utc: datetime | None = None,
    ) -> CoinPurchaseResult:
        """Verifies a store receipt and credits its coin pack at most once.

        Runs as two short units with the store call between them, outside any
        transaction. The second unit re-reads the receipt before crediting.
        """
        now_utc = now_utc or datetime.now(timezone.utc)
        pack = get_coin_pack(product_id)
        resolved_platform = parse_platform(platform)

        async with session_factory.begin() as session:
            if await UsersRepo.get_by_id(session, user_id) is None:
                raise UserNotFoundError
            existing = await ReceiptsRepo.get_by_token(
                session,
                platform=resolved_platform.value,
                purchase_token=purchase_token,
            )
            if existing is not None:
                return await CoinPurchaseService._replay(session, receipt=existing, user_id=user_id)

        verification = await verifier.verify(
            platform=resolved_platform,
            product_ref=product_id,
            token=purchase_token,
            kind=ReceiptKind.PRODUCT,
        )
        if not verification.valid:
            logger.info(
                "coin_purchase_verification_rejected",
                user_id=user_id,
                platform=resolved_platform.value,
                product_id=product_id,
                reason=verification.reason,
            )
            raise VerificationFailedError(verification.reason)

        async with session_factory.begin() as session:
            return await CoinPurchaseService._credit_verified(
                session,
                verification=verification,
                user_id=user_id,
                pack=pack,
                purchase_token=purchase_token,
                platform=resolved_platform,
                now_utc=now_utc,
            )
