from __future__ import annotations

import time
from typing import Any

import httpx

from app.services.receipts_types import Platform, ReceiptKind, VerificationResult, rejected

PRODUCTION_VERIFY_URL = "https://buy.itunes.apple.com/verifyReceipt"
SANDBOX_VERIFY_URL = "https://sandbox.itunes.apple.com/verifyReceipt"

STATUS_OK = 0
STATUS_SANDBOX_RECEIPT_ON_PRODUCTION = 21007
STATUS_PRODUCTION_RECEIPT_ON_SANDBOX = 21008


class AppStoreVerifier:
    def __init__(self, *, shared_secret: str, bundle_id: str, use_sandbox: bool) -> None:
        self._shared_secret = shared_secret
        self._bundle_id = bundle_id
        self._use_sandbox = use_sandbox

    @property
    def configured(self) -> bool:
        return bool(self._shared_secret.strip())

    async def _post_receipt(self, client: httpx.AsyncClient, url: str, token: str) -> dict[str, Any]:
        response = await client.post(
            url,
            json={
                "receipt-data": token,
                "password": self._shared_secret,
                "exclude-old-transactions": True,
            },
        )
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict) or not isinstance(body.get("status"), int):
            raise ValueError("verifyReceipt response has no status")
        return body

    async def verify(
        self,
        client: httpx.AsyncClient,
        *,
        product_ref: str,
        token: str,
        kind: ReceiptKind,
    ) -> VerificationResult:
        primary_url = SANDBOX_VERIFY_URL if self._use_sandbox else PRODUCTION_VERIFY_URL
        body = await self._post_receipt(client, primary_url, token)

        status = body["status"]
        if status == STATUS_SANDBOX_RECEIPT_ON_PRODUCTION and primary_url == PRODUCTION_VERIFY_URL:
            body = await self._post_receipt(client, SANDBOX_VERIFY_URL, token)
        elif status == STATUS_PRODUCTION_RECEIPT_ON_SANDBOX and primary_url == SANDBOX_VERIFY_URL:
            body = await self._post_receipt(client, PRODUCTION_VERIFY_URL, token)

        status = body["status"]
        if status != STATUS_OK:
            return rejected(Platform.IOS, product_ref, f"apple_status_{status}")

        receipt = body.get("receipt")
        if not isinstance(receipt, dict):
            raise ValueError("verifyReceipt response has no receipt")
        if receipt.get("bundle_id") != self._bundle_id:
            return rejected(Platform.IOS, product_ref, "bundle_mismatch")

        transactions = [
            item
            for item in [*(receipt.get("in_app") or []), *(body.get("latest_receipt_info") or [])]
            if isinstance(item, dict) and item.get("product_id") == product_ref
        ]
        if not transactions:
            return rejected(Platform.IOS, product_ref, "product_not_found")

        if kind == ReceiptKind.SUBSCRIPTION:
            latest = max(transactions, key=lambda item: int(item.get("expires_date_ms") or 0))
            if int(latest.get("expires_date_ms") or 0) <= int(time.time() * 1000):
                return rejected(Platform.IOS, product_ref, "expired")
        else:
            latest = transactions[-1]

        return VerificationResult(
            valid=True,
            reason=None,
            platform=Platform.IOS,
            product_ref=product_ref,
            order_ref=latest.get("transaction_id"),
        )
