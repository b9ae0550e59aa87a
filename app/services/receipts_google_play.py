from __future__ import annotations

import json
import time
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from google.auth import crypt, jwt

from app.services.receipts_types import Platform, ReceiptKind, VerificationResult, rejected

logger = structlog.get_logger("app.services.receipt_verification")

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
PUBLISHER_BASE_URL = "https://androidpublisher.googleapis.com/androidpublisher/v3/applications"
ASSERTION_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60

# purchases.products purchaseState
PURCHASE_STATE_PURCHASED = 0
PURCHASE_STATE_CANCELED = 1
PURCHASE_STATE_PENDING = 2

# purchases.subscriptions paymentState: 1 received, 2 free trial
SUBSCRIPTION_PAID_STATES = {1, 2}


class GooglePlayCredentialsError(ValueError):
    pass


def build_assertion(service_account_info: dict[str, Any], *, now_epoch: int) -> tuple[str, str]:
    """Signs the OAuth2 JWT-bearer assertion for the service account.

    Returns ``(assertion, token_uri)``.
    """
    client_email = service_account_info.get("client_email")
    if not client_email or not service_account_info.get("private_key"):
        raise GooglePlayCredentialsError("service account json needs client_email and private_key")

    token_uri = str(service_account_info.get("token_uri") or DEFAULT_TOKEN_URI)
    try:
        signer = crypt.RSASigner.from_service_account_info(service_account_info)
    except (ValueError, KeyError) as exc:
        raise GooglePlayCredentialsError("service account private key is not usable") from exc

    payload = {
        "iss": client_email,
        "scope": ANDROID_PUBLISHER_SCOPE,
        "aud": token_uri,
        "iat": now_epoch,
        "exp": now_epoch + ASSERTION_LIFETIME_SECONDS,
    }
    assertion = jwt.encode(signer, payload)
    if isinstance(assertion, bytes):
        assertion = assertion.decode("ascii")
    return assertion, token_uri


class GooglePlayVerifier:
    def __init__(self, *, credentials_json: str, package_name: str) -> None:
        self._credentials_json = credentials_json
        self._package_name = package_name
        self._access_token: str | None = None
        self._access_token_expires_at: float = 0.0

    @property
    def configured(self) -> bool:
        return bool(self._credentials_json.strip())

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        now = time.time()
        if self._access_token is not None and now < self._access_token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._access_token

        try:
            info = json.loads(self._credentials_json)
        except ValueError as exc:
            raise GooglePlayCredentialsError("GOOGLE_PLAY_CREDENTIALS is not valid json") from exc
        if not isinstance(info, dict):
            raise GooglePlayCredentialsError("GOOGLE_PLAY_CREDENTIALS must be a json object")

        assertion, token_uri = build_assertion(info, now_epoch=int(now))
        response = await client.post(
            token_uri,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": assertion,
            },
        )
        response.raise_for_status()
        body = response.json()
        access_token = body.get("access_token") if isinstance(body, dict) else None
        if not access_token:
            raise ValueError("token response has no access_token")

        self._access_token = str(access_token)
        self._access_token_expires_at = now + float(body.get("expires_in", ASSERTION_LIFETIME_SECONDS))
        return self._access_token

    def _purchase_url(self, *, product_ref: str, token: str, kind: ReceiptKind) -> str:
        collection = "subscriptions" if kind == ReceiptKind.SUBSCRIPTION else "products"
        return (
            f"{PUBLISHER_BASE_URL}/{quote(self._package_name, safe='')}"
            f"/purchases/{collection}/{quote(product_ref, safe='')}/tokens/{quote(token, safe='')}"
        )

    async def verify(
        self,
        client: httpx.AsyncClient,
        *,
        product_ref: str,
        token: str,
        kind: ReceiptKind,
    ) -> VerificationResult:
        try:
            access_token = await self._get_access_token(client)
        except GooglePlayCredentialsError:
            logger.error("google_play_credentials_invalid")
            return rejected(Platform.ANDROID, product_ref, "invalid_credentials")

        response = await client.get(
            self._purchase_url(product_ref=product_ref, token=token, kind=kind),
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if response.status_code == 401:
            self._access_token = None
        response.raise_for_status()
        body = response.json()
        if not isinstance(body, dict):
            raise ValueError("purchase response is not an object")

        if kind == ReceiptKind.SUBSCRIPTION:
            return _evaluate_subscription(body, product_ref=product_ref, now_ms=int(time.time() * 1000))
        return _evaluate_product(body, product_ref=product_ref)


def _evaluate_product(body: dict[str, Any], *, product_ref: str) -> VerificationResult:
    state = body.get("purchaseState")
    order_ref = body.get("orderId")
    if state == PURCHASE_STATE_PURCHASED:
        return VerificationResult(
            valid=True,
            reason=None,
            platform=Platform.ANDROID,
            product_ref=product_ref,
            order_ref=order_ref,
        )
    if state == PURCHASE_STATE_CANCELED:
        return rejected(Platform.ANDROID, product_ref, "canceled")
    if state == PURCHASE_STATE_PENDING:
        return rejected(Platform.ANDROID, product_ref, "pending")
    raise ValueError(f"unexpected purchaseState: {state!r}")


def _evaluate_subscription(body: dict[str, Any], *, product_ref: str, now_ms: int) -> VerificationResult:
    try:
        expiry_ms = int(body["expiryTimeMillis"])
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError("subscription response has no expiryTimeMillis") from exc

    if expiry_ms <= now_ms:
        return rejected(Platform.ANDROID, product_ref, "expired")
    if body.get("paymentState") not in SUBSCRIPTION_PAID_STATES:
        return rejected(Platform.ANDROID, product_ref, "payment_pending")
    return VerificationResult(
        valid=True,
        reason=None,
        platform=Platform.ANDROID,
        product_ref=product_ref,
        order_ref=body.get("orderId"),
    )
