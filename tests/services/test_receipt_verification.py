from __future__ import annotations

import json
import time
from types import SimpleNamespace

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from google.auth import jwt

from app.economy.errors import UnknownPlatformError
from app.services.receipt_verification import Platform, PlatformReceiptVerifier, ReceiptKind
from app.services.receipts_app_store import PRODUCTION_VERIFY_URL, SANDBOX_VERIFY_URL
from app.services.receipts_google_play import ANDROID_PUBLISHER_SCOPE, DEFAULT_TOKEN_URI

COINS_100 = "com.premiumdramastream.coins.100"
MONTHLY = "com.premiumdramastream.premium.monthly"


class FakeAsyncClient:
    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.requests: list[tuple[str, str, dict[str, object]]] = []

    async def __aenter__(self) -> FakeAsyncClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def get(self, url: str, **kwargs: object) -> httpx.Response:
        return self._next("GET", url, kwargs)

    async def post(self, url: str, **kwargs: object) -> httpx.Response:
        return self._next("POST", url, kwargs)

    def _next(self, method: str, url: str, kwargs: dict[str, object]) -> httpx.Response:
        self.requests.append((method, url, kwargs))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        status_code, body = item
        request = httpx.Request(method, url)
        if isinstance(body, str):
            return httpx.Response(status_code, text=body, request=request)
        return httpx.Response(status_code, json=body, request=request)


@pytest.fixture(scope="module")
def rsa_key_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return private_pem, public_pem


@pytest.fixture
def google_credentials(rsa_key_pair) -> str:
    private_pem, _ = rsa_key_pair
    return json.dumps(
        {
            "type": "service_account",
            "client_email": "ledger@example-project.iam.gserviceaccount.com",
            "private_key": private_pem,
            "private_key_id": "key-1",
        }
    )


def _settings(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "receipt_simulation_enabled": True,
        "receipt_verify_timeout_seconds": 10.0,
        "google_play_credentials": "",
        "android_package_name": "com.premiumdramastream",
        "apple_shared_secret": "",
        "apple_bundle_id": "com.premiumdramastream",
        "apple_use_sandbox": False,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _verifier(client: FakeAsyncClient | None = None, **overrides: object) -> PlatformReceiptVerifier:
    return PlatformReceiptVerifier(
        settings=_settings(**overrides),
        client_factory=(lambda: client) if client is not None else None,
    )


def _token_response() -> tuple[int, dict[str, object]]:
    return 200, {"access_token": "ya29.test", "expires_in": 3600, "token_type": "Bearer"}


def _future_ms(hours: int = 24) -> str:
    return str(int((time.time() + hours * 3600) * 1000))


def _past_ms() -> str:
    return str(int((time.time() - 3600) * 1000))


@pytest.mark.asyncio
@pytest.mark.parametrize("platform", ["android", "ios"])
async def test_missing_credentials_are_simulated(platform: str) -> None:
    client = FakeAsyncClient([])

    result = await _verifier(client).verify(platform=platform, product_ref=COINS_100, token="tok")

    assert result.valid is True
    assert result.simulated is True
    assert result.reason == "simulated"
    assert result.platform == Platform(platform)
    assert client.requests == []


@pytest.mark.asyncio
async def test_missing_credentials_without_simulation_fail() -> None:
    result = await _verifier(receipt_simulation_enabled=False).verify(
        platform="android", product_ref=COINS_100, token="tok"
    )

    assert result.valid is False
    assert result.simulated is False
    assert result.reason == "not_configured"


@pytest.mark.asyncio
async def test_unknown_platform_raises_before_io() -> None:
    client = FakeAsyncClient([])

    with pytest.raises(UnknownPlatformError):
        await _verifier(client).verify(platform="windows", product_ref=COINS_100, token="tok")

    assert client.requests == []


@pytest.mark.asyncio
async def test_google_product_purchase_is_verified(google_credentials, rsa_key_pair) -> None:
    client = FakeAsyncClient([_token_response(), (200, {"purchaseState": 0, "orderId": "GPA.1"})])

    result = await _verifier(client, google_play_credentials=google_credentials).verify(
        platform="android", product_ref=COINS_100, token="purchase/token"
    )

    assert result.valid is True
    assert result.simulated is False
    assert result.order_ref == "GPA.1"

    token_method, token_url, token_kwargs = client.requests[0]
    assert (token_method, token_url) == ("POST", DEFAULT_TOKEN_URI)
    form = token_kwargs["data"]
    assert form["grant_type"] == "urn:ietf:params:oauth:grant-type:jwt-bearer"
    claims = jwt.decode(form["assertion"], certs=rsa_key_pair[1], audience=DEFAULT_TOKEN_URI)
    assert claims["iss"] == "ledger@example-project.iam.gserviceaccount.com"
    assert claims["scope"] == ANDROID_PUBLISHER_SCOPE

    purchase_method, purchase_url, purchase_kwargs = client.requests[1]
    assert purchase_method == "GET"
    assert purchase_url.endswith(
        "/applications/com.premiumdramastream/purchases/products/com.premiumdramastream.coins.100/tokens/purchase%2Ftoken"
    )
    assert purchase_kwargs["headers"] == {"Authorization": "Bearer ya29.test"}


@pytest.mark.asyncio
@pytest.mark.parametrize(("purchase_state", "reason"), [(1, "canceled"), (2, "pending")])
async def test_google_product_states_are_rejected(google_credentials, purchase_state: int, reason: str) -> None:
    client = FakeAsyncClient([_token_response(), (200, {"purchaseState": purchase_state})])

    result = await _verifier(client, google_play_credentials=google_credentials).verify(
        platform="android", product_ref=COINS_100, token="tok"
    )

    assert result.valid is False
    assert result.reason == reason


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "valid", "reason"),
    [
        ({"expiryTimeMillis": _future_ms(), "paymentState": 1}, True, None),
        ({"expiryTimeMillis": _future_ms(), "paymentState": 2}, True, None),
        ({"expiryTimeMillis": _future_ms(), "paymentState": 0}, False, "payment_pending"),
        ({"expiryTimeMillis": _past_ms(), "paymentState": 1}, False, "expired"),
    ],
)
async def test_google_subscription_rules(
    google_credentials,
    body: dict[str, object],
    valid: bool,
    reason: str | None,
) -> None:
    client = FakeAsyncClient([_token_response(), (200, body)])

    result = await _verifier(client, google_play_credentials=google_credentials).verify(
        platform="android", product_ref=MONTHLY, token="tok", kind=ReceiptKind.SUBSCRIPTION
    )

    assert (result.valid, result.reason) == (valid, reason)
    assert "/purchases/subscriptions/" in client.requests[1][1]


@pytest.mark.asyncio
async def test_google_access_token_is_cached(google_credentials) -> None:
    client = FakeAsyncClient(
        [
            _token_response(),
            (200, {"purchaseState": 0}),
            (200, {"purchaseState": 0}),
        ]
    )
    verifier = _verifier(client, google_play_credentials=google_credentials)

    await verifier.verify(platform="android", product_ref=COINS_100, token="tok-1")
    await verifier.verify(platform="android", product_ref=COINS_100, token="tok-2")

    assert [method for method, _, _ in client.requests] == ["POST", "GET", "GET"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("failure", "reason"),
    [
        ((500, {"error": "backend"}), "http_500"),
        ((200, "<html>not json</html>"), "malformed_response"),
        ((200, {"unexpected": True}), "malformed_response"),
        (httpx.ReadTimeout("timed out"), "timeout"),
        (httpx.ConnectError("connection refused"), "transport_error"),
    ],
)
async def test_google_failures_become_rejections(google_credentials, failure: object, reason: str) -> None:
    client = FakeAsyncClient([_token_response(), failure])

    result = await _verifier(client, google_play_credentials=google_credentials).verify(
        platform="android", product_ref=COINS_100, token="tok"
    )

    assert result.valid is False
    assert result.reason == reason


@pytest.mark.asyncio
async def test_google_invalid_credentials_are_rejected() -> None:
    client = FakeAsyncClient([])

    result = await _verifier(client, google_play_credentials="{not json").verify(
        platform="android", product_ref=COINS_100, token="tok"
    )

    assert (result.valid, result.reason) == (False, "invalid_credentials")
    assert client.requests == []


def _apple_receipt(*, bundle_id: str = "com.premiumdramastream", product_id: str = COINS_100) -> dict[str, object]:
    return {
        "status": 0,
        "receipt": {
            "bundle_id": bundle_id,
            "in_app": [{"product_id": product_id, "transaction_id": "1000000001"}],
        },
    }


@pytest.mark.asyncio
async def test_apple_receipt_is_verified() -> None:
    client = FakeAsyncClient([(200, _apple_receipt())])

    result = await _verifier(client, apple_shared_secret="shh").verify(
        platform="ios", product_ref=COINS_100, token="base64-receipt"
    )

    assert result.valid is True
    assert result.order_ref == "1000000001"
    method, url, kwargs = client.requests[0]
    assert (method, url) == ("POST", PRODUCTION_VERIFY_URL)
    assert kwargs["json"]["receipt-data"] == "base64-receipt"
    assert kwargs["json"]["password"] == "shh"


@pytest.mark.asyncio
async def test_apple_sandbox_receipt_on_production_is_retried() -> None:
    client = FakeAsyncClient([(200, {"status": 21007}), (200, _apple_receipt())])

    result = await _verifier(client, apple_shared_secret="shh").verify(
        platform="ios", product_ref=COINS_100, token="receipt"
    )

    assert result.valid is True
    assert [url for _, url, _ in client.requests] == [PRODUCTION_VERIFY_URL, SANDBOX_VERIFY_URL]


@pytest.mark.asyncio
async def test_apple_production_receipt_on_sandbox_is_retried() -> None:
    client = FakeAsyncClient([(200, {"status": 21008}), (200, _apple_receipt())])

    result = await _verifier(client, apple_shared_secret="shh", apple_use_sandbox=True).verify(
        platform="ios", product_ref=COINS_100, token="receipt"
    )

    assert result.valid is True
    assert [url for _, url, _ in client.requests] == [SANDBOX_VERIFY_URL, PRODUCTION_VERIFY_URL]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "reason"),
    [
        ({"status": 21003}, "apple_status_21003"),
        (_apple_receipt(bundle_id="com.other.app"), "bundle_mismatch"),
        (_apple_receipt(product_id="com.premiumdramastream.coins.2500"), "product_not_found"),
        ({"receipt": {}}, "malformed_response"),
    ],
)
async def test_apple_rejections(body: dict[str, object], reason: str) -> None:
    client = FakeAsyncClient([(200, body)])

    result = await _verifier(client, apple_shared_secret="shh").verify(
        platform="ios", product_ref=COINS_100, token="receipt"
    )

    assert (result.valid, result.reason) == (False, reason)


@pytest.mark.asyncio
async def test_apple_subscription_requires_future_expiry() -> None:
    body = {
        "status": 0,
        "receipt": {"bundle_id": "com.premiumdramastream", "in_app": []},
        "latest_receipt_info": [
            {"product_id": MONTHLY, "transaction_id": "t-1", "expires_date_ms": _past_ms()},
        ],
    }
    client = FakeAsyncClient([(200, body)])

    result = await _verifier(client, apple_shared_secret="shh").verify(
        platform="ios", product_ref=MONTHLY, token="receipt", kind=ReceiptKind.SUBSCRIPTION
    )

    assert (result.valid, result.reason) == (False, "expired")
