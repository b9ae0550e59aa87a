from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from typing import Protocol

import httpx
import structlog

from app.core.config import Settings, get_settings
from app.services.receipts_app_store import AppStoreVerifier
from app.services.receipts_google_play import GooglePlayVerifier
from app.services.receipts_types import (
    Platform,
    ReceiptKind,
    VerificationResult,
    parse_platform,
    rejected,
)

logger = structlog.get_logger(__name__)

__all__ = [
    "Platform",
    "PlatformReceiptVerifier",
    "ReceiptKind",
    "ReceiptVerifier",
    "VerificationResult",
    "get_receipt_verifier",
    "parse_platform",
]


class ReceiptVerifier(Protocol):
    async def verify(
        self,
        *,
        platform: Platform | str,
        product_ref: str,
        token: str,
        kind: ReceiptKind = ReceiptKind.PRODUCT,
    ) -> VerificationResult: ...


class PlatformReceiptVerifier:
    """Normalizes Google Play and App Store validation into one ``VerificationResult``.

    Network failures never escape: timeouts, transport errors, non-2xx statuses and
    unparseable bodies all come back as ``valid=False`` with a reason. A platform
    without credentials is simulated only while ``RECEIPT_SIMULATION_ENABLED`` is on.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._simulation_enabled = settings.receipt_simulation_enabled
        self._timeout_seconds = settings.receipt_verify_timeout_seconds
        self._client_factory = client_factory or self._default_client
        self._google = GooglePlayVerifier(
            credentials_json=settings.google_play_credentials,
            package_name=settings.android_package_name,
        )
        self._apple = AppStoreVerifier(
            shared_secret=settings.apple_shared_secret,
            bundle_id=settings.apple_bundle_id,
            use_sandbox=settings.apple_use_sandbox,
        )

    def _default_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout_seconds)

    def _unconfigured(self, platform: Platform, product_ref: str) -> VerificationResult:
        if not self._simulation_enabled:
            logger.error("receipt_verification_not_configured", platform=platform.value)
            return rejected(platform, product_ref, "not_configured")

        logger.warning(
            "receipt_verification_simulated",
            platform=platform.value,
            product_ref=product_ref,
            simulated=True,
        )
        return VerificationResult(
            valid=True,
            reason="simulated",
            platform=platform,
            product_ref=product_ref,
            simulated=True,
        )

    async def verify(
        self,
        *,
        platform: Platform | str,
        product_ref: str,
        token: str,
        kind: ReceiptKind = ReceiptKind.PRODUCT,
    ) -> VerificationResult:
        resolved = parse_platform(platform)
        store = self._google if resolved == Platform.ANDROID else self._apple
        if not store.configured:
            return self._unconfigured(resolved, product_ref)

        try:
            async with self._client_factory() as client:
                result = await store.verify(client, product_ref=product_ref, token=token, kind=kind)
        except httpx.TimeoutException:
            logger.warning("receipt_verification_timeout", platform=resolved.value)
            return rejected(resolved, product_ref, "timeout")
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.warning(
                "receipt_verification_http_error",
                platform=resolved.value,
                status_code=status_code,
            )
            return rejected(resolved, product_ref, f"http_{status_code}")
        except httpx.HTTPError:
            logger.exception("receipt_verification_transport_error", platform=resolved.value)
            return rejected(resolved, product_ref, "transport_error")
        except ValueError:
            logger.exception("receipt_verification_malformed_response", platform=resolved.value)
            return rejected(resolved, product_ref, "malformed_response")

        logger.info(
            "receipt_verification_completed",
            platform=resolved.value,
            product_ref=product_ref,
            kind=kind.value,
            valid=result.valid,
            reason=result.reason,
            simulated=False,
        )
        return result


@lru_cache(maxsize=1)
def get_receipt_verifier() -> PlatformReceiptVerifier:
    return PlatformReceiptVerifier(settings=get_settings())
