from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from app.economy.errors import UnknownPlatformError


class Platform(str, Enum):
    ANDROID = "android"
    IOS = "ios"


class ReceiptKind(str, Enum):
    PRODUCT = "product"
    SUBSCRIPTION = "subscription"


@dataclass(frozen=True, slots=True)
class VerificationResult:
    valid: bool
    reason: str | None
    platform: Platform
    product_ref: str
    simulated: bool = False
    order_ref: str | None = None


def parse_platform(value: Platform | str | None) -> Platform:
    if isinstance(value, Platform):
        return value
    try:
        return Platform(str(value or "").strip().lower())
    except ValueError as exc:
        raise UnknownPlatformError from exc


def rejected(platform: Platform, product_ref: str, reason: str) -> VerificationResult:
    return VerificationResult(valid=False, reason=reason, platform=platform, product_ref=product_ref)
