"""Polar checkout and order.paid webhook: verified, mapped to a credit pack, applied once per event."""

import json
from dataclasses import dataclass
from typing import Any, Mapping

from beanie import PydanticObjectId
from bson.errors import InvalidId

from app.core.audit import log_event
from app.core.config import Settings, get_settings
from app.core.exceptions import BadRequestError, UnknownCustomerError, UnknownProductError
from app.core.logging import get_logger
from app.core.security import verify_webhook
from app.models.user import User
from app.services import credits as credits_service

log = get_logger(__name__)

ORDER_PAID = "order.paid"


@dataclass(frozen=True)
class CreditPack:
    slug: str
    product_id: str
    credits: int


@dataclass
class WebhookOutcome:
    status: str  # processed, duplicate, ignored
    event_id: str
    event_type: str | None = None
    user_id: str | None = None
    credits: int = 0
    balance: int | None = None


def credit_packs(settings: Settings | None = None) -> dict[str, CreditPack]:
    s = settings or get_settings()
    packs = [
        CreditPack("small", s.polar_product_small, s.credits_small_pack),
        CreditPack("medium", s.polar_product_medium, s.credits_medium_pack),
        CreditPack("large", s.polar_product_large, s.credits_large_pack),
    ]
    return {p.slug: p for p in packs}


def credits_for_product(product_id: str | None, settings: Settings | None = None) -> int:
    """Map a purchased product to its pack size. Unknown products are rejected, never credited zero."""
    for pack in credit_packs(settings).values():
        if product_id and pack.product_id == product_id:
            return pack.credits
    raise UnknownProductError(product_id)


def build_polar_client(settings: Settings | None = None):
    s = settings or get_settings()
    if not s.polar_access_token:
        raise BadRequestError("Payments not configured")
    from polar_sdk import Polar
    return Polar(access_token=s.polar_access_token, server=s.polar_server)


async def create_checkout(user: User, tier: str, polar=None) -> dict[str, Any]:
    """Hosted checkout for a credit pack, bound to the user via external_customer_id."""
    settings = get_settings()
    pack = credit_packs(settings).get(tier)
    if not pack:
        raise UnknownProductError(tier)
    polar = polar or build_polar_client(settings)
    checkout = await polar.checkouts.create_async(
        request={
            "products": [pack.product_id],
            "external_customer_id": str(user.id),
            "success_url": settings.polar_success_url,
        }
    )
    log.info("checkout_created", user_id=str(user.id), tier=tier, checkout_id=checkout.id)
    return {"checkout_id": checkout.id, "url": checkout.url, "tier": tier, "credits": pack.credits}


async def _resolve_customer(data: Mapping[str, Any]) -> User:
    customer = data.get("customer") or {}
    external_id = customer.get("external_id")
    if not external_id:
        raise UnknownCustomerError(details={"order_id": data.get("id")})
    try:
        user = await User.get(PydanticObjectId(external_id))
    except (InvalidId, TypeError):
        user = None
    if not user:
        raise UnknownCustomerError(
            "External customer id does not match a user",
            details={"order_id": data.get("id"), "external_id": external_id},
        )
    return user


async def handle_webhook(payload: bytes, headers: Mapping[str, str]) -> WebhookOutcome:
    """
    Verify and apply one webhook delivery.
    Deliveries are at-least-once; the webhook-id header is stable across retries and keys the credit.
    Raises AppError subclasses for anything that must be retried or investigated.
    """
    settings = get_settings()
    event_id = verify_webhook(
        payload,
        headers,
        settings.polar_webhook_secret,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )
    try:
        event = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BadRequestError("Malformed webhook payload") from e

    event_type = event.get("type")
    if event_type != ORDER_PAID:
        log.info("webhook_ignored", event_id=event_id, event_type=event_type)
        return WebhookOutcome(status="ignored", event_id=event_id, event_type=event_type)

    data = event.get("data") or {}
    user = await _resolve_customer(data)
    credits = credits_for_product(data.get("product_id"), settings)

    result = await credits_service.credit(
        user.id,
        credits,
        "purchase",
        reference_type="polar_order",
        reference_id=data.get("id"),
        idempotency_key=f"polar:{event_id}",
    )
    outcome = WebhookOutcome(
        status="duplicate" if result.duplicate else "processed",
        event_id=event_id,
        event_type=event_type,
        user_id=str(user.id),
        credits=0 if result.duplicate else credits,
        balance=result.balance,
    )
    if not result.duplicate:
        await log_event(
            user.id,
            "order_paid",
            "polar_order",
            data.get("id"),
            {"product_id": data.get("product_id"), "credits": credits, "event_id": event_id},
        )
    return outcome
