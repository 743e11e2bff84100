from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from app.core.exceptions import AppError
from app.core.logging import get_logger
from app.deps import get_current_user
from app.models.user import User
from app.services import payments as payments_service

router = APIRouter()
log = get_logger(__name__)


class CheckoutRequest(BaseModel):
    tier: Literal["small", "medium", "large"]


@router.get("/packs")
async def list_packs():
    """Credit packs available for purchase."""
    packs = payments_service.credit_packs()
    return {
        "success": True,
        "packs": [{"tier": p.slug, "credits": p.credits} for p in packs.values()],
    }


@router.post("/checkout")
async def create_checkout(body: CheckoutRequest, user: User = Depends(get_current_user)):
    """Create a Polar checkout for a credit pack; frontend redirects to the returned url."""
    checkout = await payments_service.create_checkout(user, body.tier)
    return {"success": True, **checkout}


@router.post("/webhook")
async def polar_webhook(request: Request):
    """Polar webhook: order.paid -> credit pack (once per event id). Non-2xx makes Polar retry."""
    body = await request.body()
    try:
        outcome = await payments_service.handle_webhook(body, request.headers)
    except AppError as e:
        log.error(
            "webhook_rejected",
            code=e.code,
            message=e.message,
            details=e.details,
            webhook_id=request.headers.get("webhook-id"),
        )
        raise
    return {
        "success": True,
        "status": outcome.status,
        "event_id": outcome.event_id,
        "credits": outcome.credits,
    }
