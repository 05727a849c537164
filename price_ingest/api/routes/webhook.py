"""Inbound messaging-channel webhook."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from price_ingest.api.deps import get_dispatcher
from price_ingest.ingest.dispatcher import MessageDispatcher
from price_ingest.normalize.phone import normalize_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhook"])


class WhatsAppPayload(BaseModel):
    """Message-received event forwarded by the channel gateway."""

    sender: Optional[str] = Field(default=None, alias="from")
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    body: Optional[str] = None
    id: Optional[str] = None  # Channel message id, used as idempotency key

    model_config = {"populate_by_name": True}


class WebhookResponse(BaseModel):
    status: str
    message: str


@router.post("/whatsapp", response_model=WebhookResponse)
async def handle_whatsapp(
    payload: WhatsAppPayload,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
):
    """Accept one inbound message and queue it for ingestion."""
    phone_number = normalize_phone(payload.sender or payload.chat_id)
    body = (payload.body or "").strip()

    if not phone_number:
        logger.warning("Received webhook without phone number")
        return WebhookResponse(status="error", message="Missing phone number")

    if not body:
        logger.warning(f"Received empty message from {phone_number}")
        return WebhookResponse(status="ignored", message="Empty message body")

    logger.info(f"Received message from {phone_number}: {body[:100]}")

    dispatcher.submit(phone_number, body, external_id=payload.id)

    return WebhookResponse(status="accepted", message="Message queued for processing")


@router.get("/health")
async def webhook_health():
    """Webhook liveness probe."""
    return {"status": "healthy", "service": "whatsapp-webhook"}
