"""Webhook routes called by the WhatsApp bridge."""

import base64
import binascii
from typing import Literal

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException

from ...app import Application
from ...models import InboundEvent, MediaAttachment
from ...transport import conversation_key


class InboundMessageRequest(BaseModel):
    """A message the bridge received on the WhatsApp account."""

    chat_id: str  # e.g. "27761234567@c.us" or "<id>@g.us"
    body: str = ""
    sender_name: str = ""
    message_id: str | None = None
    from_me: bool = False
    is_group: bool = False
    media_type: str | None = None
    quoted_body: str | None = None
    media_mimetype: str | None = None  # set with media_data, e.g. "image/jpeg"
    media_data: str | None = None  # base64 of the downloaded media


def attachment_from(request: InboundMessageRequest) -> MediaAttachment | None:
    """Downloaded media of the request; ValueError if it is malformed."""
    if not request.media_data:
        return None
    if not request.media_mimetype:
        raise ValueError("media_data needs media_mimetype")
    try:
        base64.b64decode(request.media_data, validate=True)
    except binascii.Error as e:
        raise ValueError(f"media_data is not valid base64: {e}") from e
    return MediaAttachment(mimetype=request.media_mimetype, data=request.media_data)


class InboundMessageResponse(BaseModel):
    """Reply text queued for delivery, if any."""

    key: str
    reply: str | None


class StatusRequest(BaseModel):
    """Connection status change reported by the bridge."""

    status: Literal["ready", "disconnected", "qr"]
    reason: str | None = None


class StatusResponse(BaseModel):
    status: str
    ready: bool
    buffered: int


def create_whatsapp_router(app: Application) -> APIRouter:
    """Create WhatsApp webhook router."""
    router = APIRouter(prefix="/api/whatsapp", tags=["whatsapp"])

    @router.post("/messages", response_model=InboundMessageResponse)
    async def receive_message(request: InboundMessageRequest) -> dict:
        """Handle an inbound message: interrupt, reply, queue paced delivery."""
        key = conversation_key(request.chat_id)
        if not key:
            raise HTTPException(status_code=400, detail="chat_id has no user part")
        try:
            media = attachment_from(request)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        event = InboundEvent(
            key=key,
            body=request.body,
            chat_id=request.chat_id,
            sender_name=request.sender_name,
            message_id=request.message_id,
            from_me=request.from_me,
            is_group=request.is_group,
            media_type=request.media_type or (media.kind if media else None),
            quoted_body=request.quoted_body,
            media=media,
        )
        try:
            reply = await app.agent.handle_inbound(event)
            return {"key": key, "reply": reply}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/status", response_model=StatusResponse)
    async def update_status(request: StatusRequest) -> dict:
        """Record bridge readiness; becoming ready flushes buffered sends."""
        try:
            await app.set_transport_status(request.status, request.reason)
            return {
                "status": request.status,
                "ready": app.transport.is_ready(),
                "buffered": len(app.offline_buffer),
            }
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
