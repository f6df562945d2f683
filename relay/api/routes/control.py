"""Control API routes."""

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from ...app import Application


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class SendRequest(BaseModel):
    """Text to deliver to a conversation with normal pacing."""

    key: str = Field(min_length=1)
    text: str


class SendResponse(BaseModel):
    key: str
    fragments: list[str]


class InterruptResponse(BaseModel):
    key: str
    cancelled: bool


def create_control_router(app: Application) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post("/send", response_model=SendResponse)
    async def send_text(request: SendRequest) -> dict:
        """Segment and start a paced dispatch, replacing any pending one for the key."""
        try:
            fragments = await app.output_router.route(request.key, request.text)
            return {"key": request.key, "fragments": fragments}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/interrupt/{key}", response_model=InterruptResponse)
    async def interrupt(key: str) -> dict:
        """Cancel the pending dispatch for a conversation."""
        return {"key": key, "cancelled": app.registry.cancel(key)}

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset conversation state and stored data."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    return router
