"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class DispatchInfo(BaseModel):
    key: str
    state: str
    pending: int
    total: int


class DispatchesResponse(BaseModel):
    """Live dispatches and the offline backlog."""

    active: list[DispatchInfo]
    buffered: int
    transport_ready: bool


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor"),
    ) -> list[dict]:
        """Get trace events with optional filters."""
        try:
            # Parse after timestamp
            after_dt = None
            if after:
                try:
                    after_dt = datetime.fromisoformat(after)
                except ValueError:
                    raise HTTPException(
                        status_code=400, detail="Invalid after timestamp format"
                    )

            event_types = [event_type] if event_type else None

            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=event_types,
                actor=actor,
                limit=limit,
            )

            return [
                {
                    "id": e.id,
                    "event_type": e.event_type,
                    "actor": e.actor,
                    "data": e.data,
                    "timestamp": e.timestamp.isoformat(),
                }
                for e in events
            ]

        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/dispatches", response_model=DispatchesResponse)
    async def get_dispatches() -> dict:
        """Current dispatch per conversation key."""
        registry = app.registry
        active = []
        for key in registry.active_keys():
            queue = registry.get(key)
            if queue is None:
                continue
            active.append(
                {
                    "key": key,
                    "state": queue.state.value,
                    "pending": len(queue),
                    "total": queue.total,
                }
            )
        return {
            "active": active,
            "buffered": len(app.offline_buffer),
            "transport_ready": app.transport.is_ready(),
        }

    return router
