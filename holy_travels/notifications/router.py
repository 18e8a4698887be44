from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Dict, List, Literal, Optional
from datetime import datetime

from holy_travels.database import get_db
from holy_travels.auth.dependencies import require_admin
from holy_travels.schemas import ApiResponse, CamelModel
from holy_travels.notifications.outbox import list_events
from holy_travels.notifications.dispatcher import NotificationDispatcher, get_dispatcher

router = APIRouter()

class OutboxEventResponse(CamelModel):
    id: int
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: Optional[dict] = None
    status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

@router.get("/outbox", response_model=ApiResponse[List[OutboxEventResponse]])
def list_outbox_events(
    status_filter: Literal["PENDING", "PUBLISHED", "FAILED"] = Query("PENDING", alias="status"),
    limit: int = Query(50, ge=1, le=200),
    current_user = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Inspect queued notifications (admin)"""
    events = list_events(db, status=status_filter, limit=limit)
    return ApiResponse(data=[OutboxEventResponse.model_validate(event) for event in events])

@router.post("/outbox/dispatch", response_model=ApiResponse[Dict[str, int]])
async def dispatch_outbox(
    limit: int = Query(100, ge=1, le=500),
    current_user = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher)
):
    """Publish pending notifications now (admin)"""
    result = await dispatcher.dispatch_pending(limit=limit)
    return ApiResponse(message="Dispatch completed", data=result)
