from sqlalchemy.orm import Session
from typing import List, Optional

from holy_travels.models import OutboxEvent

def enqueue(
    db: Session,
    event_type: str,
    aggregate_type: str,
    aggregate_id,
    payload: dict,
    dedupe_key: Optional[str] = None
) -> Optional[OutboxEvent]:
    """Record a notification in the caller's transaction.

    Nothing is sent here; the dispatcher publishes the event after commit.
    A repeated dedupe key is ignored and returns None.
    """
    dedupe_key = dedupe_key or f"{aggregate_type}:{aggregate_id}:{event_type}"

    pending = [
        obj for obj in db.new
        if isinstance(obj, OutboxEvent) and obj.dedupe_key == dedupe_key
    ]
    if pending:
        return None

    existing = db.query(OutboxEvent.id).filter(OutboxEvent.dedupe_key == dedupe_key).first()
    if existing:
        return None

    event = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=str(aggregate_id),
        event_type=event_type,
        payload=payload,
        dedupe_key=dedupe_key,
        status="PENDING",
        attempts=0
    )
    db.add(event)
    return event

def list_events(db: Session, status: str = "PENDING", limit: int = 50) -> List[OutboxEvent]:
    return db.query(OutboxEvent).filter(
        OutboxEvent.status == status
    ).order_by(OutboxEvent.id).limit(limit).all()
