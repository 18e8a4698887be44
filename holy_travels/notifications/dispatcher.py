import asyncio
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple
from loguru import logger
from sqlalchemy.orm import Session

from holy_travels.config import settings
from holy_travels.database import SessionLocal
from holy_travels.models import OutboxEvent
from holy_travels.notifications.websocket import ConnectionManager, manager

class NotificationDispatcher:
    """Publishes pending outbox events to connected clients.

    Runs after the request transaction has committed. A failed delivery is
    recorded on the event and retried on the next pass, up to
    ``max_attempts``; it never propagates to the caller.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        connections: ConnectionManager = manager,
        max_attempts: int = settings.NOTIFICATION_MAX_ATTEMPTS
    ):
        self.session_factory = session_factory
        self.connections = connections
        self.max_attempts = max_attempts

    async def dispatch_pending(self, limit: int = 100) -> Dict[str, int]:
        # Database work runs in worker threads; only socket sends stay on the loop
        events = await asyncio.to_thread(self._load_pending, limit)

        outcomes = []
        for event in events:
            try:
                await self._publish(event)
            except Exception as exc:
                outcomes.append((event["id"], str(exc)))
            else:
                outcomes.append((event["id"], None))

        await asyncio.to_thread(self._record_outcomes, outcomes)
        failed = sum(1 for _, error in outcomes if error is not None)
        return {"published": len(outcomes) - failed, "failed": failed}

    def _load_pending(self, limit: int) -> List[dict]:
        db = self.session_factory()
        try:
            events = db.query(OutboxEvent).filter(
                OutboxEvent.status == "PENDING"
            ).order_by(OutboxEvent.id).limit(limit).all()
            return [
                {
                    "id": event.id,
                    "event_type": event.event_type,
                    "aggregate_type": event.aggregate_type,
                    "aggregate_id": event.aggregate_id,
                    "payload": event.payload or {}
                }
                for event in events
            ]
        except Exception:
            logger.bind(event="notification_dispatch").exception("Could not load pending notifications")
            return []
        finally:
            db.close()

    def _record_outcomes(self, outcomes: List[Tuple[int, Optional[str]]]):
        if not outcomes:
            return
        db = self.session_factory()
        try:
            for event_id, error in outcomes:
                event = db.get(OutboxEvent, event_id)
                if event is None:
                    continue
                event.attempts = (event.attempts or 0) + 1
                if error is None:
                    event.status = "PUBLISHED"
                    event.published_at = datetime.now(timezone.utc)
                    event.last_error = None
                    continue

                event.last_error = error
                if event.attempts >= self.max_attempts:
                    event.status = "FAILED"
                logger.bind(event="notification_failed").warning(
                    "Could not publish {} #{} (attempt {}): {}",
                    event.event_type, event.id, event.attempts, error
                )
            db.commit()
        except Exception:
            db.rollback()
            logger.bind(event="notification_dispatch").exception("Could not record notification outcomes")
        finally:
            db.close()

    async def _publish(self, event: dict):
        message = {
            "type": event["event_type"],
            "data": event["payload"],
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
        user_id = event["payload"].get("user_id")
        if user_id is not None:
            delivered = await self.connections.send_to_user(int(user_id), message)
        else:
            delivered = await self.connections.broadcast(message)

        logger.bind(event="notification_published").info(
            "Published {} for {} {} to {} socket(s)",
            event["event_type"], event["aggregate_type"], event["aggregate_id"], delivered
        )

def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()
