"""
Booking notifications.

State changes write an ``OutboxEvent`` inside their own transaction
(``outbox.enqueue``); ``NotificationDispatcher`` later pushes pending events
to WebSocket clients through ``ConnectionManager``. Delivery failures are
retried by the dispatcher and never undo the booking change that produced them.

Services only need the outbox. The dispatcher, socket manager and router pull
in the auth package, so import them from ``holy_travels.notifications.dispatcher``,
``.websocket`` and ``.router`` directly.
"""

from .outbox import enqueue, list_events

__all__ = ["enqueue", "list_events"]
