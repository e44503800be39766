# qrledger_api/services/notifications.py
"""
In-process change notification. Subscribers register interest in
(owner_id, table) and receive ChangeEvents after the unit of work that
produced them has committed. Delivery is at-least-once from a subscriber's
point of view, so handlers must tolerate duplicates.
"""
from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)

TRANSACTIONS = "transactions"
STATEMENTS = "statements"
ATTENDANCE = "attendance_records"
EMPLOYMENTS = "employments"

Handler = Callable[["ChangeEvent"], None]


@dataclass(frozen=True)
class ChangeEvent:
    owner_id: int
    table: str
    op: str              # insert | update
    record_id: int
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Subscription:
    id: int
    owner_id: Optional[int]   # None = every owner
    table: Optional[str]      # None = every table


class ChangeBus:
    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._subs: Dict[int, Tuple[Subscription, Handler]] = {}

    def subscribe(self, owner_id: Optional[int], table: Optional[str], handler: Handler) -> Subscription:
        sub = Subscription(next(self._ids), owner_id, table)
        with self._lock:
            self._subs[sub.id] = (sub, handler)
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            self._subs.pop(sub.id, None)

    def _matching(self, event: ChangeEvent) -> List[Handler]:
        with self._lock:
            subs = list(self._subs.values())
        return [
            h for s, h in subs
            if (s.owner_id is None or s.owner_id == event.owner_id)
            and (s.table is None or s.table == event.table)
        ]

    def publish(self, event: ChangeEvent) -> int:
        """Deliver to every matching subscriber; returns how many were called."""
        delivered = 0
        for handler in self._matching(event):
            try:
                handler(event)
                delivered += 1
            except Exception:
                # one broken subscriber must not starve the others
                log.exception("[bus] handler failed for %s/%s #%s", event.table, event.op, event.record_id)
        return delivered

    def publish_all(self, events: List[ChangeEvent]) -> int:
        return sum(self.publish(e) for e in events)


def get_bus() -> ChangeBus:
    """The application's bus (created in create_app)."""
    from flask import current_app
    return current_app.extensions["ledger_bus"]
