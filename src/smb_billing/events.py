# SMB Billing - Quotes, invoices & financial reporting engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
In-process mutation events.

Services publish a ``MutationEvent`` after every committed mutation so that
views (dashboards, lists, caches) can refresh themselves. Delivery is
synchronous, in subscription order, on the publishing thread.

Subscriptions match either an exact topic (``document.created``), a topic
family (``document.*``) or everything (``*``). A failing subscriber is
logged and skipped: the mutation it reacts to is already committed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import Any

logger = logging.getLogger(__name__)

DOCUMENT_CREATED = "document.created"
DOCUMENT_UPDATED = "document.updated"
DOCUMENT_DELETED = "document.deleted"
DOCUMENT_STATUS_CHANGED = "document.status_changed"
CHARGE_CREATED = "charge.created"
CHARGE_UPDATED = "charge.updated"
CHARGE_DELETED = "charge.deleted"
DECLARATION_CREATED = "declaration.created"
DECLARATION_UPDATED = "declaration.updated"
DECLARATION_STATUS_CHANGED = "declaration.status_changed"
DECLARATION_DELETED = "declaration.deleted"
FISCAL_YEAR_CREATED = "fiscal_year.created"
FISCAL_YEAR_UPDATED = "fiscal_year.updated"
FISCAL_YEAR_STATUS_CHANGED = "fiscal_year.status_changed"


@dataclass(frozen=True)
class MutationEvent:
    """A committed change to a document or ledger record."""

    topic: str
    entity_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Handler = Callable[[MutationEvent], None]


class EventBus:
    """Synchronous publish/subscribe hub."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = RLock()

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """
        Register ``handler`` for ``topic``.

        Returns
        -------
        Callable
            A function that removes the subscription when called.
        """
        with self._lock:
            self._subscribers[topic].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(topic, handler)

        return _unsubscribe

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

    def _handlers_for(self, topic: str) -> list[Handler]:
        family = topic.split(".", 1)[0] + ".*"
        with self._lock:
            return (
                list(self._subscribers.get(topic, []))
                + list(self._subscribers.get(family, []))
                + list(self._subscribers.get("*", []))
            )

    def publish(self, event: MutationEvent) -> int:
        """
        Deliver ``event`` to every matching subscriber.

        Returns
        -------
        int
            Number of handlers that ran without raising.
        """
        delivered = 0
        for handler in self._handlers_for(event.topic):
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "Subscriber %r failed on %s",
                    handler,
                    event.topic,
                    extra={"topic": event.topic, "entity_id": event.entity_id},
                )
                continue
            delivered += 1
        return delivered
