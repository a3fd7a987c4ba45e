"""In-process notification outbox and the job-side notifier drivers use."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Mapping, Optional

from deploy_agent.domain.messages import Notification
from deploy_agent.domain.ports import NotificationPublisher

DEFAULT_NOTIFICATION_LIMIT = 200
NOTIFY_PREFIX = "NOTIFY"

Listener = Callable[[Notification], None]


def notification_topic(client_id: str, kind: str) -> str:
    return f"{NOTIFY_PREFIX}/{client_id}/{kind}"


class NotificationOutbox:
    """Bounded, thread-safe store of published notifications.

    Listeners receive every notification after it is stored; a failing
    listener is logged and does not affect the others.
    """

    def __init__(self, limit: int = DEFAULT_NOTIFICATION_LIMIT, *, logger: Optional[logging.Logger] = None) -> None:
        self._lock = threading.Lock()
        self._items: Deque[Notification] = deque(maxlen=max(1, int(limit)))
        self._listeners: List[Listener] = []
        self._log = logger or logging.getLogger(__name__)

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)
            listeners = list(self._listeners)
        self._log.info("%s -> %s", notification.topic, dict(notification.payload))
        for listener in listeners:
            try:
                listener(notification)
            except Exception:
                self._log.exception("Notification listener failed for %s", notification.topic)

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        """Return stored notifications, newest first."""
        with self._lock:
            items = list(self._items)
        items.reverse()
        if limit is not None:
            items = items[: max(0, int(limit))]
        return items

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class JobNotifier:
    """Publish notifications of one kind (download, install, uninstall)."""

    def __init__(self, publisher: NotificationPublisher, client_id: str, kind: str) -> None:
        self._publisher = publisher
        self.topic = notification_topic(client_id, kind)

    def send(self, requester_client_id: Optional[str], payload: Mapping[str, Any]) -> None:
        self._publisher.publish(
            Notification(topic=self.topic, requester_client_id=requester_client_id, payload=dict(payload))
        )


__all__ = [
    "DEFAULT_NOTIFICATION_LIMIT",
    "JobNotifier",
    "NotificationOutbox",
    "notification_topic",
]
