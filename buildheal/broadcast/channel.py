from __future__ import annotations

import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from buildheal.errors import BroadcastFailure

TOPIC_BUILD_UPDATE = "build_update"
TOPIC_REMEDIATION_AVAILABLE = "remediation_available"


@dataclass(frozen=True)
class BroadcastMessage:
    topic: str
    payload: Dict[str, Any]
    published_at_unix: float


Listener = Callable[[BroadcastMessage], None]


class Subscription:
    """
    Bounded mailbox for one observer. When full, the oldest message is dropped.
    """

    def __init__(self, channel: "BroadcastChannel", *, maxsize: int) -> None:
        self._channel = channel
        self._q: "queue.Queue[BroadcastMessage]" = queue.Queue(maxsize=max(1, int(maxsize)))
        self.dropped = 0
        # Serializes concurrent publishers so drop-oldest and the counter stay exact.
        self._offer_lock = threading.Lock()

    def _offer(self, msg: BroadcastMessage) -> None:
        with self._offer_lock:
            while True:
                try:
                    self._q.put_nowait(msg)
                    return
                except queue.Full:
                    try:
                        self._q.get_nowait()
                        self.dropped += 1
                    except queue.Empty:
                        continue

    def get(self, timeout: Optional[float] = None) -> BroadcastMessage:
        return self._q.get(timeout=timeout)

    def get_nowait(self) -> Optional[BroadcastMessage]:
        try:
            return self._q.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[BroadcastMessage]:
        out: List[BroadcastMessage] = []
        while True:
            msg = self.get_nowait()
            if msg is None:
                return out
            out.append(msg)

    def close(self) -> None:
        self._channel.unsubscribe(self)


class BroadcastChannel:
    """
    In-process publish/subscribe fan-out.

    Every subscriber registered at publish time receives the message; there is no retained
    history for observers that subscribe later.
    """

    def __init__(self, *, queue_size: int = 200) -> None:
        self._lock = threading.Lock()
        self._queue_size = queue_size
        self._subs: List[Subscription] = []
        self._listeners: List[Listener] = []

    def subscribe(self) -> Subscription:
        sub = Subscription(self, maxsize=self._queue_size)
        with self._lock:
            self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def add_listener(self, fn: Listener) -> None:
        """
        Listeners run synchronously on the publishing thread. The engine publishes while
        holding its commit lock, so a listener must return quickly (hand off to a queue, as
        WebhookRelay does) and must not call back into engine operations that commit
        (`handle_build_update`, `simulate_failure`); that lock is not reentrant. Reads
        (`get_remediation`, `dashboard_snapshot`) are safe.
        """
        with self._lock:
            self._listeners.append(fn)

    def remove_listener(self, fn: Listener) -> None:
        with self._lock:
            if fn in self._listeners:
                self._listeners.remove(fn)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs) + len(self._listeners)

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        """
        Deliver to every current subscriber. Listener errors do not stop delivery to the
        others; they are reported together as one BroadcastFailure afterwards.
        """
        msg = BroadcastMessage(topic=topic, payload=payload or {}, published_at_unix=time.time())
        with self._lock:
            subs = list(self._subs)
            listeners = list(self._listeners)
        for sub in subs:
            sub._offer(msg)
        errors: List[str] = []
        for fn in listeners:
            try:
                fn(msg)
            except Exception as e:  # noqa: BLE001
                errors.append(f"{type(e).__name__}: {e}")
        if errors:
            raise BroadcastFailure(topic, errors)
