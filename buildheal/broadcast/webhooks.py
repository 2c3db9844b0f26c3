from __future__ import annotations

import json
import queue
import threading
from typing import List, Optional

import httpx

from buildheal.broadcast.channel import TOPIC_REMEDIATION_AVAILABLE, BroadcastMessage


def _parse_str_list(raw_json: str | None) -> List[str]:
    if not raw_json:
        return []
    try:
        raw = json.loads(raw_json)
    except json.JSONDecodeError:
        return []
    if not isinstance(raw, list):
        return []
    return [u.strip() for u in raw if isinstance(u, str) and u.strip()]


class WebhookRelay:
    """
    Broadcast listener that relays selected topics to webhook URLs (n8n, Slack bridges, ...).

    Non-blocking: the listener only enqueues; a daemon thread does the POSTs and
    drops delivery errors.
    """

    def __init__(
        self,
        *,
        webhook_urls_json: str | None,
        topics_json: str | None = None,
        timeout_s: float = 6.0,
        max_queue: int = 500,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.urls = _parse_str_list(webhook_urls_json)
        self.topics = set(_parse_str_list(topics_json)) or {TOPIC_REMEDIATION_AVAILABLE}
        self._timeout_s = float(timeout_s)
        self._transport = transport
        self._q: "queue.Queue[BroadcastMessage]" = queue.Queue(maxsize=max_queue)
        self._stop = threading.Event()
        self._t: Optional[threading.Thread] = None

    @property
    def enabled(self) -> bool:
        return bool(self.urls)

    def __call__(self, msg: BroadcastMessage) -> None:
        if not self.urls or msg.topic not in self.topics:
            return
        # Full queue means the receivers are down; shed load rather than block publishers.
        try:
            self._q.put_nowait(msg)
        except queue.Full:
            return

    def deliver(self, client: httpx.Client, msg: BroadcastMessage) -> int:
        data = {
            "schema": "buildheal.broadcast.v1",
            "topic": msg.topic,
            "published_at_unix": msg.published_at_unix,
            "payload": msg.payload,
        }
        delivered = 0
        for url in self.urls:
            try:
                r = client.post(url, json=data)
            except httpx.HTTPError:
                continue
            if r.status_code < 400:
                delivered += 1
        return delivered

    def start(self) -> None:
        if self._t is not None or not self.urls:
            return

        def _run() -> None:
            with httpx.Client(timeout=self._timeout_s, transport=self._transport) as client:
                while not self._stop.is_set():
                    try:
                        msg = self._q.get(timeout=0.25)
                    except queue.Empty:
                        continue
                    try:
                        self.deliver(client, msg)
                    finally:
                        self._q.task_done()

        self._t = threading.Thread(target=_run, name="buildheal_webhook_relay", daemon=True)
        self._t.start()

    def stop(self) -> None:
        self._stop.set()
