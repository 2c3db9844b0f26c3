from __future__ import annotations

import json
import threading
from typing import List

import httpx
import pytest

from buildheal.broadcast.channel import BroadcastChannel, BroadcastMessage
from buildheal.broadcast.webhooks import WebhookRelay
from buildheal.errors import BroadcastFailure


def test_channel_fans_out_to_current_subscribers_only() -> None:
    ch = BroadcastChannel()
    early = ch.subscribe()
    ch.publish("build_update", {"n": 1})
    late = ch.subscribe()
    ch.publish("build_update", {"n": 2})

    assert [m.payload["n"] for m in early.drain()] == [1, 2]
    assert [m.payload["n"] for m in late.drain()] == [2]

    late.close()
    ch.publish("build_update", {"n": 3})
    assert late.drain() == []
    assert ch.subscriber_count == 1


def test_full_subscription_drops_oldest() -> None:
    ch = BroadcastChannel(queue_size=2)
    sub = ch.subscribe()
    for i in range(4):
        ch.publish("t", {"i": i})
    assert [m.payload["i"] for m in sub.drain()] == [2, 3]
    assert sub.dropped == 2


def test_drop_count_is_exact_under_concurrent_publishers() -> None:
    ch = BroadcastChannel(queue_size=1)
    sub = ch.subscribe()
    start = threading.Barrier(4)

    def _publish_many() -> None:
        start.wait()
        for i in range(250):
            ch.publish("t", {"i": i})

    threads = [threading.Thread(target=_publish_many) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(sub.drain()) == 1
    assert sub.dropped == 999


def test_listener_errors_are_collected_after_full_delivery() -> None:
    ch = BroadcastChannel()
    seen: List[str] = []

    def _bad(msg: BroadcastMessage) -> None:
        raise ValueError("nope")

    ch.add_listener(_bad)
    ch.add_listener(lambda m: seen.append(m.topic))
    sub = ch.subscribe()
    with pytest.raises(BroadcastFailure) as ei:
        ch.publish("remediation_available", {"build_id": "b1"})
    assert ei.value.topic == "remediation_available"
    assert seen == ["remediation_available"]
    assert len(sub.drain()) == 1


def test_webhook_relay_filters_topics_and_delivers() -> None:
    received: List[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content.decode("utf-8")))
        return httpx.Response(204)

    relay = WebhookRelay(
        webhook_urls_json=json.dumps(["http://hooks.example/a", "http://hooks.example/b"]),
        topics_json=json.dumps(["remediation_available"]),
        transport=httpx.MockTransport(handler),
    )
    assert relay.enabled
    msg = BroadcastMessage(topic="remediation_available", payload={"build_id": "b1"}, published_at_unix=1.0)
    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        assert relay.deliver(client, msg) == 2
    assert received[0]["topic"] == "remediation_available"
    assert received[0]["payload"] == {"build_id": "b1"}

    # Enqueue path never raises, even for topics that are filtered out.
    relay(BroadcastMessage(topic="build_update", payload={}, published_at_unix=1.0))
    relay(msg)


def test_webhook_relay_disabled_without_urls() -> None:
    relay = WebhookRelay(webhook_urls_json=None)
    assert not relay.enabled
    assert relay.topics == {"remediation_available"}
    relay.start()
    relay(BroadcastMessage(topic="remediation_available", payload={}, published_at_unix=1.0))
