from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from buildheal.classifier.rules import classify
from buildheal.errors import NotFound
from buildheal.models import BuildEvent, BuildStatus, HealthStatus, RemediationRecord, RemediationStatus
from buildheal.patches.synthesizer import synthesize
from buildheal.store.health import HealthRegistry, health_for_status
from buildheal.store.remediations import RemediationStore

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _record(build_id: str, rid: str = "remedy_1") -> RemediationRecord:
    rc = classify("eslint")
    return RemediationRecord(
        id=rid,
        build_id=build_id,
        repo_name="org/app",
        root_cause=rc,
        patch=synthesize(rc, "eslint"),
        confidence=0.95,
        suggested_branch="auto-fix/lint/1",
        created_at=T0,
    )


def test_store_get_unknown_raises_not_found() -> None:
    store = RemediationStore()
    with pytest.raises(NotFound):
        store.get("nope")
    with pytest.raises(NotFound):
        store.mark_applied("nope")
    assert store.find("nope") is None


def test_store_overwrites_per_build_id() -> None:
    store = RemediationStore()
    store.put(_record("b1", "remedy_a"))
    store.put(_record("b1", "remedy_b"))
    assert len(store) == 1
    assert store.get("b1").id == "remedy_b"


def test_store_mark_applied_restamps() -> None:
    store = RemediationStore()
    store.put(_record("b1"))
    first = store.mark_applied("b1", now=T0 + timedelta(minutes=1))
    assert first.status == RemediationStatus.applied
    assert first.applied_at == T0 + timedelta(minutes=1)
    assert store.pending() == []

    second = store.mark_applied("b1", now=T0 + timedelta(minutes=5))
    assert second.status == RemediationStatus.applied
    assert second.applied_at == T0 + timedelta(minutes=5)
    assert store.get("b1").applied_at == T0 + timedelta(minutes=5)


def test_health_for_status() -> None:
    assert health_for_status(BuildStatus.success) == HealthStatus.healthy
    assert health_for_status(BuildStatus.failure) == HealthStatus.error
    assert health_for_status(BuildStatus.in_progress) == HealthStatus.warning
    assert health_for_status("queued") == HealthStatus.warning


def test_health_registry_last_write_wins_in_first_seen_order() -> None:
    reg = HealthRegistry()
    reg.update("r2", BuildStatus.success)
    reg.update("r1", BuildStatus.in_progress)
    reg.update("r2", BuildStatus.failure)
    snap = reg.snapshot()
    assert [h.repo_name for h in snap] == ["r2", "r1"]
    assert [h.status for h in snap] == [HealthStatus.error, HealthStatus.warning]
    assert reg.status_of("r2") == HealthStatus.error
    assert reg.status_of("missing") is None


def test_health_registry_recent_builds_ring_buffer() -> None:
    reg = HealthRegistry(recent_capacity=5)
    for i in range(8):
        reg.record_build(BuildEvent(build_id=f"b{i}", status=BuildStatus.success))
    recent = reg.recent_builds()
    assert [e.build_id for e in recent] == ["b3", "b4", "b5", "b6", "b7"]


def test_health_registry_repeated_build_id_keeps_first_seen_slot() -> None:
    reg = HealthRegistry(recent_capacity=3)
    reg.record_build(BuildEvent(build_id="b1", status=BuildStatus.in_progress))
    reg.record_build(BuildEvent(build_id="b2", status=BuildStatus.in_progress))
    reg.record_build(BuildEvent(build_id="b1", status=BuildStatus.failure, logs="eslint"))
    reg.record_build(BuildEvent(build_id="b3", status=BuildStatus.success))
    assert [(e.build_id, e.status) for e in reg.recent_builds()] == [
        ("b1", BuildStatus.failure),
        ("b2", BuildStatus.in_progress),
        ("b3", BuildStatus.success),
    ]
    reg.record_build(BuildEvent(build_id="b4", status=BuildStatus.success))
    assert [e.build_id for e in reg.recent_builds()] == ["b2", "b3", "b4"]
