from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from buildheal.broadcast.channel import TOPIC_BUILD_UPDATE, TOPIC_REMEDIATION_AVAILABLE, BroadcastChannel
from buildheal.classifier.confidence import score
from buildheal.classifier.rules import LogClassifier
from buildheal.errors import DiagnosisUnavailable, InvalidEvent, VersionControlError
from buildheal.gitops.base import VersionControlOps, build_version_control, request_pull_request
from buildheal.llm.diagnosis import (
    DIAGNOSIS_CONTEXT,
    DiagnosisProvider,
    build_diagnosis_prompt,
    build_diagnosis_provider,
    diagnose_with_timeout,
)
from buildheal.models import (
    ApplyResult,
    BuildEvent,
    BuildStatus,
    DashboardSnapshot,
    EnrichedUpdate,
    RemediationRecord,
)
from buildheal.patches.synthesizer import PatchSynthesizer
from buildheal.settings import Settings
from buildheal.simulate import simulated_failure_event
from buildheal.store.health import HealthRegistry
from buildheal.store.remediations import RemediationStore
from buildheal.telemetry.audit import AuditLogger

UNKNOWN_REPO = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RemediationEngine:
    """
    Orchestrates one build event end to end:

        classify -> synthesize patch -> score -> diagnose -> store -> health -> broadcast

    Per build_id state machine: no remediation -> pending -> applied. Only a failure event
    with non-empty logs creates (or replaces) a remediation; every event updates health.

    The diagnosis call runs outside any lock. A single commit lock covers store, health and
    broadcast so observers see `build_update` before `remediation_available` and health
    reflects the last committed event per repo.
    Channel listeners therefore run inside the commit lock; see `BroadcastChannel.add_listener`.
    """

    def __init__(
        self,
        *,
        store: Optional[RemediationStore] = None,
        health: Optional[HealthRegistry] = None,
        channel: Optional[BroadcastChannel] = None,
        classifier: Optional[LogClassifier] = None,
        synthesizer: Optional[PatchSynthesizer] = None,
        diagnosis: Optional[DiagnosisProvider] = None,
        vcs: Optional[VersionControlOps] = None,
        audit: Optional[AuditLogger] = None,
        diagnosis_timeout_s: float = 20.0,
        diagnosis_log_tail_chars: int = 500,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store if store is not None else RemediationStore()
        self.health = health if health is not None else HealthRegistry()
        self.channel = channel
        self.classifier = classifier or LogClassifier()
        self.synthesizer = synthesizer or PatchSynthesizer()
        self.diagnosis = diagnosis
        self.vcs = vcs
        self.audit = audit
        self.diagnosis_timeout_s = float(diagnosis_timeout_s)
        self.diagnosis_log_tail_chars = int(diagnosis_log_tail_chars)
        self._clock = clock
        self._commit_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, *, channel: Optional[BroadcastChannel] = None) -> "RemediationEngine":
        return cls(
            health=HealthRegistry(recent_capacity=settings.recent_builds_capacity),
            channel=channel if channel is not None else BroadcastChannel(queue_size=settings.broadcast_queue_size),
            diagnosis=build_diagnosis_provider(settings),
            vcs=build_version_control(settings),
            audit=AuditLogger(settings.audit_log_path),
            diagnosis_timeout_s=settings.diagnosis_timeout_s,
            diagnosis_log_tail_chars=settings.diagnosis_log_tail_chars,
        )

    # ---------- helpers ----------

    def _write(self, correlation_id: str, event_type: str, payload: Dict[str, Any]) -> None:
        if self.audit is not None:
            self.audit.write(correlation_id, event_type, payload)

    def _new_correlation_id(self) -> str:
        return self.audit.new_correlation_id() if self.audit is not None else uuid.uuid4().hex

    def _coerce_event(self, event: Union[BuildEvent, Mapping[str, Any]], correlation_id: str) -> BuildEvent:
        if isinstance(event, BuildEvent):
            ev = event
        elif isinstance(event, Mapping):
            try:
                ev = BuildEvent.model_validate(dict(event))
            except ValidationError as e:
                self._write(correlation_id, "build.invalid", {"error": str(e)[:1000]})
                raise InvalidEvent(f"unparseable build event: {e.error_count()} error(s)") from e
        else:
            self._write(correlation_id, "build.invalid", {"error": f"unsupported event type {type(event).__name__}"})
            raise InvalidEvent(f"unsupported event type: {type(event).__name__}")
        if not (ev.build_id or "").strip():
            self._write(correlation_id, "build.invalid", {"error": "missing build_id", "repo_name": ev.repo_name})
            raise InvalidEvent("build event is missing buildId")
        return ev

    def _diagnose(self, logs: str, correlation_id: str) -> Optional[str]:
        if self.diagnosis is None:
            return None
        prompt = build_diagnosis_prompt(logs, tail_chars=self.diagnosis_log_tail_chars)
        try:
            return diagnose_with_timeout(self.diagnosis, prompt, DIAGNOSIS_CONTEXT, timeout_s=self.diagnosis_timeout_s)
        except DiagnosisUnavailable as e:
            self._write(correlation_id, "diagnosis.unavailable", {"error": str(e)[:1000]})
            return None

    def _publish(self, topic: str, payload: Dict[str, Any], correlation_id: str) -> None:
        if self.channel is None:
            return
        try:
            self.channel.publish(topic, payload)
        except Exception as e:  # noqa: BLE001
            # Delivery is best-effort; stored state stays as committed.
            self._write(correlation_id, "broadcast.failed", {"topic": topic, "error": str(e)[:1000]})

    def _build_remediation(self, repo_name: str, event: BuildEvent, logs: str) -> RemediationRecord:
        root_cause = self.classifier.classify(logs)
        patch = self.synthesizer.synthesize(root_cause, logs)
        created_at = self._clock()
        return RemediationRecord(
            id=f"remedy_{uuid.uuid4().hex[:16]}",
            build_id=str(event.build_id),
            repo_name=repo_name,
            root_cause=root_cause,
            patch=patch,
            confidence=score(root_cause.type),
            suggested_branch=f"auto-fix/{root_cause.type.value}/{int(created_at.timestamp() * 1000)}",
            created_at=created_at,
        )

    # ---------- public operations ----------

    def handle_build_update(self, repo_name: Optional[str], event: Union[BuildEvent, Mapping[str, Any]]) -> EnrichedUpdate:
        correlation_id = self._new_correlation_id()
        ev = self._coerce_event(event, correlation_id)
        repo = (repo_name or ev.repo_name or UNKNOWN_REPO).strip() or UNKNOWN_REPO
        received_at = self._clock()
        # The caller's event is left untouched; recent builds keep a stamped copy.
        recorded = ev if ev.timestamp is not None else ev.model_copy(update={"timestamp": received_at})
        if recorded.repo_name is None:
            recorded = recorded.model_copy(update={"repo_name": repo})
        self._write(
            correlation_id,
            "build.received",
            {"repo_name": repo, "build_id": ev.build_id, "status": ev.status.value, "has_logs": bool(ev.logs)},
        )

        remediation: Optional[RemediationRecord] = None
        diagnosis: Optional[str] = None
        if ev.status == BuildStatus.failure and ev.logs:
            remediation = self._build_remediation(repo, ev, ev.logs)
            diagnosis = self._diagnose(ev.logs, correlation_id)

        with self._commit_lock:
            if remediation is not None:
                self.store.put(remediation)
            self.health.record_build(recorded)
            self.health.update(repo, ev.status)
            update = EnrichedUpdate(
                repo_name=repo,
                build_id=str(ev.build_id),
                status=ev.status,
                event=recorded,
                diagnosis=diagnosis,
                remediation=remediation,
                timestamp=received_at,
            )
            self._publish(TOPIC_BUILD_UPDATE, update.model_dump(mode="json", by_alias=True), correlation_id)
            if remediation is not None:
                self._publish(
                    TOPIC_REMEDIATION_AVAILABLE,
                    {
                        "build_id": remediation.build_id,
                        "repo_name": repo,
                        "remediation": remediation.model_dump(mode="json", by_alias=True),
                    },
                    correlation_id,
                )

        if remediation is not None:
            self._write(
                correlation_id,
                "remediation.created",
                {
                    "build_id": remediation.build_id,
                    "remediation_id": remediation.id,
                    "type": remediation.root_cause.type.value,
                    "confidence": remediation.confidence,
                    "suggested_branch": remediation.suggested_branch,
                    "diagnosis_available": diagnosis is not None,
                },
            )
        return update

    def get_remediation(self, build_id: str) -> RemediationRecord:
        return self.store.get(build_id)

    def mark_applied(self, build_id: str, *, pr_requested: bool = False) -> RemediationRecord:
        record = self.store.mark_applied(build_id, pr_requested=pr_requested, now=self._clock())
        self._write(
            self._new_correlation_id(),
            "remediation.applied",
            {"build_id": build_id, "remediation_id": record.id, "pr_requested": record.pr_requested},
        )
        return record

    def apply_remediation(self, build_id: str, *, create_pr: bool = False) -> ApplyResult:
        """
        Mark the remediation applied and, if asked, forward PR intent to the version control
        collaborator. A collaborator failure is reported in `pr_error`; the apply stands.
        """
        record = self.mark_applied(build_id, pr_requested=create_pr)
        result = ApplyResult(
            build_id=build_id,
            remediation_id=record.id,
            branch=record.suggested_branch,
            patch=record.patch,
            confidence=record.confidence,
            applied_at=record.applied_at or self._clock(),
            pr_requested=create_pr,
        )
        if not create_pr:
            return result

        correlation_id = self._new_correlation_id()
        self._write(correlation_id, "pr.requested", {"build_id": build_id, "branch": record.suggested_branch})
        if self.vcs is None:
            self._write(correlation_id, "pr.failed", {"build_id": build_id, "error": "version_control_not_configured"})
            return result.model_copy(update={"pr_error": "version_control_not_configured"})
        try:
            pr = request_pull_request(self.vcs, record)
        except VersionControlError as e:
            self._write(correlation_id, "pr.failed", {"build_id": build_id, "error": str(e)[:1000]})
            return result.model_copy(update={"pr_error": str(e)})
        self._write(correlation_id, "pr.created", {"build_id": build_id, "pr_url": pr.pr_url, "mode": pr.mode})
        return result.model_copy(update={"pr": pr})

    def dashboard_snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(
            repos=self.health.snapshot(),
            recent_builds=self.health.recent_builds(),
            pending_remediations=self.store.pending(),
        )

    def simulate_failure(self, repo_name: str, error_type: str = "lint") -> EnrichedUpdate:
        event = simulated_failure_event(error_type, repo_name=repo_name)
        return self.handle_build_update(repo_name, event)
