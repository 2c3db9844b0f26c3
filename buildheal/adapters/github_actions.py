from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from buildheal.errors import InvalidEvent
from buildheal.models import BuildEvent, BuildStatus


def _parse_ts(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def status_from_workflow_run(run: Dict[str, Any]) -> BuildStatus:
    if run.get("status") != "completed":
        return BuildStatus.in_progress
    if run.get("conclusion") in ("success", "skipped", "neutral"):
        return BuildStatus.success
    return BuildStatus.failure


def build_event_from_workflow_run(payload: Dict[str, Any], *, logs: Optional[str] = None) -> Tuple[str, BuildEvent]:
    """
    Translate a GitHub `workflow_run` webhook payload into (repo_name, BuildEvent).

    Logs are not downloaded here (the Actions log API returns a zip archive); callers that
    already fetched them can pass `logs`.
    """
    run = payload.get("workflow_run")
    if not isinstance(run, dict) or run.get("id") is None:
        raise InvalidEvent("payload has no workflow_run.id")
    repo = payload.get("repository") if isinstance(payload.get("repository"), dict) else {}
    repo_name = str(repo.get("full_name") or (run.get("repository") or {}).get("full_name") or "unknown")
    attempt = run.get("run_attempt") or 1
    event = BuildEvent(
        build_id=f"gha:{run['id']}:{attempt}",
        repo_name=repo_name,
        status=status_from_workflow_run(run),
        logs=logs,
        branch=str(run.get("head_branch") or "main"),
        commit=run.get("head_sha"),
        timestamp=_parse_ts(run.get("updated_at")),
    )
    return repo_name, event
