from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Dict, List, Optional

from buildheal.models import BuildEvent, BuildStatus, HealthStatus, RepoHealth


def health_for_status(status: BuildStatus | str) -> HealthStatus:
    s = status.value if isinstance(status, BuildStatus) else str(status)
    if s == BuildStatus.failure.value:
        return HealthStatus.error
    if s == BuildStatus.success.value:
        return HealthStatus.healthy
    return HealthStatus.warning


class HealthRegistry:
    """
    repo_name -> last-known health, plus a bounded buffer of recent builds keyed by build_id.

    Repos and builds keep their first-seen position even when their status changes; a
    repeated build_id replaces its entry in place.
    """

    def __init__(self, *, recent_capacity: int = 5) -> None:
        self._lock = threading.Lock()
        self._health: Dict[str, HealthStatus] = {}
        self._recent_capacity = max(1, int(recent_capacity))
        self._recent: "OrderedDict[str, BuildEvent]" = OrderedDict()

    def update(self, repo_name: str, status: BuildStatus | str) -> HealthStatus:
        """Atomic read-modify-write of one repo's health; last write wins."""
        health = health_for_status(status)
        with self._lock:
            self._health[repo_name] = health
        return health

    def record_build(self, event: BuildEvent) -> None:
        key = str(event.build_id)
        with self._lock:
            self._recent[key] = event
            while len(self._recent) > self._recent_capacity:
                self._recent.popitem(last=False)

    def status_of(self, repo_name: str) -> Optional[HealthStatus]:
        with self._lock:
            return self._health.get(repo_name)

    def snapshot(self) -> List[RepoHealth]:
        with self._lock:
            return [RepoHealth(repo_name=name, status=status) for name, status in self._health.items()]

    def recent_builds(self) -> List[BuildEvent]:
        """Oldest first-seen build first."""
        with self._lock:
            return list(self._recent.values())
