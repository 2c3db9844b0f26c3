from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from buildheal.errors import NotFound
from buildheal.models import RemediationRecord, RemediationStatus


class RemediationStore:
    """
    Process-local registry: build_id -> RemediationRecord.

    Records are immutable; a lifecycle transition swaps in an updated copy under the lock,
    so readers never observe a half-applied record. Nothing is ever deleted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, RemediationRecord] = {}

    def put(self, record: RemediationRecord) -> None:
        # A second failure for the same build_id replaces the earlier proposal.
        with self._lock:
            self._records[record.build_id] = record

    def find(self, build_id: str) -> Optional[RemediationRecord]:
        with self._lock:
            return self._records.get(build_id)

    def get(self, build_id: str) -> RemediationRecord:
        rec = self.find(build_id)
        if rec is None:
            raise NotFound(build_id)
        return rec

    def mark_applied(
        self,
        build_id: str,
        *,
        pr_requested: bool = False,
        now: Optional[datetime] = None,
    ) -> RemediationRecord:
        """
        pending -> applied. Re-applying an applied record succeeds and re-stamps applied_at.
        """
        ts = now or datetime.now(timezone.utc)
        with self._lock:
            rec = self._records.get(build_id)
            if rec is None:
                raise NotFound(build_id)
            updated = rec.model_copy(
                update={
                    "status": RemediationStatus.applied,
                    "applied_at": ts,
                    "pr_requested": rec.pr_requested or pr_requested,
                }
            )
            self._records[build_id] = updated
            return updated

    def pending(self) -> List[RemediationRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.status == RemediationStatus.pending]

    def all(self) -> List[RemediationRecord]:
        with self._lock:
            return list(self._records.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
