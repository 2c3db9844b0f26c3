from __future__ import annotations

import json
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AuditRecord:
    ts: str
    correlation_id: str
    actor: str
    event_type: str
    payload: Dict[str, Any]


class AuditLogger:
    """
    Append-only JSONL event log. One line per engine decision or soft failure.
    Safe to share between request threads.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def new_correlation_id(self) -> str:
        return uuid.uuid4().hex

    def write(
        self,
        correlation_id: str,
        event_type: str,
        payload: Dict[str, Any],
        *,
        actor: str = "buildheal",
        timestamp: Optional[str] = None,
    ) -> None:
        record = {
            "ts": timestamp or datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "correlation_id": correlation_id,
            "actor": actor,
            "event_type": event_type,
            "payload": payload,
        }
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line)


def _tail_lines(path: str, *, max_lines: int, max_bytes: int = 2_000_000) -> list[str]:
    """
    Read up to `max_lines` from the end of a text file without loading the entire file into memory.
    """
    if not os.path.exists(path) or max_lines <= 0:
        return []
    data = b""
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        pos = f.tell()
        chunk = 64 * 1024
        while pos > 0 and len(data) < max_bytes and data.count(b"\n") <= (max_lines + 2):
            step = min(chunk, pos)
            pos -= step
            f.seek(pos, os.SEEK_SET)
            data = f.read(step) + data
    lines = data.decode("utf-8", errors="replace").splitlines()
    return lines[-max_lines:]


def tail_jsonl(path: str, *, max_lines: int = 200) -> List[AuditRecord]:
    out: List[AuditRecord] = []
    for ln in _tail_lines(path, max_lines=max_lines):
        try:
            obj = json.loads(ln)
        except json.JSONDecodeError:
            continue
        out.append(
            AuditRecord(
                ts=obj.get("ts", ""),
                correlation_id=obj.get("correlation_id", ""),
                actor=obj.get("actor", ""),
                event_type=obj.get("event_type", ""),
                payload=obj.get("payload", {}) or {},
            )
        )
    return out
