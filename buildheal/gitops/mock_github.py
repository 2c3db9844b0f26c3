from __future__ import annotations

import json
import os
import threading
import time
from dataclasses import dataclass, field

from buildheal.gitops.base import patch_file_path
from buildheal.models import PullRequestResult, RemediationRecord


@dataclass
class MockVersionControl:
    """
    Offline VersionControlOps (no network, no git).

    It writes:
      - branches: <root>/branches/<repo>/<branch>.json
      - patches:  <root>/branches/<repo>/<branch>.sh
      - PRs:      <root>/prs/<n>.json
    """

    root_dir: str
    public_base_url: str = "http://localhost:8090"
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _last_pr: int = 0

    def _branch_base(self, repo_name: str, branch: str) -> str:
        safe_repo = repo_name.replace("/", "__")
        safe_branch = branch.replace("/", "__")
        d = os.path.join(self.root_dir, "branches", safe_repo)
        os.makedirs(d, exist_ok=True)
        return os.path.join(d, safe_branch)

    def create_branch(self, repo_name: str, branch: str) -> None:
        path = self._branch_base(repo_name, branch) + ".json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump({"repo": repo_name, "branch": branch, "created_at_unix": time.time()}, f, indent=2)

    def apply_patch(self, repo_name: str, branch: str, record: RemediationRecord) -> None:
        base = self._branch_base(repo_name, branch)
        with open(base + ".sh", "w", encoding="utf-8") as f:
            f.write(record.patch.script)
            if not record.patch.script.endswith("\n"):
                f.write("\n")
        meta_path = base + ".json"
        meta = {}
        if os.path.exists(meta_path):
            with open(meta_path, "r", encoding="utf-8") as f:
                meta = json.load(f)
        meta.update({"patch_path": patch_file_path(record), "remediation_id": record.id, "patch": record.patch.model_dump(mode="json")})
        with open(meta_path, "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2)

    def _next_pr_number(self) -> int:
        with self._lock:
            n = max(int(time.time()), self._last_pr + 1)
            self._last_pr = n
            return n

    def open_pull_request(self, repo_name: str, branch: str, title: str, body: str) -> PullRequestResult:
        pr_dir = os.path.join(self.root_dir, "prs")
        os.makedirs(pr_dir, exist_ok=True)
        pr_number = self._next_pr_number()
        meta = {
            "pr_number": pr_number,
            "repo": repo_name,
            "title": title,
            "body": body,
            "branch": branch,
        }
        with open(os.path.join(pr_dir, f"{pr_number}.json"), "w", encoding="utf-8") as f:
            json.dump(meta, f, indent=2)
        return PullRequestResult(
            mode="mock",
            pr_number=pr_number,
            pr_title=title,
            pr_url=f"{self.public_base_url.rstrip('/')}/mock/pr/{pr_number}",
            branch_name=branch,
        )
