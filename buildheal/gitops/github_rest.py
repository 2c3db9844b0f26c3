from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from buildheal.gitops.base import patch_file_path
from buildheal.models import PullRequestResult, RemediationRecord


@dataclass(frozen=True)
class GitHubRestClient:
    """
    Minimal GitHub REST wrapper: branch refs, Contents API commits, pull requests.
    Mockable in tests via an httpx transport override.
    """

    token: str
    repo: str  # owner/name
    api_base: str = "https://api.github.com"
    timeout_s: float = 15.0
    transport: httpx.BaseTransport | None = None

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout_s, transport=self.transport)

    def _url(self, suffix: str) -> str:
        return f"{self.api_base.rstrip('/')}/repos/{self.repo}{suffix}"

    def get_branch_head_sha(self, *, branch: str) -> str:
        with self._client() as c:
            r = c.get(self._url(f"/git/ref/heads/{branch}"), headers=self._headers())
            r.raise_for_status()
            data = r.json()
        return str((data.get("object") or {}).get("sha"))

    def create_branch(self, *, new_branch: str, from_sha: str) -> None:
        payload = {"ref": f"refs/heads/{new_branch}", "sha": from_sha}
        with self._client() as c:
            r = c.post(self._url("/git/refs"), headers=self._headers(), json=payload)
            # 422: branch already exists, treated as done.
            if r.status_code == 422:
                return
            r.raise_for_status()

    def get_file_sha(self, *, path: str, ref: str) -> Optional[str]:
        with self._client() as c:
            r = c.get(self._url(f"/contents/{path.lstrip('/')}"), headers=self._headers(), params={"ref": ref})
            if r.status_code == 404:
                return None
            r.raise_for_status()
            data = r.json()
        return str(data.get("sha")) if isinstance(data, dict) and data.get("sha") else None

    def upsert_file(self, *, path: str, content_text: str, branch: str, message: str, known_sha: Optional[str] = None) -> None:
        b64 = base64.b64encode(content_text.encode("utf-8")).decode("ascii")
        payload: Dict[str, Any] = {"message": message, "content": b64, "branch": branch}
        if known_sha:
            payload["sha"] = known_sha
        with self._client() as c:
            r = c.put(self._url(f"/contents/{path.lstrip('/')}"), headers=self._headers(), json=payload)
            r.raise_for_status()

    def create_pull_request(self, *, title: str, body: str, head: str, base: str) -> PullRequestResult:
        payload = {"title": title, "body": body, "head": head, "base": base}
        with self._client() as c:
            r = c.post(self._url("/pulls"), headers=self._headers(), json=payload)
            r.raise_for_status()
            data = r.json()
        return PullRequestResult(
            mode="real",
            pr_number=int(data["number"]),
            pr_title=str(data["title"]),
            pr_url=str(data["html_url"]),
            branch_name=head,
        )


@dataclass(frozen=True)
class GitHubVersionControl:
    """
    VersionControlOps over the GitHub REST API. The patch descriptor's script is committed
    to the remediation branch as a reviewable file; it is not run.
    """

    token: str
    api_base: str = "https://api.github.com"
    base_branch: str = "main"
    transport: httpx.BaseTransport | None = None

    def client(self, repo_name: str) -> GitHubRestClient:
        return GitHubRestClient(token=self.token, repo=repo_name, api_base=self.api_base, transport=self.transport)

    def create_branch(self, repo_name: str, branch: str) -> None:
        c = self.client(repo_name)
        base_sha = c.get_branch_head_sha(branch=self.base_branch)
        c.create_branch(new_branch=branch, from_sha=base_sha)

    def apply_patch(self, repo_name: str, branch: str, record: RemediationRecord) -> None:
        c = self.client(repo_name)
        path = patch_file_path(record)
        sha = c.get_file_sha(path=path, ref=branch)
        c.upsert_file(
            path=path,
            content_text=record.patch.script + "\n",
            branch=branch,
            message=f"buildheal: {record.patch.description} ({record.id})",
            known_sha=sha,
        )

    def open_pull_request(self, repo_name: str, branch: str, title: str, body: str) -> PullRequestResult:
        return self.client(repo_name).create_pull_request(title=title, body=body, head=branch, base=self.base_branch)
