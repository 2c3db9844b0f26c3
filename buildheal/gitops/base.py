from __future__ import annotations

from typing import Optional, Protocol

from buildheal.errors import VersionControlError
from buildheal.models import PullRequestResult, RemediationRecord
from buildheal.settings import Settings


class VersionControlOps(Protocol):
    """
    Executes remediation intent outside the engine: branch, patch, pull request.
    """

    def create_branch(self, repo_name: str, branch: str) -> None: ...

    def apply_patch(self, repo_name: str, branch: str, record: RemediationRecord) -> None: ...

    def open_pull_request(self, repo_name: str, branch: str, title: str, body: str) -> PullRequestResult: ...


def patch_file_path(record: RemediationRecord) -> str:
    return f".buildheal/{record.id}.sh"


def render_pr_title(record: RemediationRecord) -> str:
    return f"fix({record.root_cause.type.value}): {record.patch.description}"[:200]


def render_pr_body(record: RemediationRecord) -> str:
    rc = record.root_cause
    patch = record.patch
    lines = [
        f"Automated remediation for build `{record.build_id}`.",
        "",
        f"- Root cause: **{rc.type.value}** ({rc.category.value}, severity {rc.severity.value})",
        f"- Description: {rc.description}",
        f"- Confidence: {record.confidence:.2f}",
    ]
    if rc.affected_files:
        lines.append(f"- Affected: {', '.join(rc.affected_files)}")
    if patch.command:
        lines.append(f"- Command: `{patch.command}`")
    lines += ["", "```bash", patch.script, "```"]
    return "\n".join(lines)


def request_pull_request(vcs: VersionControlOps, record: RemediationRecord) -> PullRequestResult:
    """
    Forward PR intent for an applied remediation: branch -> patch -> PR.
    """
    branch = record.suggested_branch
    try:
        vcs.create_branch(record.repo_name, branch)
        vcs.apply_patch(record.repo_name, branch, record)
        return vcs.open_pull_request(record.repo_name, branch, render_pr_title(record), render_pr_body(record))
    except VersionControlError:
        raise
    except Exception as e:  # noqa: BLE001
        raise VersionControlError(f"{type(e).__name__}: {e}") from e


def build_version_control(settings: Settings) -> Optional[VersionControlOps]:
    mode = (settings.vcs_mode or "off").strip().lower()
    if mode == "mock":
        from buildheal.gitops.mock_github import MockVersionControl

        return MockVersionControl(root_dir=settings.mock_github_dir, public_base_url=settings.public_base_url)
    if mode == "github":
        if not settings.github_token:
            raise ValueError("BUILDHEAL_GITHUB_TOKEN is required for vcs_mode=github")
        from buildheal.gitops.github_rest import GitHubVersionControl

        return GitHubVersionControl(
            token=settings.github_token,
            api_base=settings.github_api_base,
            base_branch=settings.github_base_branch,
        )
    return None
