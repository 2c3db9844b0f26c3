from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BuildStatus(str, Enum):
    success = "success"
    failure = "failure"
    in_progress = "in_progress"


class BuildEvent(BaseModel):
    """
    Provider-agnostic build status event (GitHub Actions, Jenkins, simulated triggers).
    This is the single contract ingested by the remediation engine.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    build_id: Optional[str] = Field(default=None, alias="buildId", description="Unique per build attempt.")
    repo_name: Optional[str] = Field(default=None, alias="repoName")
    status: BuildStatus
    logs: Optional[str] = None
    branch: str = "main"
    commit: Optional[str] = None
    timestamp: Optional[datetime] = None


class RootCauseType(str, Enum):
    lint = "lint"
    test = "test"
    dependency = "dependency"
    syntax = "syntax"
    runtime = "runtime"
    unknown = "unknown"


class RootCauseCategory(str, Enum):
    code_quality = "code-quality"
    testing = "testing"
    environment = "environment"
    code_logic = "code-logic"
    general = "general"


class Severity(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class RootCause(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RootCauseType
    category: RootCauseCategory
    severity: Severity
    description: str
    # First-seen order, unique, at most 5 entries.
    affected_files: List[str] = Field(default_factory=list, max_length=5)


class PatchKind(str, Enum):
    auto_fix = "auto-fix"
    install = "install"
    code_edit = "code-edit"
    test_update = "test-update"
    manual = "manual"


class PatchDescriptor(BaseModel):
    """
    Renderable, never-executed description of a proposed fix.
    """

    model_config = ConfigDict(frozen=True)

    kind: PatchKind
    command: Optional[str] = None
    description: str
    suggestion: Optional[str] = None
    files: List[str] = Field(default_factory=list)
    script: str = ""


class RemediationStatus(str, Enum):
    pending = "pending"
    applied = "applied"


class RemediationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    build_id: str
    repo_name: str
    root_cause: RootCause
    patch: PatchDescriptor
    confidence: float = Field(..., ge=0.0, le=1.0)
    suggested_branch: str
    created_at: datetime
    applied_at: Optional[datetime] = None
    status: RemediationStatus = RemediationStatus.pending
    pr_requested: bool = False


class HealthStatus(str, Enum):
    healthy = "healthy"
    warning = "warning"
    error = "error"


class RepoHealth(BaseModel):
    repo_name: str
    status: HealthStatus


class EnrichedUpdate(BaseModel):
    repo_name: str
    build_id: str
    status: BuildStatus
    event: BuildEvent
    diagnosis: Optional[str] = None
    remediation: Optional[RemediationRecord] = None
    timestamp: datetime


class DashboardSnapshot(BaseModel):
    repos: List[RepoHealth] = Field(default_factory=list)
    recent_builds: List[BuildEvent] = Field(default_factory=list)
    pending_remediations: List[RemediationRecord] = Field(default_factory=list)


class PullRequestResult(BaseModel):
    mode: Literal["mock", "real"]
    pr_number: int
    pr_title: str
    pr_url: str
    branch_name: str


class ApplyResult(BaseModel):
    build_id: str
    remediation_id: str
    branch: str
    patch: PatchDescriptor
    confidence: float
    applied_at: datetime
    pr_requested: bool = False
    pr: Optional[PullRequestResult] = None
    pr_error: Optional[str] = None
