from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from buildheal.models import PatchDescriptor, PatchKind, RootCause, RootCauseType
from buildheal.parsers.log_paths import extract_js_paths, extract_syntax_error, extract_test_paths

LINT_FIX_COMMAND = "npm run lint -- --fix"
SNAPSHOT_UPDATE_COMMAND = "npm test -- --updateSnapshot"
DEPENDENCY_MANIFESTS = ["package.json", "package-lock.json"]


@dataclass(frozen=True)
class PatchSynthesizer:
    """
    Deterministic patch templates keyed by root-cause type (no LLM calls).

    The descriptors are advisory: commands and scripts are rendered text and are
    never executed here.
    """

    def synthesize(self, root_cause: RootCause, logs: Optional[str]) -> PatchDescriptor:
        text = logs or ""
        t = root_cause.type
        if t == RootCauseType.lint:
            return self._lint_fix()
        if t == RootCauseType.dependency:
            return self._dependency_fix(root_cause)
        if t == RootCauseType.syntax:
            return self._syntax_fix(text)
        if t == RootCauseType.test:
            return self._test_fix(text)
        return self._manual()

    def _lint_fix(self) -> PatchDescriptor:
        script = "\n".join(
            [
                "#!/bin/bash",
                "# Auto-fix ESLint violations",
                LINT_FIX_COMMAND,
                "git add .",
                'git commit -m "fix: auto-fix ESLint violations"',
            ]
        )
        return PatchDescriptor(
            kind=PatchKind.auto_fix,
            command=LINT_FIX_COMMAND,
            description="Run ESLint auto-fix",
            files=[],
            script=script,
        )

    def _dependency_fix(self, root_cause: RootCause) -> PatchDescriptor:
        modules = list(root_cause.affected_files)
        command = f"npm install {' '.join(modules)}".rstrip()
        # ENOENT names a missing file, not a package.
        description = (
            f"Install missing dependencies: {', '.join(modules)}" if modules else "Reinstall dependencies (missing file)"
        )
        script = "\n".join(
            [
                "#!/bin/bash",
                "# Install missing dependencies",
                command,
                f"git add {' '.join(DEPENDENCY_MANIFESTS)}",
                'git commit -m "fix: install missing dependencies"',
            ]
        )
        return PatchDescriptor(
            kind=PatchKind.install,
            command=command,
            description=description,
            files=list(DEPENDENCY_MANIFESTS),
            script=script,
        )

    def _syntax_fix(self, logs: str) -> PatchDescriptor:
        error_msg = extract_syntax_error(logs) or "Unknown syntax error"
        script = "\n".join(
            [
                "# Manual fix required",
                f"# Error: {error_msg}",
                "# Review affected files and correct syntax",
            ]
        )
        return PatchDescriptor(
            kind=PatchKind.code_edit,
            command=None,
            description=f"Fix syntax error: {error_msg}",
            suggestion="Review the syntax error and apply the suggested fix",
            files=extract_js_paths(logs),
            script=script,
        )

    def _test_fix(self, logs: str) -> PatchDescriptor:
        script = "\n".join(
            [
                "#!/bin/bash",
                "# Update test snapshots if applicable",
                SNAPSHOT_UPDATE_COMMAND,
                "git add .",
                'git commit -m "fix: update test snapshots"',
            ]
        )
        return PatchDescriptor(
            kind=PatchKind.test_update,
            command=SNAPSHOT_UPDATE_COMMAND,
            description="Update failing tests or fix implementation",
            suggestion="Review test failures and update assertions or implementation",
            files=extract_test_paths(logs),
            script=script,
        )

    def _manual(self) -> PatchDescriptor:
        return PatchDescriptor(
            kind=PatchKind.manual,
            command=None,
            description="Requires manual intervention: manual review required",
            suggestion="Review logs and apply fixes manually",
            files=[],
            script="# Manual review required\n# Review logs and apply fixes manually",
        )


def synthesize(root_cause: RootCause, logs: Optional[str]) -> PatchDescriptor:
    return PatchSynthesizer().synthesize(root_cause, logs)
