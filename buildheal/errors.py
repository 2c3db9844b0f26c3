"""
Error taxonomy for the remediation engine.

Only InvalidEvent and NotFound ever reach callers of the engine. The soft errors
(DiagnosisUnavailable, BroadcastFailure, VersionControlError) are raised by
collaborators, caught by the engine and written to the audit log.
"""

from __future__ import annotations


class BuildHealError(Exception):
    pass


class InvalidEvent(BuildHealError):
    """Raised when a build event cannot be processed (unparseable payload or missing buildId)."""

    pass


class NotFound(BuildHealError):
    """Raised when no remediation exists for a buildId."""

    def __init__(self, build_id: str) -> None:
        self.build_id = build_id
        super().__init__(f"no remediation found for build {build_id!r}")


class DiagnosisUnavailable(BuildHealError):
    """The language-model collaborator failed or timed out."""

    pass


class BroadcastFailure(BuildHealError):
    """One or more broadcast listeners failed to accept a message."""

    def __init__(self, topic: str, errors: list[str]) -> None:
        self.topic = topic
        self.errors = errors
        super().__init__(f"broadcast of {topic!r} failed for {len(errors)} listener(s): {errors}")


class VersionControlError(BuildHealError):
    """Branch/patch/PR forwarding to the version control collaborator failed."""

    pass
