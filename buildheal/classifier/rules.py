from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from buildheal.models import RootCause, RootCauseCategory, RootCauseType, Severity
from buildheal.parsers.log_paths import extract_js_paths, extract_missing_modules, extract_test_paths


@dataclass(frozen=True)
class ClassificationRule:
    needles: Tuple[str, ...]
    type: RootCauseType
    category: RootCauseCategory
    severity: Severity
    description: str
    extract_files: Callable[[str], List[str]]

    def matches(self, logs_lower: str) -> bool:
        return any(n in logs_lower for n in self.needles)


# Evaluated top to bottom, first match wins. Reordering changes classifications
# (e.g. a lint run that also prints "SyntaxError" must stay `lint`).
DEFAULT_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        needles=("eslint", "lint error"),
        type=RootCauseType.lint,
        category=RootCauseCategory.code_quality,
        severity=Severity.medium,
        description="ESLint violations detected",
        extract_files=extract_js_paths,
    ),
    ClassificationRule(
        needles=("test failed", "assertion"),
        type=RootCauseType.test,
        category=RootCauseCategory.testing,
        severity=Severity.high,
        description="Unit test failures",
        extract_files=extract_test_paths,
    ),
    ClassificationRule(
        needles=("cannot find module", "enoent"),
        type=RootCauseType.dependency,
        category=RootCauseCategory.environment,
        severity=Severity.high,
        description="Missing dependencies or files",
        extract_files=extract_missing_modules,
    ),
    ClassificationRule(
        needles=("syntaxerror", "unexpected token"),
        type=RootCauseType.syntax,
        category=RootCauseCategory.code_quality,
        severity=Severity.critical,
        description="JavaScript syntax errors",
        extract_files=extract_js_paths,
    ),
    ClassificationRule(
        needles=("typeerror", "is not a function"),
        type=RootCauseType.runtime,
        category=RootCauseCategory.code_logic,
        severity=Severity.high,
        description="Runtime type errors",
        extract_files=extract_js_paths,
    ),
)


UNKNOWN_ROOT_CAUSE = RootCause(
    type=RootCauseType.unknown,
    category=RootCauseCategory.general,
    severity=Severity.medium,
    description="Build failure - manual review required",
    affected_files=[],
)


@dataclass(frozen=True)
class LogClassifier:
    """
    Deterministic, rule-based root-cause detection over raw build log text.
    Total over any input: unmatched or empty logs classify as `unknown`.
    """

    rules: Tuple[ClassificationRule, ...] = DEFAULT_RULES

    def match_rule(self, logs: Optional[str]) -> Optional[ClassificationRule]:
        logs_lower = (logs or "").lower()
        for rule in self.rules:
            if rule.matches(logs_lower):
                return rule
        return None

    def classify(self, logs: Optional[str]) -> RootCause:
        text = logs or ""
        rule = self.match_rule(text)
        if rule is None:
            return UNKNOWN_ROOT_CAUSE
        return RootCause(
            type=rule.type,
            category=rule.category,
            severity=rule.severity,
            description=rule.description,
            affected_files=rule.extract_files(text),
        )


def classify(logs: Optional[str]) -> RootCause:
    return LogClassifier().classify(logs)
