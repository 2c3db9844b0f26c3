from __future__ import annotations

import re
from typing import List, Optional, Pattern

MAX_AFFECTED_FILES = 5

# Patterns are case-sensitive; only the rule needles in the classifier are not.
JS_FRAME_RE = re.compile(r"at\s+(.+\.js):")
TEST_FILE_RE = re.compile(r"in\s+(.+\.test\.js)")
MISSING_MODULE_RE = re.compile(r"Cannot find module ['\"](.+?)['\"]")
SYNTAX_ERROR_RE = re.compile(r"SyntaxError: (.+)")


def extract_matches(logs: Optional[str], pattern: Pattern[str], *, limit: int = MAX_AFFECTED_FILES) -> List[str]:
    """
    Collect the first capture group of every match, in first-seen order, without duplicates.
    Never raises: empty or malformed text simply yields [].
    """
    if not logs or limit <= 0:
        return []
    out: List[str] = []
    for m in pattern.finditer(logs):
        value = m.group(1)
        if not value or value in out:
            continue
        out.append(value)
        if len(out) >= limit:
            break
    return out


def extract_js_paths(logs: Optional[str]) -> List[str]:
    return extract_matches(logs, JS_FRAME_RE)


def extract_test_paths(logs: Optional[str]) -> List[str]:
    return extract_matches(logs, TEST_FILE_RE)


def extract_missing_modules(logs: Optional[str]) -> List[str]:
    return extract_matches(logs, MISSING_MODULE_RE)


def extract_syntax_error(logs: Optional[str]) -> Optional[str]:
    """First `SyntaxError: <message>` line, message only."""
    if not logs:
        return None
    m = SYNTAX_ERROR_RE.search(logs)
    return m.group(1) if m else None
