from __future__ import annotations

from typing import Dict

from buildheal.models import RootCauseType

DEFAULT_CONFIDENCE = 0.30

CONFIDENCE_BY_TYPE: Dict[str, float] = {
    RootCauseType.lint.value: 0.95,
    RootCauseType.dependency.value: 0.90,
    RootCauseType.test.value: 0.70,
    RootCauseType.syntax.value: 0.60,
    RootCauseType.runtime.value: 0.50,
    RootCauseType.unknown.value: 0.20,
}


def score(root_cause_type: RootCauseType | str) -> float:
    """
    Static lookup; never adjusted by apply outcomes.
    """
    key = root_cause_type.value if isinstance(root_cause_type, RootCauseType) else str(root_cause_type)
    return CONFIDENCE_BY_TYPE.get(key, DEFAULT_CONFIDENCE)
