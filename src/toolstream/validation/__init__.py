"""Final result validation."""

from .cleanup import clean_speakable_text
from .parsing import parse_document
from .triage import (
    ActionPlan,
    DoctorSummary,
    FollowUpOption,
    TriageResult,
    build_triage_result,
    validate_triage_result,
)

__all__ = [
    "ActionPlan",
    "DoctorSummary",
    "FollowUpOption",
    "TriageResult",
    "build_triage_result",
    "clean_speakable_text",
    "parse_document",
    "validate_triage_result",
]
