"""Triage result model and validator."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, Field

from .cleanup import clean_speakable_text
from .fields import (
    as_bool,
    as_choice,
    as_mapping,
    as_optional_text,
    as_text,
    as_text_list,
    as_unit_interval,
)
from .parsing import parse_document

Severity = Literal["emergency", "urgent", "routine", "self_care"]
CareLevel = Literal["home", "phc", "district_hospital", "emergency"]
Urgency = Literal["immediate", "within_6h", "within_24h", "within_week", "when_convenient"]

SEVERITIES: tuple[str, ...] = ("emergency", "urgent", "routine", "self_care")
CARE_LEVELS: tuple[str, ...] = ("home", "phc", "district_hospital", "emergency")
URGENCIES: tuple[str, ...] = ("immediate", "within_6h", "within_24h", "within_week", "when_convenient")
EMERGENCY_NUMBER_SEVERITIES = frozenset({"emergency", "urgent"})

DEFAULT_SEVERITY: Severity = "urgent"
DEFAULT_CARE_LEVEL: CareLevel = "phc"
DEFAULT_URGENCY: Urgency = "within_24h"
DEFAULT_CONFIDENCE = 0.0
DEFAULT_DISCLAIMER = (
    "This is guidance only, not a medical diagnosis. Please consult a qualified healthcare provider."
)


class DoctorSummary(BaseModel):
    english: str = ""
    local: str = ""


class FollowUpOption(BaseModel):
    label: str
    value: str


class ActionPlan(BaseModel):
    go_to: str = ""
    care_level: CareLevel = DEFAULT_CARE_LEVEL
    urgency: Urgency = DEFAULT_URGENCY
    tell_doctor: DoctorSummary = Field(default_factory=DoctorSummary)
    do_not: list[str] = Field(default_factory=list)
    first_aid: list[str] = Field(default_factory=list)
    emergency_numbers: list[str] = Field(default_factory=list)


class TriageResult(BaseModel):
    """Fully typed final result. Every field carries a usable value."""

    is_medical_query: bool = True
    redirect_message: str | None = None
    severity: Severity = DEFAULT_SEVERITY
    confidence: float = Field(default=DEFAULT_CONFIDENCE, ge=0.0, le=1.0)
    reasoning_summary: str = ""
    symptoms_identified: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    risk_factors: list[str] = Field(default_factory=list)
    needs_follow_up: bool = False
    follow_up_question: str | None = None
    follow_up_options: list[FollowUpOption] | None = None
    action_plan: ActionPlan = Field(default_factory=ActionPlan)
    disclaimer: str = DEFAULT_DISCLAIMER


def _clean_list(values: list[str]) -> list[str]:
    cleaned = (clean_speakable_text(value) for value in values)
    return [value for value in cleaned if value]


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    return clean_speakable_text(value) or None


def _follow_up_options(value: Any) -> list[FollowUpOption] | None:
    if not isinstance(value, list):
        return None
    options: list[FollowUpOption] = []
    for item in value:
        if isinstance(item, str) and item.strip():
            label = clean_speakable_text(item)
            options.append(FollowUpOption(label=label, value=label))
            continue
        mapping = as_mapping(item)
        label = clean_speakable_text(as_text(mapping.get("label")))
        if not label:
            continue
        option_value = clean_speakable_text(as_text(mapping.get("value"))) or label
        options.append(FollowUpOption(label=label, value=option_value))
    return options or None


def _action_plan(raw: Mapping[str, Any], severity: str) -> ActionPlan:
    tell_doctor = as_mapping(raw.get("tell_doctor"))
    emergency_numbers = as_text_list(raw.get("emergency_numbers"))
    if severity not in EMERGENCY_NUMBER_SEVERITIES:
        emergency_numbers = []
    return ActionPlan(
        go_to=clean_speakable_text(as_text(raw.get("go_to"))),
        care_level=as_choice(raw.get("care_level"), CARE_LEVELS, DEFAULT_CARE_LEVEL),
        urgency=as_choice(raw.get("urgency"), URGENCIES, DEFAULT_URGENCY),
        tell_doctor=DoctorSummary(
            english=clean_speakable_text(as_text(tell_doctor.get("english"))),
            local=clean_speakable_text(as_text(tell_doctor.get("local"))),
        ),
        do_not=_clean_list(as_text_list(raw.get("do_not"))),
        first_aid=_clean_list(as_text_list(raw.get("first_aid"))),
        emergency_numbers=[number.strip() for number in emergency_numbers],
    )


def build_triage_result(document: Mapping[str, Any]) -> TriageResult:
    """Validate every field of ``document`` independently."""
    is_medical = as_bool(document.get("is_medical_query"), True)
    severity = as_choice(document.get("severity"), SEVERITIES, DEFAULT_SEVERITY)
    needs_follow_up = as_bool(document.get("needs_follow_up"), False)

    redirect_message = None if is_medical else _clean_optional(as_optional_text(document.get("redirect_message")))
    follow_up_question = None
    follow_up_options = None
    if needs_follow_up:
        follow_up_question = _clean_optional(as_optional_text(document.get("follow_up_question")))
        follow_up_options = _follow_up_options(document.get("follow_up_options"))

    disclaimer = clean_speakable_text(as_text(document.get("disclaimer"))) or DEFAULT_DISCLAIMER
    return TriageResult(
        is_medical_query=is_medical,
        redirect_message=redirect_message,
        severity=severity,
        confidence=as_unit_interval(document.get("confidence"), DEFAULT_CONFIDENCE),
        reasoning_summary=clean_speakable_text(as_text(document.get("reasoning_summary"))),
        symptoms_identified=_clean_list(as_text_list(document.get("symptoms_identified"))),
        red_flags=_clean_list(as_text_list(document.get("red_flags"))),
        risk_factors=_clean_list(as_text_list(document.get("risk_factors"))),
        needs_follow_up=needs_follow_up,
        follow_up_question=follow_up_question,
        follow_up_options=follow_up_options,
        action_plan=_action_plan(as_mapping(document.get("action_plan")), severity),
        disclaimer=disclaimer,
    )


def validate_triage_result(text: str) -> TriageResult:
    """Turn accumulated model text into a ``TriageResult``. Never raises."""
    document = parse_document(text)
    result = build_triage_result(document)
    logger.info(
        "validator.result severity={} confidence={:.2f} medical={} follow_up={} fields={}",
        result.severity,
        result.confidence,
        result.is_medical_query,
        result.needs_follow_up,
        len(document),
    )
    return result
