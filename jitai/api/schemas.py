"""
Pydantic schemas for the JITAI REST API.

Requests are validated here and converted into the engine's dataclasses;
responses wrap engine results in the common envelope.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from jitai.models.context import InterventionContext
from jitai.models.enums import (
    ConfidenceLevel,
    ContentArm,
    InterventionType,
    UserChoice,
    UserFeedback,
    UserPersona,
)
from jitai.models.intervention_result import InterventionOutcomeRecord
from jitai.services.collaborators import OpportunityDetection, PersonaDetection

# =============================================================================
# Envelope
# =============================================================================


def success_response(data: Any) -> dict[str, Any]:
    """Standard success envelope."""
    return {"success": True, "data": data}


def error_response(error_code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Standard error envelope."""
    return {"success": False, "error": {"code": error_code, "message": message, "details": details or {}}}


# =============================================================================
# Context and signals
# =============================================================================


class ContextSchema(BaseModel):
    """Usage context at the moment of a potential intervention."""

    time_of_day: int = Field(..., ge=0, le=23)
    day_of_week: int = Field(..., ge=1, le=7)
    is_weekend: bool
    target_app: str = Field(..., min_length=1, max_length=255)
    current_session_minutes: int = Field(default=0, ge=0)
    session_count_this_bout: int = Field(default=1, ge=1)
    last_session_end_time: int | None = None
    time_since_last_session: int | None = Field(default=None, ge=0)
    quick_reopen_attempt: bool = False
    total_usage_today: int = Field(default=0, ge=0)
    total_usage_yesterday: int = Field(default=0, ge=0)
    weekly_average: int = Field(default=0, ge=0)
    goal_minutes: int | None = Field(default=None, ge=0)
    is_over_goal: bool = False
    streak_days: int = Field(default=0, ge=0)
    friction_level: int = Field(default=0, ge=0)
    days_since_install: int = Field(default=0, ge=0)
    best_session_minutes: int = Field(default=0, ge=0)

    def to_context(self) -> InterventionContext:
        return InterventionContext(**self.model_dump())


class SignalsSchema(BaseModel):
    """Pre-computed persona and opportunity signals."""

    persona: UserPersona | None = None
    persona_confidence: ConfidenceLevel = ConfidenceLevel.LOW
    opportunity_score: int | None = Field(default=None, ge=0, le=100)

    def to_persona(self) -> PersonaDetection | None:
        if self.persona is None:
            return None
        return PersonaDetection(persona=self.persona, confidence=self.persona_confidence)

    def to_opportunity(self) -> OpportunityDetection | None:
        if self.opportunity_score is None:
            return None
        return OpportunityDetection.from_score(self.opportunity_score)


# =============================================================================
# Requests
# =============================================================================


class DecisionRequest(BaseModel):
    """Ask whether an intervention may be shown now."""

    context: ContextSchema
    intervention_type: InterventionType = InterventionType.REMINDER
    session_duration_ms: int = Field(..., ge=0)
    signals: SignalsSchema = Field(default_factory=SignalsSchema)


class SelectionRequest(BaseModel):
    """Ask which content type to show."""

    context: ContextSchema
    signals: SignalsSchema = Field(default_factory=SignalsSchema)
    intervention_id: int | None = None


class OutcomeRequest(BaseModel):
    """User response to a tracked intervention. Choice/feedback stay raw strings."""

    intervention_id: int
    user_choice: str = Field(..., max_length=50)
    feedback: str | None = Field(default=None, max_length=50)
    session_continued: bool | None = None
    session_duration_after_ms: int | None = Field(default=None, ge=0)
    quick_reopen: bool | None = None
    reopen_delay_ms: int | None = Field(default=None, ge=0)
    context: ContextSchema | None = None  # trains the timing learner when given


class InterventionShownRequest(BaseModel):
    intervention_type: InterventionType = InterventionType.REMINDER


class OutcomeRecordRequest(BaseModel):
    """Full outcome record appended to the outcome store."""

    session_id: int
    target_app: str = Field(..., min_length=1, max_length=255)
    intervention_type: str = Field(..., max_length=50)
    content_type: ContentArm
    hour_of_day: int = Field(..., ge=0, le=23)
    day_of_week: int = Field(..., ge=1, le=7)
    is_weekend: bool
    user_choice: str = Field(..., max_length=50)
    timestamp: int = Field(..., ge=0)
    session_count_this_bout: int = Field(default=1, ge=1)
    quick_reopen_flag: bool = False
    session_duration_at_show_ms: int = Field(default=0, ge=0)
    time_to_decision_ms: int = Field(default=0, ge=0)
    user_feedback: str | None = Field(default=None, max_length=50)
    was_snoozed: bool = False
    session_ended_normally: bool | None = None
    final_session_duration_ms: int | None = Field(default=None, ge=0)

    def to_record(self) -> InterventionOutcomeRecord:
        data = self.model_dump()
        data["content_type"] = self.content_type.value
        data["user_choice"] = UserChoice.parse(self.user_choice)
        data["user_feedback"] = UserFeedback.parse(self.user_feedback)
        return InterventionOutcomeRecord(**data)
