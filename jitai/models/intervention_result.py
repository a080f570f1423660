"""
Intervention outcome records.

One record per shown intervention: the context it was shown in, what
the user did, and how the session continued. `InterventionResult` is
the persisted row; `InterventionOutcomeRecord` is the immutable value
the analysis code works with. Raw choice/feedback strings are parsed
into enums when a row is converted to a record.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import BigInteger, Boolean, Column, Index, Integer, String

from jitai.models.base import Base
from jitai.models.context import is_late_night_hour
from jitai.models.enums import UserChoice, UserFeedback

# ============================================================================
# Value Object
# ============================================================================


@dataclass(frozen=True)
class InterventionOutcomeRecord:
    """Immutable outcome of one shown intervention."""

    session_id: int
    target_app: str
    intervention_type: str
    content_type: str  # arm id
    hour_of_day: int
    day_of_week: int
    is_weekend: bool
    user_choice: UserChoice
    timestamp: int  # epoch ms when shown
    session_count_this_bout: int = 1
    quick_reopen_flag: bool = False
    session_duration_at_show_ms: int = 0
    time_to_decision_ms: int = 0
    user_feedback: UserFeedback = UserFeedback.NONE
    was_snoozed: bool = False
    session_ended_normally: bool | None = None
    final_session_duration_ms: int | None = None

    @property
    def is_late_night(self) -> bool:
        return is_late_night_hour(self.hour_of_day)

    @property
    def went_back(self) -> bool:
        return self.user_choice is UserChoice.GO_BACK


# ============================================================================
# SQLAlchemy Model
# ============================================================================


class InterventionResult(Base):
    """Persisted intervention outcome row."""

    __tablename__ = "intervention_results"

    id = Column(Integer, primary_key=True, autoincrement=True)

    session_id = Column(BigInteger, nullable=False)
    target_app = Column(String(255), nullable=False)
    intervention_type = Column(String(50), nullable=False)
    content_type = Column(String(50), nullable=False)

    # Context at show time
    hour_of_day = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    is_weekend = Column(Boolean, nullable=False, default=False)
    session_count_this_bout = Column(Integer, nullable=False, default=1)
    quick_reopen_flag = Column(Boolean, nullable=False, default=False)
    session_duration_at_show_ms = Column(BigInteger, nullable=False, default=0)

    # Outcome
    user_choice = Column(String(20), nullable=False)  # raw, parsed in to_record()
    time_to_decision_ms = Column(BigInteger, nullable=False, default=0)
    user_feedback = Column(String(20), nullable=False, default=UserFeedback.NONE.value)
    was_snoozed = Column(Boolean, nullable=False, default=False)
    timestamp = Column(BigInteger, nullable=False)
    session_ended_normally = Column(Boolean, nullable=True)
    final_session_duration_ms = Column(BigInteger, nullable=True)

    __table_args__ = (
        Index("idx_intervention_results_timestamp", "timestamp"),
        Index("idx_intervention_results_app_timestamp", "target_app", "timestamp"),
    )

    def to_record(self) -> InterventionOutcomeRecord:
        return InterventionOutcomeRecord(
            session_id=self.session_id,
            target_app=self.target_app,
            intervention_type=self.intervention_type,
            content_type=self.content_type,
            hour_of_day=self.hour_of_day,
            day_of_week=self.day_of_week,
            is_weekend=bool(self.is_weekend),
            user_choice=UserChoice.parse(self.user_choice),
            timestamp=self.timestamp,
            session_count_this_bout=self.session_count_this_bout or 1,
            quick_reopen_flag=bool(self.quick_reopen_flag),
            session_duration_at_show_ms=self.session_duration_at_show_ms or 0,
            time_to_decision_ms=self.time_to_decision_ms or 0,
            user_feedback=UserFeedback.parse(self.user_feedback),
            was_snoozed=bool(self.was_snoozed),
            session_ended_normally=self.session_ended_normally,
            final_session_duration_ms=self.final_session_duration_ms,
        )

    @classmethod
    def from_record(cls, record: InterventionOutcomeRecord) -> InterventionResult:
        return cls(
            session_id=record.session_id,
            target_app=record.target_app,
            intervention_type=record.intervention_type,
            content_type=record.content_type,
            hour_of_day=record.hour_of_day,
            day_of_week=record.day_of_week,
            is_weekend=record.is_weekend,
            session_count_this_bout=record.session_count_this_bout,
            quick_reopen_flag=record.quick_reopen_flag,
            session_duration_at_show_ms=record.session_duration_at_show_ms,
            user_choice=record.user_choice.value,
            time_to_decision_ms=record.time_to_decision_ms,
            user_feedback=record.user_feedback.value,
            was_snoozed=record.was_snoozed,
            timestamp=record.timestamp,
            session_ended_normally=record.session_ended_normally,
            final_session_duration_ms=record.final_session_duration_ms,
        )
