"""
Quota and QuotaResponse models.
"""
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    String, Boolean, ForeignKey, Text, Integer, JSON,
    Enum as SQLEnum, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from surveyflow.db.base import Base, UUIDMixin, TimestampMixin, PositionMixin

if TYPE_CHECKING:
    from surveyflow.models.survey import Survey


class QuotaAction(str, enum.Enum):
    """What happens to a matching response once the quota is full."""
    END_SURVEY = "END_SURVEY"
    REDIRECT = "REDIRECT"
    CONTINUE = "CONTINUE"


# Actions that stop a submission when their quota is full
BLOCKING_QUOTA_ACTIONS = frozenset({QuotaAction.END_SURVEY, QuotaAction.REDIRECT})


class Quota(Base, UUIDMixin, TimestampMixin, PositionMixin):
    """
    Cap on the number of responses matching an answer pattern.

    current_count is only ever changed by a single SQL
    ``current_count = current_count + 1`` update (see QuotaRepository).
    """

    __tablename__ = "quotas"
    __table_args__ = (
        CheckConstraint('"limit" >= 1', name="ck_quotas_limit_positive"),
        CheckConstraint("current_count >= 0", name="ck_quotas_count_non_negative"),
    )

    survey_id: Mapped[str] = mapped_column(
        ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    survey: Mapped["Survey"] = relationship("Survey", back_populates="quotas")

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    limit: Mapped[int] = mapped_column(Integer, nullable=False)
    current_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    action: Mapped[QuotaAction] = mapped_column(
        SQLEnum(QuotaAction), default=QuotaAction.END_SURVEY
    )
    action_message: Mapped[Optional[str]] = mapped_column(Text)
    action_url: Mapped[Optional[str]] = mapped_column(String(2048))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # AND-combined, same wire shape as SurveyLogic.conditions
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Fill-level alerts
    alert_at_50: Mapped[bool] = mapped_column(Boolean, default=False)
    alert_at_80: Mapped[bool] = mapped_column(Boolean, default=False)
    alert_at_100: Mapped[bool] = mapped_column(Boolean, default=True)
    alert_emails: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    quota_responses: Mapped[List["QuotaResponse"]] = relationship(
        "QuotaResponse", back_populates="quota", cascade="all, delete-orphan"
    )

    @property
    def is_full(self) -> bool:
        return self.current_count >= self.limit

    def __repr__(self) -> str:
        return f"<Quota {self.name} {self.current_count}/{self.limit}>"


class QuotaResponse(Base, UUIDMixin, TimestampMixin):
    """Join row recording that a response was counted against a quota."""

    __tablename__ = "quota_responses"
    __table_args__ = (
        UniqueConstraint("quota_id", "response_id", name="uq_quota_responses_quota_response"),
    )

    quota_id: Mapped[str] = mapped_column(
        ForeignKey("quotas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quota: Mapped["Quota"] = relationship("Quota", back_populates="quota_responses")

    response_id: Mapped[str] = mapped_column(
        ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<QuotaResponse quota={self.quota_id} response={self.response_id}>"
