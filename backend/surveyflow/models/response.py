"""
Response and Answer models.
"""
from datetime import datetime
from typing import Any, Optional, List
from sqlalchemy import DateTime, String, ForeignKey, Text, JSON, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from surveyflow.db.base import Base, UUIDMixin, TimestampMixin


class QuotaStatus(str, enum.Enum):
    """Quota outcome recorded on a response."""
    NORMAL = "normal"
    OVER_QUOTA = "over_quota"  # matched a full CONTINUE quota
    SCREENED = "screened"      # stopped by a full END_SURVEY/REDIRECT quota


class TerminalReason(str, enum.Enum):
    """Why a response ended before the last question."""
    LOGIC_END = "logic_end"
    QUOTA_END_SURVEY = "quota_end_survey"
    QUOTA_REDIRECT = "quota_redirect"


class Response(Base, UUIDMixin, TimestampMixin):
    """
    A single respondent's submission.

    Created at submission and never touched by the flow engine once
    finalized (is_complete or a terminal_reason is set).
    """

    __tablename__ = "responses"

    survey_id: Mapped[str] = mapped_column(
        ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )

    is_complete: Mapped[bool] = mapped_column(default=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    quota_status: Mapped[QuotaStatus] = mapped_column(
        SQLEnum(QuotaStatus), default=QuotaStatus.NORMAL
    )

    # Terminal metadata
    terminal_reason: Mapped[Optional[TerminalReason]] = mapped_column(
        SQLEnum(TerminalReason), nullable=True
    )
    terminal_quota_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    terminal_message: Mapped[Optional[str]] = mapped_column(Text)
    redirect_url: Mapped[Optional[str]] = mapped_column(String(2048))

    # Quotas this response matched at gating time; replayed on client retry
    matched_quota_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    response_metadata: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)

    answers: Mapped[List["Answer"]] = relationship(
        "Answer", back_populates="response", cascade="all, delete-orphan"
    )

    @property
    def is_terminated(self) -> bool:
        return not self.is_complete and self.terminal_reason is not None

    def __repr__(self) -> str:
        return f"<Response {self.id} complete={self.is_complete}>"


class Answer(Base, UUIDMixin, TimestampMixin):
    """
    Answer to one question.

    value holds a scalar (text, number, date string) or a list of selected
    values for checkbox/ranking questions.
    """

    __tablename__ = "answers"

    response_id: Mapped[str] = mapped_column(
        ForeignKey("responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    response: Mapped["Response"] = relationship("Response", back_populates="answers")

    question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id"), nullable=False, index=True
    )
    option_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("question_options.id", ondelete="SET NULL"), nullable=True
    )

    value: Mapped[Any] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Answer question={self.question_id}>"
