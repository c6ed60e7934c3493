"""
Survey, Question and SurveyLogic models.

These rows are authored elsewhere; the response-flow engine only reads them.
"""
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from sqlalchemy import (
    DateTime, String, Boolean, ForeignKey, Text, Integer, JSON, Index, Enum as SQLEnum
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from surveyflow.db.base import Base, UUIDMixin, TimestampMixin, PositionMixin

if TYPE_CHECKING:
    from surveyflow.models.quota import Quota


class SurveyStatus(str, enum.Enum):
    """Survey lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class QuestionType(str, enum.Enum):
    """Question types."""
    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOXES = "checkboxes"
    DROPDOWN = "dropdown"
    YES_NO = "yes_no"
    NUMBER = "number"
    RATING_SCALE = "rating_scale"
    NPS = "nps"
    SLIDER = "slider"
    DATE = "date"
    EMAIL = "email"
    RANKING = "ranking"


# Answers to these types are compared numerically
NUMERIC_QUESTION_TYPES = frozenset({
    QuestionType.NUMBER,
    QuestionType.RATING_SCALE,
    QuestionType.NPS,
    QuestionType.SLIDER,
})

# Answers to these types are lists of selected values
MULTI_VALUE_QUESTION_TYPES = frozenset({
    QuestionType.CHECKBOXES,
    QuestionType.RANKING,
})


class LogicType(str, enum.Enum):
    """Rule type. Informational only: every type is evaluated the same way."""
    SKIP_LOGIC = "SKIP_LOGIC"
    BRANCHING = "BRANCHING"
    DISPLAY_LOGIC = "DISPLAY_LOGIC"


class Survey(Base, UUIDMixin, TimestampMixin):
    """Survey model."""

    __tablename__ = "surveys"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[SurveyStatus] = mapped_column(
        SQLEnum(SurveyStatus), default=SurveyStatus.DRAFT
    )

    # Submission limits
    close_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    response_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quotas_enabled: Mapped[bool] = mapped_column(Boolean, default=True)

    # Relationships
    questions: Mapped[List["Question"]] = relationship(
        "Question",
        back_populates="survey",
        cascade="all, delete-orphan",
        order_by="Question.order",
    )
    logic_rules: Mapped[List["SurveyLogic"]] = relationship(
        "SurveyLogic", back_populates="survey", cascade="all, delete-orphan"
    )
    quotas: Mapped[List["Quota"]] = relationship(
        "Quota", back_populates="survey", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Survey {self.title}>"


class Question(Base, UUIDMixin, TimestampMixin):
    """A survey question."""

    __tablename__ = "questions"

    survey_id: Mapped[str] = mapped_column(
        ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    survey: Mapped["Survey"] = relationship("Survey", back_populates="questions")

    type: Mapped[QuestionType] = mapped_column(
        SQLEnum(QuestionType), default=QuestionType.SHORT_TEXT
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    order: Mapped[int] = mapped_column(Integer, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)

    options: Mapped[List["QuestionOption"]] = relationship(
        "QuestionOption",
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionOption.order",
    )

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_QUESTION_TYPES

    @property
    def is_multi_value(self) -> bool:
        return self.type in MULTI_VALUE_QUESTION_TYPES

    def __repr__(self) -> str:
        return f"<Question {self.id} order={self.order}>"


class QuestionOption(Base, UUIDMixin):
    """Selectable option of a choice question."""

    __tablename__ = "question_options"

    question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question: Mapped["Question"] = relationship("Question", back_populates="options")

    text: Mapped[str] = mapped_column(String(500), nullable=False)
    value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    order: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<QuestionOption {self.text}>"


class SurveyLogic(Base, UUIDMixin, TimestampMixin, PositionMixin):
    """
    A conditional navigation rule attached to a source question.

    conditions and actions are stored as JSON lists in their wire shape:
        conditions: [{"questionId": "...", "operator": "EQUALS", "value": "No"}]
        actions:    [{"type": "SKIP_TO", "targetQuestionId": "..."}]

    Rules are evaluated in (priority, position) order.
    """

    __tablename__ = "survey_logic"
    __table_args__ = (
        Index("ix_survey_logic_order", "survey_id", "priority", "position"),
    )

    survey_id: Mapped[str] = mapped_column(
        ForeignKey("surveys.id", ondelete="CASCADE"), nullable=False, index=True
    )
    survey: Mapped["Survey"] = relationship("Survey", back_populates="logic_rules")

    source_question_id: Mapped[str] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_question_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("questions.id", ondelete="SET NULL"), nullable=True
    )

    type: Mapped[LogicType] = mapped_column(
        SQLEnum(LogicType), default=LogicType.SKIP_LOGIC
    )
    priority: Mapped[int] = mapped_column(Integer, default=0)

    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<SurveyLogic {self.id} source={self.source_question_id}>"
