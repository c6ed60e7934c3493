"""
Response submission schemas.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from surveyflow.models.quota import QuotaAction
from surveyflow.models.response import QuotaStatus, TerminalReason
from surveyflow.schemas.logic import NavigationResponse


class SubmissionStatus(str, Enum):
    """Terminal state of a submission."""
    COMPLETED = "completed"
    TERMINATED = "terminated"


class AnswerSubmit(BaseModel):
    """
    A single submitted answer.

    Choice questions may send option_id (or option_ids for checkboxes);
    those resolve to the option text before evaluation.
    """
    model_config = ConfigDict(populate_by_name=True)

    question_id: str = Field(..., alias="questionId")
    value: Any = None
    option_id: Optional[str] = Field(None, alias="optionId")
    option_ids: Optional[List[str]] = Field(None, alias="optionIds")


class ResponseSubmit(BaseModel):
    """Schema for submitting a response."""
    model_config = ConfigDict(populate_by_name=True)

    # Client-generated id; resubmitting it is idempotent
    response_id: Optional[str] = Field(None, alias="responseId", max_length=36)
    answers: List[AnswerSubmit] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None


class AnswerResponse(BaseModel):
    """Schema for a stored answer."""
    question_id: str
    option_id: Optional[str]
    value: Any

    model_config = {"from_attributes": True}


class ResponseRead(BaseModel):
    """Schema for a stored response."""
    id: str
    survey_id: str
    is_complete: bool
    completed_at: Optional[datetime]
    quota_status: QuotaStatus
    terminal_reason: Optional[TerminalReason]
    terminal_quota_id: Optional[str]
    matched_quota_ids: List[str]
    answers: List[AnswerResponse]

    model_config = {"from_attributes": True}


class QuotaOutcome(BaseModel):
    """Quota that stopped a submission."""
    quota_id: str
    action: QuotaAction
    message: Optional[str] = None
    redirect_url: Optional[str] = None


class SubmissionResponse(BaseModel):
    """Result of a submission: completed, or terminated by a quota."""
    status: SubmissionStatus
    response: ResponseRead
    navigation: NavigationResponse
    quota: Optional[QuotaOutcome] = None
    visible_question_ids: List[str] = Field(default_factory=list)
