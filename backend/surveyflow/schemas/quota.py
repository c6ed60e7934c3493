"""
Quota Pydantic schemas.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from surveyflow.models.quota import QuotaAction
from surveyflow.schemas.logic import Condition


# ============================================================================
# Quota Schemas
# ============================================================================

class QuotaCreate(BaseModel):
    """Schema for creating a quota."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    limit: int = Field(..., ge=1)
    action: QuotaAction = Field(default=QuotaAction.END_SURVEY)
    action_message: Optional[str] = Field(None, alias="actionMessage")
    action_url: Optional[str] = Field(None, alias="actionUrl", max_length=2048)
    is_active: bool = Field(default=True, alias="isActive")
    conditions: List[Condition] = Field(..., min_length=1)

    # Alerts
    alert_at_50: bool = Field(default=False, alias="alertAt50")
    alert_at_80: bool = Field(default=False, alias="alertAt80")
    alert_at_100: bool = Field(default=True, alias="alertAt100")
    alert_emails: List[str] = Field(default_factory=list, alias="alertEmails")

    @model_validator(mode="after")
    def check_action_url(self) -> "QuotaCreate":
        if self.action == QuotaAction.REDIRECT and not self.action_url:
            raise ValueError("actionUrl is required when action is REDIRECT")
        if self.action != QuotaAction.REDIRECT and self.action_url:
            raise ValueError("actionUrl is only allowed when action is REDIRECT")
        return self


class QuotaUpdate(BaseModel):
    """Schema for updating a quota. Conditions are fixed once created."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    limit: Optional[int] = Field(None, ge=1)
    action: Optional[QuotaAction] = None
    action_message: Optional[str] = Field(None, alias="actionMessage")
    action_url: Optional[str] = Field(None, alias="actionUrl", max_length=2048)
    is_active: Optional[bool] = Field(None, alias="isActive")

    alert_at_50: Optional[bool] = Field(None, alias="alertAt50")
    alert_at_80: Optional[bool] = Field(None, alias="alertAt80")
    alert_at_100: Optional[bool] = Field(None, alias="alertAt100")
    alert_emails: Optional[List[str]] = Field(None, alias="alertEmails")


class QuotaResponseSchema(BaseModel):
    """Schema for quota response."""
    id: str
    survey_id: str
    name: str
    description: Optional[str]
    limit: int
    current_count: int
    action: QuotaAction
    action_message: Optional[str]
    action_url: Optional[str]
    is_active: bool
    position: int
    conditions: List[Dict[str, Any]]
    alert_at_50: bool
    alert_at_80: bool
    alert_at_100: bool
    alert_emails: List[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InterlockedQuotaCreate(BaseModel):
    """
    Cross-tabulated quotas over two questions (e.g. Age x Gender).

    limits maps a question-1 value to a map of question-2 value -> limit;
    cells without a positive limit are not created.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    question1_id: str = Field(..., alias="question1Id")
    question1_values: List[str] = Field(..., alias="question1Values", min_length=1)
    question2_id: str = Field(..., alias="question2Id")
    question2_values: List[str] = Field(..., alias="question2Values", min_length=1)
    limits: Dict[str, Dict[str, int]]
    action: QuotaAction = Field(default=QuotaAction.END_SURVEY)
    action_url: Optional[str] = Field(None, alias="actionUrl", max_length=2048)

    @model_validator(mode="after")
    def check_action_url(self) -> "InterlockedQuotaCreate":
        if self.action == QuotaAction.REDIRECT and not self.action_url:
            raise ValueError("actionUrl is required when action is REDIRECT")
        return self


class InterlockedQuotaResponse(BaseModel):
    """Quotas created from an interlocked matrix."""
    items: List[QuotaResponseSchema]
    total: int


# ============================================================================
# Quota Check / Status Schemas
# ============================================================================

class QuotaCheckRequest(BaseModel):
    """Answers to test against a survey's active quotas."""
    answers: Dict[str, Any]


class ReachedQuota(BaseModel):
    """The first full quota among the matching ones."""
    id: str
    name: str
    action: QuotaAction
    message: Optional[str] = None
    url: Optional[str] = None


class QuotaCheckResponse(BaseModel):
    """Advisory quota check result."""
    quota_reached: bool
    quota: Optional[ReachedQuota] = None
    matching_quotas: List[str]


class QuotaStatusItem(BaseModel):
    """Fill level of a single quota."""
    id: str
    name: str
    limit: int
    current_count: int
    percentage: int
    is_active: bool
    action: QuotaAction
    conditions: List[Dict[str, Any]]


class QuotaStatusResponse(BaseModel):
    """Fill levels of every quota of a survey."""
    quotas: List[QuotaStatusItem]
    total_limit: int
    total_count: int
