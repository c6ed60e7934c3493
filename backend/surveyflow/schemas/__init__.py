"""Pydantic schemas for API request/response validation."""
from surveyflow.schemas.logic import (
    Action,
    Condition,
    LogicRuleCreate,
    LogicRuleResponse,
    LogicRuleListResponse,
    NavigationRequest,
    NavigationResponse,
)
from surveyflow.schemas.quota import (
    QuotaCreate,
    QuotaUpdate,
    QuotaResponseSchema,
    InterlockedQuotaCreate,
    QuotaCheckRequest,
    QuotaCheckResponse,
    QuotaStatusResponse,
)
from surveyflow.schemas.response import (
    AnswerSubmit,
    ResponseSubmit,
    ResponseRead,
    SubmissionResponse,
    SubmissionStatus,
)

__all__ = [
    "Action",
    "Condition",
    "LogicRuleCreate",
    "LogicRuleResponse",
    "LogicRuleListResponse",
    "NavigationRequest",
    "NavigationResponse",
    "QuotaCreate",
    "QuotaUpdate",
    "QuotaResponseSchema",
    "InterlockedQuotaCreate",
    "QuotaCheckRequest",
    "QuotaCheckResponse",
    "QuotaStatusResponse",
    "AnswerSubmit",
    "ResponseSubmit",
    "ResponseRead",
    "SubmissionResponse",
    "SubmissionStatus",
]
