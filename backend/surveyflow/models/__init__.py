"""
SQLAlchemy models for the survey response-flow engine.
"""
from surveyflow.models.survey import (
    Survey,
    SurveyStatus,
    Question,
    QuestionType,
    QuestionOption,
    SurveyLogic,
    LogicType,
)
from surveyflow.models.quota import Quota, QuotaAction, QuotaResponse
from surveyflow.models.response import Response, Answer, QuotaStatus, TerminalReason

__all__ = [
    "Survey",
    "SurveyStatus",
    "Question",
    "QuestionType",
    "QuestionOption",
    "SurveyLogic",
    "LogicType",
    "Quota",
    "QuotaAction",
    "QuotaResponse",
    "Response",
    "Answer",
    "QuotaStatus",
    "TerminalReason",
]
