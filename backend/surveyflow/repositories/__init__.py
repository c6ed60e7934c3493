"""
Data-access layer. Services depend on these narrow ports, never on raw
sessions, so the decision logic can be tested against in-memory fakes.
"""
from surveyflow.repositories.logic import LogicRepository, LogicRule, SQLAlchemyLogicRepository
from surveyflow.repositories.quota import QuotaRepository, SQLAlchemyQuotaRepository
from surveyflow.repositories.survey import SQLAlchemySurveyRepository

__all__ = [
    "LogicRepository",
    "LogicRule",
    "SQLAlchemyLogicRepository",
    "QuotaRepository",
    "SQLAlchemyQuotaRepository",
    "SQLAlchemySurveyRepository",
]
