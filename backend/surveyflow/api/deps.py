"""
API dependencies for dependency injection.
"""
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from surveyflow.core.exceptions import NotFoundError, SurveyFlowError, ValidationError
from surveyflow.db.session import get_db
from surveyflow.repositories.logic import SQLAlchemyLogicRepository
from surveyflow.repositories.quota import SQLAlchemyQuotaRepository
from surveyflow.repositories.survey import SQLAlchemySurveyRepository
from surveyflow.services.logic_engine import LogicRuleEngine
from surveyflow.services.logic_service import LogicService
from surveyflow.services.quota_service import QuotaService
from surveyflow.services.response_service import ResponseService

__all__ = [
    "get_db",
    "get_logic_service",
    "get_quota_service",
    "get_response_service",
    "http_error",
]


def get_quota_service(db: AsyncSession = Depends(get_db)) -> QuotaService:
    """Quota service bound to the request's session."""
    return QuotaService(
        SQLAlchemyQuotaRepository(db),
        survey_repository=SQLAlchemySurveyRepository(db),
    )


def get_logic_service(db: AsyncSession = Depends(get_db)) -> LogicService:
    """Logic rule authoring service bound to the request's session."""
    return LogicService(SQLAlchemyLogicRepository(db), SQLAlchemySurveyRepository(db))


def get_response_service(
    db: AsyncSession = Depends(get_db),
    quota_service: QuotaService = Depends(get_quota_service),
) -> ResponseService:
    """Submission orchestrator bound to the request's session."""
    return ResponseService(
        SQLAlchemySurveyRepository(db),
        LogicRuleEngine(SQLAlchemyLogicRepository(db)),
        quota_service,
    )


def http_error(error: SurveyFlowError) -> HTTPException:
    """Translate a domain error into the matching HTTP error."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message)
