"""
Response submission and live navigation endpoints.
"""
from fastapi import APIRouter, Depends, status

from surveyflow.api.deps import get_response_service, http_error
from surveyflow.core.exceptions import SurveyFlowError
from surveyflow.schemas.logic import NavigationRequest, NavigationResponse
from surveyflow.schemas.response import ResponseSubmit, SubmissionResponse
from surveyflow.services.response_service import ResponseService

router = APIRouter()


@router.post(
    "/surveys/{survey_id}/responses",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_response(
    survey_id: str,
    data: ResponseSubmit,
    service: ResponseService = Depends(get_response_service),
):
    """
    Submit a response.

    A respondent screened out by a full quota is not an error: the result
    has status "terminated" with the quota's action, message and redirect URL.
    """
    try:
        result = await service.submit_response(survey_id, data)
    except SurveyFlowError as e:
        raise http_error(e)
    return result.to_schema()


@router.post("/surveys/{survey_id}/logic/resolve", response_model=NavigationResponse)
async def resolve_navigation(
    survey_id: str,
    data: NavigationRequest,
    service: ResponseService = Depends(get_response_service),
):
    """Resolve where to go after a question was answered."""
    try:
        decision = await service.resolve_navigation(
            survey_id, data.answered_question_id, data.answers
        )
    except SurveyFlowError as e:
        raise http_error(e)
    return decision.to_response()
