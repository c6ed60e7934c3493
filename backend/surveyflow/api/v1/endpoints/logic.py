"""
Logic rule endpoints.
"""
from fastapi import APIRouter, Depends, status

from surveyflow.api.deps import get_logic_service, http_error
from surveyflow.core.exceptions import SurveyFlowError
from surveyflow.schemas.logic import LogicRuleCreate, LogicRuleListResponse, LogicRuleResponse
from surveyflow.services.logic_service import LogicService

router = APIRouter()


@router.get("/surveys/{survey_id}/logic", response_model=LogicRuleListResponse)
async def list_rules(
    survey_id: str,
    service: LogicService = Depends(get_logic_service),
):
    """List a survey's rules in evaluation order."""
    try:
        rules = await service.list_rules(survey_id)
    except SurveyFlowError as e:
        raise http_error(e)

    return LogicRuleListResponse(
        items=[LogicRuleResponse.model_validate(r) for r in rules],
        total=len(rules),
    )


@router.post(
    "/surveys/{survey_id}/logic",
    response_model=LogicRuleResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_rule(
    survey_id: str,
    data: LogicRuleCreate,
    service: LogicService = Depends(get_logic_service),
):
    """Create a logic rule."""
    try:
        rule = await service.create_rule(survey_id, data)
    except SurveyFlowError as e:
        raise http_error(e)
    return LogicRuleResponse.model_validate(rule)


@router.delete("/logic/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: str,
    service: LogicService = Depends(get_logic_service),
):
    """Delete a logic rule."""
    try:
        await service.delete_rule(rule_id)
    except SurveyFlowError as e:
        raise http_error(e)
