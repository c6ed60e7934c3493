"""
Quota endpoints.
"""
from fastapi import APIRouter, Depends, status

from surveyflow.api.deps import get_quota_service, get_response_service, http_error
from surveyflow.core.exceptions import SurveyFlowError
from surveyflow.schemas.quota import (
    InterlockedQuotaCreate,
    InterlockedQuotaResponse,
    QuotaCheckRequest,
    QuotaCheckResponse,
    QuotaCreate,
    QuotaResponseSchema,
    QuotaStatusResponse,
    QuotaUpdate,
    ReachedQuota,
)
from surveyflow.services.quota_service import QuotaService
from surveyflow.services.response_service import ResponseService

router = APIRouter()


# ============================================================================
# Survey Quota Endpoints
# ============================================================================

@router.get("/surveys/{survey_id}/quotas", response_model=QuotaStatusResponse)
async def get_quota_status(
    survey_id: str,
    service: QuotaService = Depends(get_quota_service),
):
    """Fill level of every quota of a survey."""
    try:
        return await service.get_quota_status(survey_id)
    except SurveyFlowError as e:
        raise http_error(e)


@router.post(
    "/surveys/{survey_id}/quotas",
    response_model=QuotaResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_quota(
    survey_id: str,
    data: QuotaCreate,
    service: QuotaService = Depends(get_quota_service),
):
    """Create a quota."""
    try:
        quota = await service.create_quota(survey_id, data)
    except SurveyFlowError as e:
        raise http_error(e)
    return QuotaResponseSchema.model_validate(quota)


@router.post(
    "/surveys/{survey_id}/quotas/interlocked",
    response_model=InterlockedQuotaResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_interlocked_quotas(
    survey_id: str,
    data: InterlockedQuotaCreate,
    service: QuotaService = Depends(get_quota_service),
):
    """Create a cross-tabulated quota matrix over two questions."""
    try:
        quotas = await service.create_interlocked_quotas(survey_id, data)
    except SurveyFlowError as e:
        raise http_error(e)

    return InterlockedQuotaResponse(
        items=[QuotaResponseSchema.model_validate(q) for q in quotas],
        total=len(quotas),
    )


@router.post("/surveys/{survey_id}/quotas/check", response_model=QuotaCheckResponse)
async def check_quotas(
    survey_id: str,
    data: QuotaCheckRequest,
    service: ResponseService = Depends(get_response_service),
):
    """Advisory check of answers against the survey's active quotas."""
    try:
        result = await service.check_quotas(survey_id, data.answers)
    except SurveyFlowError as e:
        raise http_error(e)

    reached = result.reached_quota
    return QuotaCheckResponse(
        quota_reached=result.quota_reached,
        quota=ReachedQuota(
            id=reached.id,
            name=reached.name,
            action=reached.action,
            message=reached.action_message,
            url=reached.action_url,
        ) if reached else None,
        matching_quotas=result.matching_quota_ids,
    )


# ============================================================================
# Single Quota Endpoints
# ============================================================================

@router.put("/quotas/{quota_id}", response_model=QuotaResponseSchema)
async def update_quota(
    quota_id: str,
    data: QuotaUpdate,
    service: QuotaService = Depends(get_quota_service),
):
    """Update a quota."""
    try:
        quota = await service.update_quota(quota_id, data)
    except SurveyFlowError as e:
        raise http_error(e)
    return QuotaResponseSchema.model_validate(quota)


@router.delete("/quotas/{quota_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quota(
    quota_id: str,
    service: QuotaService = Depends(get_quota_service),
):
    """Delete a quota."""
    try:
        await service.delete_quota(quota_id)
    except SurveyFlowError as e:
        raise http_error(e)


@router.patch("/quotas/{quota_id}/toggle", response_model=QuotaResponseSchema)
async def toggle_quota(
    quota_id: str,
    service: QuotaService = Depends(get_quota_service),
):
    """Activate or deactivate a quota. Its count is kept."""
    try:
        quota = await service.toggle_quota(quota_id)
    except SurveyFlowError as e:
        raise http_error(e)
    return QuotaResponseSchema.model_validate(quota)


@router.post("/quotas/{quota_id}/reset", response_model=QuotaResponseSchema)
async def reset_quota(
    quota_id: str,
    service: QuotaService = Depends(get_quota_service),
):
    """Reset a quota's count to zero."""
    try:
        quota = await service.reset_quota(quota_id)
    except SurveyFlowError as e:
        raise http_error(e)
    return QuotaResponseSchema.model_validate(quota)
