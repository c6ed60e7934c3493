"""
API v1 router that combines all endpoint routers.
"""
from fastapi import APIRouter

from surveyflow.api.v1.endpoints import logic, quotas, responses

api_router = APIRouter()

api_router.include_router(responses.router, tags=["Responses"])
api_router.include_router(logic.router, tags=["Logic"])
api_router.include_router(quotas.router, tags=["Quotas"])
