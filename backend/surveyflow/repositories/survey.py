"""
Survey and response data access used by the submission orchestrator.
"""
from typing import Optional

from sqlalchemy import select, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from surveyflow.models.response import Response
from surveyflow.models.survey import Question, Survey


class SQLAlchemySurveyRepository:
    """Survey, Question and Response storage backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_survey(self, survey_id: str) -> Optional[Survey]:
        """Load a survey with its questions and their options."""
        result = await self.db.execute(
            select(Survey)
            .where(Survey.id == survey_id)
            .options(selectinload(Survey.questions).selectinload(Question.options))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def count_complete_responses(self, survey_id: str) -> int:
        result = await self.db.execute(
            select(func.count(Response.id)).where(
                and_(
                    Response.survey_id == survey_id,
                    Response.is_complete == True,  # noqa: E712
                )
            )
        )
        return result.scalar() or 0

    async def get_response(self, response_id: str) -> Optional[Response]:
        result = await self.db.execute(
            select(Response)
            .where(Response.id == response_id)
            .options(selectinload(Response.answers))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add_response(self, response: Response) -> Response:
        """Persist a response with its answers in one transaction."""
        self.db.add(response)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        return await self.get_response(response.id)
