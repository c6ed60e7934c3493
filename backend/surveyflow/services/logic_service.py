"""
Logic rule authoring.
"""
import logging
from typing import List

from surveyflow.core.exceptions import NotFoundError, ValidationError
from surveyflow.models.survey import SurveyLogic
from surveyflow.repositories.logic import SQLAlchemyLogicRepository
from surveyflow.repositories.survey import SQLAlchemySurveyRepository
from surveyflow.schemas.logic import ActionType, LogicRuleCreate, dump_actions, dump_conditions

logger = logging.getLogger(__name__)


class LogicService:
    """Service for creating, listing and deleting logic rules."""

    def __init__(
        self,
        logic_repository: SQLAlchemyLogicRepository,
        survey_repository: SQLAlchemySurveyRepository,
    ):
        self.logic_repository = logic_repository
        self.survey_repository = survey_repository

    async def _question_ids(self, survey_id: str) -> set:
        survey = await self.survey_repository.get_survey(survey_id)
        if not survey:
            raise NotFoundError("Survey not found")
        return {q.id for q in survey.questions}

    async def create_rule(self, survey_id: str, data: LogicRuleCreate) -> SurveyLogic:
        """
        Create a rule after checking every question it references belongs
        to the survey. The rule is appended after existing rules of equal
        priority.
        """
        question_ids = await self._question_ids(survey_id)

        referenced = [data.source_question_id]
        if data.target_question_id:
            referenced.append(data.target_question_id)
        referenced.extend(c.question_id for c in data.conditions)
        referenced.extend(a.target_question_id for a in data.actions if a.target_question_id)

        for question_id in referenced:
            if question_id not in question_ids:
                raise NotFoundError(f"Question {question_id} not found in survey")

        for action in data.actions:
            if action.type == ActionType.SKIP_TO and action.target_question_id == data.source_question_id:
                raise ValidationError("SKIP_TO cannot target the rule's own source question")

        rule = SurveyLogic(
            survey_id=survey_id,
            source_question_id=data.source_question_id,
            target_question_id=data.target_question_id,
            type=data.type,
            priority=data.priority,
            position=await self.logic_repository.next_position(survey_id),
            conditions=dump_conditions(data.conditions),
            actions=dump_actions(data.actions),
        )
        rule = await self.logic_repository.add(rule)

        logger.info(f"Created logic rule {rule.id} on question {rule.source_question_id}")
        return rule

    async def list_rules(self, survey_id: str) -> List[SurveyLogic]:
        """Rules of a survey in evaluation order."""
        await self._question_ids(survey_id)
        return await self.logic_repository.list_rows(survey_id)

    async def delete_rule(self, rule_id: str) -> None:
        rule = await self.logic_repository.get_row(rule_id)
        if not rule:
            raise NotFoundError("Logic rule not found")
        await self.logic_repository.delete(rule)
        logger.info(f"Deleted logic rule {rule_id}")
