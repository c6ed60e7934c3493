"""
Logic rule data access.

The rule engine depends only on the LogicRepository protocol; the
SQLAlchemy implementation validates stored JSON into typed rules here, at
the data-access boundary.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from surveyflow.core.exceptions import ValidationError
from surveyflow.models.survey import SurveyLogic
from surveyflow.schemas.logic import Action, Condition, parse_actions, parse_conditions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogicRule:
    """A validated, read-only logic rule."""
    id: str
    source_question_id: str
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    priority: int = 0
    position: int = 0


class LogicRepository(Protocol):
    """Read port used by the rule engine."""

    async def list_rules(
        self,
        survey_id: str,
        source_question_id: Optional[str] = None,
    ) -> List[LogicRule]:
        """Rules of a survey in (priority, position) order."""
        ...


def to_logic_rule(row: SurveyLogic) -> Optional[LogicRule]:
    """Convert a stored rule, or None if its JSON payload is malformed."""
    try:
        return LogicRule(
            id=row.id,
            source_question_id=row.source_question_id,
            conditions=parse_conditions(row.conditions),
            actions=parse_actions(row.actions),
            priority=row.priority or 0,
            position=row.position or 0,
        )
    except ValidationError as e:
        logger.warning(f"Skipping malformed logic rule {row.id}: {e.message}")
        return None


class SQLAlchemyLogicRepository:
    """SurveyLogic storage backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_rules(
        self,
        survey_id: str,
        source_question_id: Optional[str] = None,
    ) -> List[LogicRule]:
        rows = await self.list_rows(survey_id, source_question_id)
        rules = [to_logic_rule(row) for row in rows]
        return [rule for rule in rules if rule is not None]

    async def list_rows(
        self,
        survey_id: str,
        source_question_id: Optional[str] = None,
    ) -> List[SurveyLogic]:
        query = select(SurveyLogic).where(SurveyLogic.survey_id == survey_id)
        if source_question_id:
            query = query.where(SurveyLogic.source_question_id == source_question_id)
        query = query.order_by(SurveyLogic.priority, SurveyLogic.position)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_row(self, rule_id: str) -> Optional[SurveyLogic]:
        result = await self.db.execute(
            select(SurveyLogic).where(SurveyLogic.id == rule_id)
        )
        return result.scalar_one_or_none()

    async def next_position(self, survey_id: str) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.max(SurveyLogic.position), 0)).where(
                SurveyLogic.survey_id == survey_id
            )
        )
        return (result.scalar() or 0) + 1

    async def add(self, rule: SurveyLogic) -> SurveyLogic:
        self.db.add(rule)
        await self.db.commit()
        await self.db.refresh(rule)
        return rule

    async def delete(self, rule: SurveyLogic) -> None:
        await self.db.delete(rule)
        await self.db.commit()
