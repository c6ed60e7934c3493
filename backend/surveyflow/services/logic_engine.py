"""
Logic rule engine: decides where a respondent goes after answering a
question.

Rules attached to the answered question are evaluated in
(priority, position) order. SKIP_TO and END_SURVEY are exclusive, so the
first one found wins. SHOW and HIDE accumulate, and a later rule overrides
an earlier one on the same target. The engine makes exactly one pass per
call and never follows its own output, so cyclic rule graphs cannot loop
here.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from surveyflow.repositories.logic import LogicRepository, LogicRule
from surveyflow.schemas.logic import ActionType, NavigationResponse
from surveyflow.services.condition_evaluator import (
    AnswerLookup,
    QuestionTypes,
    evaluate_all,
    lookup_from_answers,
)

logger = logging.getLogger(__name__)


class NavigationKind(str, Enum):
    CONTINUE = "CONTINUE"
    JUMP_TO = "JUMP_TO"
    VISIBILITY_CHANGE = "VISIBILITY_CHANGE"
    TERMINATE = "TERMINATE"


@dataclass(frozen=True)
class NavigationDecision:
    """
    Result of resolving one answered question.

    JUMP_TO and TERMINATE decisions still carry any visibility changes
    made by rules that fired alongside them.
    """
    kind: NavigationKind
    target_question_id: Optional[str] = None
    visibility: Dict[str, bool] = field(default_factory=dict)

    def to_response(self) -> NavigationResponse:
        return NavigationResponse(
            kind=self.kind.value,
            target_question_id=self.target_question_id,
            visibility=dict(self.visibility),
        )


CONTINUE = NavigationDecision(kind=NavigationKind.CONTINUE)


def initial_visibility(rules: Iterable[LogicRule], question_ids: Iterable[str]) -> Dict[str, bool]:
    """
    Starting visibility of every question.

    A question that is the target of any SHOW action starts hidden; every
    other question starts visible.
    """
    shown_by_rule = {
        action.target_question_id
        for rule in rules
        for action in rule.actions
        if action.type == ActionType.SHOW
    }
    return {qid: qid not in shown_by_rule for qid in question_ids}


def decide(
    rules: Iterable[LogicRule],
    answered_question_id: str,
    answer_lookup: AnswerLookup,
    question_types: Optional[QuestionTypes] = None,
) -> NavigationDecision:
    """Single firing pass over rules already in evaluation order."""
    exclusive = None
    visibility: Dict[str, bool] = {}

    for rule in rules:
        if rule.source_question_id != answered_question_id:
            continue
        if not evaluate_all(rule.conditions, answer_lookup, question_types):
            continue

        logger.debug(f"Logic rule {rule.id} fired for question {answered_question_id}")

        for action in rule.actions:
            if action.type in (ActionType.SKIP_TO, ActionType.END_SURVEY):
                if exclusive is None:
                    exclusive = action
                else:
                    logger.debug(f"Ignoring {action.type} from rule {rule.id}: {exclusive.type} already chosen")
            elif action.type == ActionType.SHOW:
                visibility[action.target_question_id] = True
            elif action.type == ActionType.HIDE:
                visibility[action.target_question_id] = False

    if exclusive is not None:
        if exclusive.type == ActionType.END_SURVEY:
            return NavigationDecision(kind=NavigationKind.TERMINATE, visibility=visibility)
        return NavigationDecision(
            kind=NavigationKind.JUMP_TO,
            target_question_id=exclusive.target_question_id,
            visibility=visibility,
        )

    if visibility:
        return NavigationDecision(kind=NavigationKind.VISIBILITY_CHANGE, visibility=visibility)

    return CONTINUE


class LogicRuleEngine:
    """Resolves navigation decisions against rules from a LogicRepository."""

    def __init__(self, repository: LogicRepository):
        self.repository = repository

    async def list_rules(self, survey_id: str) -> List[LogicRule]:
        """Every valid rule of a survey, in evaluation order."""
        return await self.repository.list_rules(survey_id)

    async def resolve(
        self,
        survey_id: str,
        answered_question_id: str,
        answers: Mapping[str, Any],
        question_types: Optional[QuestionTypes] = None,
    ) -> NavigationDecision:
        """
        Decide what happens after answered_question_id was answered.

        Args:
            survey_id: Survey the question belongs to
            answered_question_id: Question just answered
            answers: question_id -> value for everything answered so far
            question_types: Optional question_id -> type map

        Returns:
            CONTINUE when no rule fires
        """
        rules = await self.repository.list_rules(survey_id, answered_question_id)
        return decide(rules, answered_question_id, lookup_from_answers(answers), question_types)
