"""
Response submission orchestrator.

A submission moves through four steps:

1. Collecting: answers are normalized and the question list is walked,
   applying logic decisions (visibility changes, forward jumps, END_SURVEY).
2. Validating: every reached, visible, required question must be answered.
3. Quota gating: the first full END_SURVEY/REDIRECT quota the answers
   match stops the submission. The response is kept as screened, and the
   caller gets a TERMINATED result rather than an error.
4. Committing and counting: the response is persisted, then counted
   against every matching quota, whatever its action.

Nothing is written before step 3, so a rejected submission leaves no trace.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from surveyflow.core.exceptions import NotFoundError, ValidationError
from surveyflow.models.quota import BLOCKING_QUOTA_ACTIONS, QuotaAction
from surveyflow.models.response import Answer, QuotaStatus, Response, TerminalReason
from surveyflow.models.survey import Question, Survey, SurveyStatus
from surveyflow.repositories.logic import LogicRule
from surveyflow.repositories.survey import SQLAlchemySurveyRepository
from surveyflow.schemas.response import (
    AnswerSubmit,
    QuotaOutcome,
    ResponseRead,
    ResponseSubmit,
    SubmissionResponse,
    SubmissionStatus,
)
from surveyflow.services.condition_evaluator import is_unanswered, lookup_from_answers, to_number
from surveyflow.services.logic_engine import (
    LogicRuleEngine,
    NavigationDecision,
    NavigationKind,
    decide,
    initial_visibility,
)
from surveyflow.services.quota_service import QuotaCheckResult, QuotaService

logger = logging.getLogger(__name__)


@dataclass
class NormalizedAnswer:
    value: Any
    option_id: Optional[str] = None


@dataclass
class WalkResult:
    """Questions reached while walking a survey, and their final visibility."""
    reached: List[str] = field(default_factory=list)
    visibility: Dict[str, bool] = field(default_factory=dict)
    ended_by_logic: bool = False

    def is_active(self, question_id: str) -> bool:
        return question_id in self.reached and self.visibility.get(question_id, True)

    @property
    def visible_question_ids(self) -> List[str]:
        return [qid for qid in self.reached if self.visibility.get(qid, True)]


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    response: Response
    navigation: NavigationDecision
    quota: Optional[QuotaOutcome] = None
    visible_question_ids: List[str] = field(default_factory=list)

    def to_schema(self) -> SubmissionResponse:
        return SubmissionResponse(
            status=self.status,
            response=ResponseRead.model_validate(self.response),
            navigation=self.navigation.to_response(),
            quota=self.quota,
            visible_question_ids=self.visible_question_ids,
        )


def walk_survey(
    questions: List[Question],
    rules: List[LogicRule],
    answers: Mapping[str, Any],
) -> WalkResult:
    """
    Walk questions in order, applying each visible, answered question's
    logic decision.

    Jumps are only followed forward; a jump back to a question already
    passed is ignored, which keeps a cyclic rule graph from looping.
    """
    question_ids = [q.id for q in questions]
    index_of = {qid: i for i, qid in enumerate(question_ids)}
    question_types = {q.id: q.type for q in questions}
    lookup = lookup_from_answers(answers)

    result = WalkResult(visibility=initial_visibility(rules, question_ids))

    i = 0
    while i < len(questions):
        question_id = question_ids[i]
        result.reached.append(question_id)

        if not result.visibility.get(question_id, True) or is_unanswered(lookup(question_id)):
            i += 1
            continue

        decision = decide(rules, question_id, lookup, question_types)
        result.visibility.update(decision.visibility)

        if decision.kind == NavigationKind.TERMINATE:
            result.ended_by_logic = True
            break

        if decision.kind == NavigationKind.JUMP_TO:
            target_index = index_of.get(decision.target_question_id)
            if target_index is None:
                logger.warning(f"Jump from {question_id} to unknown question {decision.target_question_id}")
            elif target_index <= i:
                logger.info(f"Not following backward jump from {question_id} to {decision.target_question_id}")
            else:
                i = target_index
                continue

        i += 1

    return result


class ResponseService:
    """Accepts survey submissions and resolves live navigation."""

    def __init__(
        self,
        survey_repository: SQLAlchemySurveyRepository,
        logic_engine: LogicRuleEngine,
        quota_service: QuotaService,
    ):
        self.survey_repository = survey_repository
        self.logic_engine = logic_engine
        self.quota_service = quota_service

    async def _get_survey(self, survey_id: str) -> Survey:
        survey = await self.survey_repository.get_survey(survey_id)
        if not survey:
            raise NotFoundError("Survey not found")
        return survey

    async def resolve_navigation(
        self,
        survey_id: str,
        answered_question_id: str,
        answers: Mapping[str, Any],
    ) -> NavigationDecision:
        """Navigation after a single answer, for clients walking the survey live."""
        survey = await self._get_survey(survey_id)
        question_types = {q.id: q.type for q in survey.questions}
        if answered_question_id not in question_types:
            raise NotFoundError(f"Question {answered_question_id} not found in survey")

        return await self.logic_engine.resolve(
            survey_id, answered_question_id, answers, question_types
        )

    async def check_quotas(self, survey_id: str, answers: Mapping[str, Any]) -> QuotaCheckResult:
        """
        Advisory quota check. Answers are normalized and typed exactly as a
        submission would be, so the result agrees with admission.

        An unknown survey has no quotas and yields an empty result.
        """
        survey = await self.survey_repository.get_survey(survey_id)
        if not survey:
            return QuotaCheckResult()

        normalized = self._normalize_answers(
            survey,
            [AnswerSubmit(question_id=qid, value=value) for qid, value in answers.items()],
        )
        return await self.quota_service.check_quotas(
            survey_id,
            {qid: a.value for qid, a in normalized.items()},
            {q.id: q.type for q in survey.questions},
        )

    async def submit_response(self, survey_id: str, submission: ResponseSubmit) -> SubmissionResult:
        """
        Submit a complete set of answers.

        Raises:
            NotFoundError: Survey does not exist
            ValidationError: Survey closed, malformed answers, or a reached
                visible required question left unanswered

        Returns:
            COMPLETED, or TERMINATED when a full quota screened the respondent
        """
        survey = await self._get_survey(survey_id)

        if submission.response_id:
            existing = await self.survey_repository.get_response(submission.response_id)
            if existing:
                return await self._replay(survey, existing)

        try:
            return await self._admit(survey, submission)
        except IntegrityError:
            # Concurrent retry with the same response id won the insert
            if not submission.response_id:
                raise
            existing = await self.survey_repository.get_response(submission.response_id)
            if not existing:
                raise
            return await self._replay(await self._get_survey(survey_id), existing)

    async def _admit(self, survey: Survey, submission: ResponseSubmit) -> SubmissionResult:
        """Validate, gate, persist and count a first-time submission."""
        survey_id = survey.id
        await self._check_accepting(survey)

        questions = list(survey.questions)
        rules = await self.logic_engine.list_rules(survey_id)

        # Collecting
        normalized = self._normalize_answers(survey, submission.answers)
        values = {qid: a.value for qid, a in normalized.items()}
        walk = walk_survey(questions, rules, values)

        # Validating
        missing = [
            q.id for q in questions
            if q.is_required and walk.is_active(q.id) and q.id not in normalized
        ]
        if missing:
            raise ValidationError(f"Required questions not answered: {', '.join(missing)}")

        effective = {qid: a for qid, a in normalized.items() if walk.is_active(qid)}
        dropped = set(normalized) - set(effective)
        if dropped:
            logger.debug(f"Ignoring answers to skipped or hidden questions: {sorted(dropped)}")

        response = Response(
            survey_id=survey_id,
            quota_status=QuotaStatus.NORMAL,
            matched_quota_ids=[],
            response_metadata=submission.metadata or {},
            answers=[
                Answer(question_id=qid, option_id=a.option_id, value=a.value)
                for qid, a in effective.items()
            ],
        )
        if submission.response_id:
            response.id = submission.response_id

        # Quota gating
        matched_quota_ids: List[str] = []
        if survey.quotas_enabled:
            check = await self.quota_service.check_quotas(
                survey_id,
                {qid: a.value for qid, a in effective.items()},
                {q.id: q.type for q in questions},
            )
            blocking = next(
                (q for q in check.reached_quotas if q.action in BLOCKING_QUOTA_ACTIONS),
                None,
            )
            if blocking:
                return await self._screen(response, blocking, walk)

            if check.quota_reached:
                response.quota_status = QuotaStatus.OVER_QUOTA
            matched_quota_ids = check.matching_quota_ids

        # Committing
        response.is_complete = True
        response.completed_at = datetime.now(timezone.utc)
        response.matched_quota_ids = matched_quota_ids
        if walk.ended_by_logic:
            response.terminal_reason = TerminalReason.LOGIC_END

        response = await self.survey_repository.add_response(response)
        response_id = response.id
        logger.info(f"Response {response_id} completed for survey {survey_id}")

        # Counting
        if matched_quota_ids:
            await self.quota_service.increment_quotas(response_id, matched_quota_ids)
            response = await self.survey_repository.get_response(response_id)

        return SubmissionResult(
            status=SubmissionStatus.COMPLETED,
            response=response,
            navigation=self._final_navigation(walk),
            visible_question_ids=walk.visible_question_ids,
        )

    async def _check_accepting(self, survey: Survey) -> None:
        if survey.status != SurveyStatus.ACTIVE:
            raise ValidationError("Survey is not accepting responses")

        if survey.close_date:
            close_date = survey.close_date
            if close_date.tzinfo is None:
                close_date = close_date.replace(tzinfo=timezone.utc)
            if close_date <= datetime.now(timezone.utc):
                raise ValidationError("Survey is closed")

        if survey.response_limit is not None:
            completed = await self.survey_repository.count_complete_responses(survey.id)
            if completed >= survey.response_limit:
                raise ValidationError("Survey has reached its response limit")

    def _normalize_answers(
        self,
        survey: Survey,
        answers: List[AnswerSubmit],
    ) -> Dict[str, NormalizedAnswer]:
        """
        Resolve option ids to option text and check each value fits its
        question type. Blank answers are treated as unanswered.
        """
        questions = {q.id: q for q in survey.questions}
        normalized: Dict[str, NormalizedAnswer] = {}

        for answer in answers:
            question = questions.get(answer.question_id)
            if question is None:
                raise ValidationError(f"Question {answer.question_id} does not belong to this survey")
            if answer.question_id in normalized:
                raise ValidationError(f"Question {answer.question_id} answered more than once")

            options = {o.id: o for o in question.options}
            value = answer.value
            option_id = None

            if answer.option_ids is not None:
                try:
                    value = [options[oid].text for oid in answer.option_ids]
                except KeyError as e:
                    raise ValidationError(f"Unknown option {e.args[0]} for question {question.id}") from e
            elif answer.option_id is not None:
                option = options.get(answer.option_id)
                if option is None:
                    raise ValidationError(f"Unknown option {answer.option_id} for question {question.id}")
                value = option.text
                option_id = option.id

            if is_unanswered(value):
                continue

            if question.is_multi_value:
                if not isinstance(value, list):
                    raise ValidationError(f"Question {question.id} expects a list of values")
            elif isinstance(value, (list, dict)):
                raise ValidationError(f"Question {question.id} expects a single value")
            elif question.is_numeric:
                number = to_number(value)
                if number is None:
                    raise ValidationError(f"Question {question.id} expects a number")
                value = int(number) if number.is_integer() else number

            normalized[question.id] = NormalizedAnswer(value=value, option_id=option_id)

        return normalized

    async def _screen(self, response: Response, quota, walk: WalkResult) -> SubmissionResult:
        """Persist a response stopped by a full blocking quota."""
        outcome = QuotaOutcome(
            quota_id=quota.id,
            action=quota.action,
            message=quota.action_message,
            redirect_url=quota.action_url if quota.action == QuotaAction.REDIRECT else None,
        )

        response.is_complete = False
        response.quota_status = QuotaStatus.SCREENED
        response.terminal_reason = (
            TerminalReason.QUOTA_REDIRECT
            if quota.action == QuotaAction.REDIRECT
            else TerminalReason.QUOTA_END_SURVEY
        )
        response.terminal_quota_id = outcome.quota_id
        response.terminal_message = outcome.message
        response.redirect_url = outcome.redirect_url

        response = await self.survey_repository.add_response(response)
        logger.info(
            f"Response {response.id} screened by quota {outcome.quota_id} ({outcome.action.value})"
        )

        return SubmissionResult(
            status=SubmissionStatus.TERMINATED,
            response=response,
            navigation=NavigationDecision(kind=NavigationKind.TERMINATE, visibility=walk.visibility),
            quota=outcome,
            visible_question_ids=walk.visible_question_ids,
        )

    async def _replay(self, survey: Survey, response: Response) -> SubmissionResult:
        """
        Return the stored outcome of a response that was already submitted.

        A completed response is re-counted against its matched quotas; pairs
        already recorded are skipped, so this only heals a partial count.
        """
        if response.survey_id != survey.id:
            raise ValidationError("Response belongs to another survey")

        response_id = response.id
        rules = await self.logic_engine.list_rules(survey.id)
        walk = walk_survey(
            list(survey.questions),
            rules,
            {a.question_id: a.value for a in response.answers},
        )
        logger.info(f"Replaying stored outcome of response {response_id}")

        if response.is_complete:
            if response.matched_quota_ids:
                await self.quota_service.increment_quotas(response_id, list(response.matched_quota_ids))
                response = await self.survey_repository.get_response(response_id)
            return SubmissionResult(
                status=SubmissionStatus.COMPLETED,
                response=response,
                navigation=self._final_navigation(walk),
                visible_question_ids=walk.visible_question_ids,
            )

        if response.terminal_reason in (TerminalReason.QUOTA_END_SURVEY, TerminalReason.QUOTA_REDIRECT):
            action = (
                QuotaAction.REDIRECT
                if response.terminal_reason == TerminalReason.QUOTA_REDIRECT
                else QuotaAction.END_SURVEY
            )
            return SubmissionResult(
                status=SubmissionStatus.TERMINATED,
                response=response,
                navigation=NavigationDecision(kind=NavigationKind.TERMINATE, visibility=walk.visibility),
                quota=QuotaOutcome(
                    quota_id=response.terminal_quota_id,
                    action=action,
                    message=response.terminal_message,
                    redirect_url=response.redirect_url,
                ),
                visible_question_ids=walk.visible_question_ids,
            )

        raise ValidationError("Response is not finalized")

    @staticmethod
    def _final_navigation(walk: WalkResult) -> NavigationDecision:
        kind = NavigationKind.TERMINATE if walk.ended_by_logic else NavigationKind.CONTINUE
        return NavigationDecision(kind=kind, visibility=dict(walk.visibility))
