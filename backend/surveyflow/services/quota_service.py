"""
Quota tracker.

check_quotas is advisory and read-only; increment_quotas is the only path
that changes current_count (reset_quota aside, which is an explicit admin
operation). What a full quota does to a submission is decided by the
submission orchestrator, not here.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from surveyflow.config import settings
from surveyflow.core.exceptions import NotFoundError, ValidationError
from surveyflow.models.quota import Quota, QuotaAction
from surveyflow.repositories.quota import QuotaRepository
from surveyflow.repositories.survey import SQLAlchemySurveyRepository
from surveyflow.schemas.logic import EqualsCondition, dump_conditions, parse_conditions
from surveyflow.schemas.quota import (
    InterlockedQuotaCreate,
    QuotaCreate,
    QuotaStatusItem,
    QuotaStatusResponse,
    QuotaUpdate,
)
from surveyflow.services.condition_evaluator import (
    QuestionTypes,
    evaluate_all,
    lookup_from_answers,
)

logger = logging.getLogger(__name__)


@dataclass
class QuotaCheckResult:
    """
    Outcome of matching answers against the active quotas of a survey.

    reached_quotas are the matching quotas that are already full, in
    position order; reached_quota is the first of them.
    """
    quota_reached: bool = False
    matching_quotas: List[Quota] = field(default_factory=list)
    reached_quotas: List[Quota] = field(default_factory=list)

    @property
    def reached_quota(self) -> Optional[Quota]:
        return self.reached_quotas[0] if self.reached_quotas else None

    @property
    def matching_quota_ids(self) -> List[str]:
        return [q.id for q in self.matching_quotas]


@dataclass
class QuotaAlert:
    """Payload for a fill-level alert email."""
    quota_id: str
    quota_name: str
    survey_id: str
    percentage: int
    current_count: int
    limit: int
    recipients: List[str]


AlertDispatcher = Callable[[QuotaAlert], None]


def dispatch_alert_task(alert: QuotaAlert) -> None:
    """Queue the alert email on the Celery worker."""
    from workers.tasks.email_tasks import send_quota_alert

    try:
        send_quota_alert.delay(**asdict(alert))
    except Exception:
        # Alerts are best effort; a broker outage must not fail counting
        logger.exception(f"Failed to queue alert for quota {alert.quota_id}")


def fill_percentage(count: int, limit: int) -> int:
    """Whole percentage of a quota filled, rounding halves up."""
    return (count * 200 + limit) // (2 * limit)


def crossed_threshold(
    quota: Quota,
    new_count: int,
    thresholds: Sequence[int],
) -> Optional[int]:
    """
    First enabled threshold crossed by the increment that produced new_count.

    Levels 50, 80 and 100 follow the quota's alert_at_* flags; any other
    configured level applies to every quota.
    """
    flags = {50: quota.alert_at_50, 80: quota.alert_at_80, 100: quota.alert_at_100}
    percentage = new_count * 100 / quota.limit
    previous = (new_count - 1) * 100 / quota.limit

    for level in sorted(thresholds):
        if flags.get(level, True) and percentage >= level > previous:
            return level
    return None


class QuotaService:
    """Service for quota matching, counting and administration."""

    def __init__(
        self,
        repository: QuotaRepository,
        survey_repository: Optional[SQLAlchemySurveyRepository] = None,
        alert_dispatcher: Optional[AlertDispatcher] = None,
        alert_thresholds: Optional[Sequence[int]] = None,
    ):
        self.repository = repository
        self.survey_repository = survey_repository
        self.alert_dispatcher = alert_dispatcher or dispatch_alert_task
        self.alert_thresholds = (
            list(alert_thresholds)
            if alert_thresholds is not None
            else settings.quota_alert_threshold_list
        )

    # ========================================================================
    # Matching and counting
    # ========================================================================

    async def check_quotas(
        self,
        survey_id: str,
        answers: Mapping[str, Any],
        question_types: Optional[QuestionTypes] = None,
    ) -> QuotaCheckResult:
        """Match answers against the survey's active quotas. Read-only."""
        quotas = await self.repository.list_quotas(survey_id, active_only=True)
        lookup = lookup_from_answers(answers)
        result = QuotaCheckResult()

        for quota in quotas:
            try:
                conditions = parse_conditions(quota.conditions)
            except ValidationError as e:
                logger.warning(f"Skipping quota {quota.id} with malformed conditions: {e.message}")
                continue

            if not conditions or not evaluate_all(conditions, lookup, question_types):
                continue

            result.matching_quotas.append(quota)
            if quota.current_count >= quota.limit:
                result.reached_quotas.append(quota)

        result.quota_reached = bool(result.reached_quotas)
        return result

    async def increment_quotas(self, response_id: str, quota_ids: Sequence[str]) -> Dict[str, int]:
        """
        Count a response against each quota.

        Each quota is counted in its own transaction, so a failure on one is
        logged and does not affect the others. Pairs already counted are
        skipped.

        Returns:
            quota_id -> new current_count for the quotas actually incremented
        """
        counts: Dict[str, int] = {}

        for quota_id in quota_ids:
            try:
                new_count = await self.repository.increment(quota_id, response_id)
            except SQLAlchemyError:
                logger.exception(f"Failed to increment quota {quota_id} for response {response_id}")
                continue

            if new_count is None:
                logger.debug(f"Quota {quota_id} already counted response {response_id}")
                continue

            counts[quota_id] = new_count
            logger.info(f"Quota {quota_id} incremented to {new_count}")
            await self._check_alerts(quota_id, new_count)

        return counts

    async def _check_alerts(self, quota_id: str, new_count: int) -> None:
        if not settings.quota_alerts_enabled:
            return

        quota = await self.repository.get_quota(quota_id)
        if not quota or not quota.alert_emails:
            return

        level = crossed_threshold(quota, new_count, self.alert_thresholds)
        if level is None:
            return

        logger.info(f"Quota {quota.name} crossed {level}% ({new_count}/{quota.limit})")
        self.alert_dispatcher(
            QuotaAlert(
                quota_id=quota.id,
                quota_name=quota.name,
                survey_id=quota.survey_id,
                percentage=level,
                current_count=new_count,
                limit=quota.limit,
                recipients=list(quota.alert_emails),
            )
        )

    async def get_quota_status(self, survey_id: str) -> QuotaStatusResponse:
        """Fill level of every quota of a survey, active or not."""
        await self._require_survey(survey_id)
        quotas = await self.repository.list_quotas(survey_id)

        items = [
            QuotaStatusItem(
                id=q.id,
                name=q.name,
                limit=q.limit,
                current_count=q.current_count,
                percentage=fill_percentage(q.current_count, q.limit),
                is_active=q.is_active,
                action=q.action,
                conditions=q.conditions,
            )
            for q in quotas
        ]

        return QuotaStatusResponse(
            quotas=items,
            total_limit=sum(q.limit for q in quotas),
            total_count=sum(q.current_count for q in quotas),
        )

    # ========================================================================
    # Administration
    # ========================================================================

    async def _require_survey(self, survey_id: str):
        survey = await self.survey_repository.get_survey(survey_id)
        if not survey:
            raise NotFoundError("Survey not found")
        return survey

    async def _require_questions(self, survey_id: str, question_ids: Sequence[str]) -> None:
        survey = await self._require_survey(survey_id)
        known = {q.id for q in survey.questions}
        for question_id in question_ids:
            if question_id not in known:
                raise NotFoundError(f"Question {question_id} not found in survey")

    async def _get_quota(self, quota_id: str) -> Quota:
        quota = await self.repository.get_quota(quota_id)
        if not quota:
            raise NotFoundError("Quota not found")
        return quota

    async def create_quota(self, survey_id: str, data: QuotaCreate) -> Quota:
        """Create a quota; its conditions must reference questions of the survey."""
        await self._require_questions(survey_id, [c.question_id for c in data.conditions])

        quota = Quota(
            survey_id=survey_id,
            name=data.name,
            description=data.description,
            limit=data.limit,
            current_count=0,
            action=data.action,
            action_message=data.action_message,
            action_url=data.action_url,
            is_active=data.is_active,
            position=await self.repository.next_position(survey_id),
            conditions=dump_conditions(data.conditions),
            alert_at_50=data.alert_at_50,
            alert_at_80=data.alert_at_80,
            alert_at_100=data.alert_at_100,
            alert_emails=list(data.alert_emails),
        )
        (quota,) = await self.repository.add(quota)

        logger.info(f"Created quota {quota.name} ({quota.limit}) for survey {survey_id}")
        return quota

    async def update_quota(self, quota_id: str, data: QuotaUpdate) -> Quota:
        """Apply a partial update. current_count is never touched here."""
        quota = await self._get_quota(quota_id)

        update_data = data.model_dump(exclude_unset=True)
        for field_name, value in update_data.items():
            if value is None and field_name not in ("description", "action_message", "action_url"):
                continue
            setattr(quota, field_name, value)

        if quota.action == QuotaAction.REDIRECT and not quota.action_url:
            raise ValidationError("actionUrl is required when action is REDIRECT")
        if quota.action != QuotaAction.REDIRECT:
            if "action_url" in update_data and update_data["action_url"]:
                raise ValidationError("actionUrl is only allowed when action is REDIRECT")
            quota.action_url = None

        return await self.repository.save(quota)

    async def delete_quota(self, quota_id: str) -> None:
        quota = await self._get_quota(quota_id)
        await self.repository.delete(quota)
        logger.info(f"Deleted quota {quota_id}")

    async def toggle_quota(self, quota_id: str) -> Quota:
        """Flip is_active. The count is kept across deactivation."""
        quota = await self._get_quota(quota_id)
        quota.is_active = not quota.is_active
        quota = await self.repository.save(quota)
        logger.info(f"Quota {quota_id} is_active={quota.is_active}")
        return quota

    async def reset_quota(self, quota_id: str) -> Quota:
        """Zero the counter and forget which responses were counted."""
        quota = await self._get_quota(quota_id)
        quota = await self.repository.reset(quota)
        logger.warning(f"Quota {quota_id} was reset to 0")
        return quota

    async def create_interlocked_quotas(
        self,
        survey_id: str,
        data: InterlockedQuotaCreate,
    ) -> List[Quota]:
        """
        Create one quota per (question1 value, question2 value) cell with a
        positive limit, each matching both values with EQUALS.
        """
        await self._require_questions(survey_id, [data.question1_id, data.question2_id])

        position = await self.repository.next_position(survey_id)
        quotas = []
        for value1 in data.question1_values:
            for value2 in data.question2_values:
                limit = data.limits.get(value1, {}).get(value2, 0)
                if limit <= 0:
                    continue

                conditions = [
                    EqualsCondition(question_id=data.question1_id, operator="EQUALS", value=value1),
                    EqualsCondition(question_id=data.question2_id, operator="EQUALS", value=value2),
                ]
                quotas.append(
                    Quota(
                        survey_id=survey_id,
                        name=f"{data.name}: {value1} × {value2}",
                        limit=limit,
                        current_count=0,
                        action=data.action,
                        action_url=data.action_url if data.action == QuotaAction.REDIRECT else None,
                        is_active=True,
                        position=position,
                        conditions=dump_conditions(conditions),
                        alert_emails=[],
                    )
                )
                position += 1

        if not quotas:
            raise ValidationError("Interlocked matrix has no cell with a positive limit")

        quotas = await self.repository.add(*quotas)
        logger.info(f"Created {len(quotas)} interlocked quotas for survey {survey_id}")
        return quotas
