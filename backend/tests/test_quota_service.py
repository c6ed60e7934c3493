"""
Tests for the quota tracker.
"""
import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from surveyflow.core.exceptions import NotFoundError, ValidationError
from surveyflow.models import QuestionType, QuotaAction, QuotaResponse, Response
from surveyflow.repositories.quota import SQLAlchemyQuotaRepository
from surveyflow.schemas.quota import InterlockedQuotaCreate, QuotaCreate, QuotaUpdate
from surveyflow.services.quota_service import QuotaService, crossed_threshold, fill_percentage

from factories import FakeQuotaRepository, fake_quota, question


def equals(question_id, value):
    return {"questionId": question_id, "operator": "EQUALS", "value": value}


MALE = [equals("gender", "Male")]


class TestCheckQuotas:
    """Advisory, read-only matching."""

    async def test_inactive_quotas_never_match(self):
        repository = FakeQuotaRepository([
            fake_quota("active", MALE, position=1),
            fake_quota("inactive", MALE, position=2, is_active=False),
        ])
        result = await QuotaService(repository).check_quotas("survey-1", {"gender": "male"})

        assert result.matching_quota_ids == ["active"]
        assert result.quota_reached is False

    async def test_reached_when_count_at_limit(self):
        repository = FakeQuotaRepository([
            fake_quota("open", MALE, limit=5, current_count=1, position=1),
            fake_quota("full", MALE, limit=2, current_count=2, position=2),
            fake_quota("over", MALE, limit=1, current_count=3, position=3),
        ])
        result = await QuotaService(repository).check_quotas("survey-1", {"gender": "Male"})

        assert result.quota_reached is True
        assert result.reached_quota.id == "full"
        assert [q.id for q in result.reached_quotas] == ["full", "over"]
        assert result.matching_quota_ids == ["open", "full", "over"]

    async def test_non_matching_full_quota_does_not_block(self):
        repository = FakeQuotaRepository([fake_quota("full", MALE, limit=1, current_count=1)])
        result = await QuotaService(repository).check_quotas("survey-1", {"gender": "Female"})

        assert result.quota_reached is False
        assert result.matching_quotas == []

    async def test_check_is_read_only(self):
        quota = fake_quota("q", MALE, limit=3, current_count=1)
        await QuotaService(FakeQuotaRepository([quota])).check_quotas("survey-1", {"gender": "Male"})
        assert quota.current_count == 1

    async def test_malformed_quota_is_skipped(self):
        repository = FakeQuotaRepository([
            fake_quota("bad", [{"questionId": "gender", "operator": "LIKE", "value": "M"}], position=1),
            fake_quota("good", MALE, position=2),
        ])
        result = await QuotaService(repository).check_quotas("survey-1", {"gender": "Male"})
        assert result.matching_quota_ids == ["good"]


class TestIncrementQuotas:
    async def test_increment_counts_each_quota(self):
        repository = FakeQuotaRepository([fake_quota("a", MALE), fake_quota("b", MALE)])
        counts = await QuotaService(repository, alert_dispatcher=lambda alert: None).increment_quotas(
            "response-1", ["a", "b"]
        )
        assert counts == {"a": 1, "b": 1}

    async def test_recounting_same_response_is_noop(self):
        """Should not count a (quota, response) pair twice."""
        quota = fake_quota("a", MALE)
        service = QuotaService(FakeQuotaRepository([quota]), alert_dispatcher=lambda alert: None)

        await service.increment_quotas("response-1", ["a"])
        counts = await service.increment_quotas("response-1", ["a"])

        assert counts == {}
        assert quota.current_count == 1

    async def test_failure_on_one_quota_does_not_affect_others(self):
        repository = FakeQuotaRepository(
            [fake_quota("a", MALE), fake_quota("broken", MALE), fake_quota("c", MALE)],
            failing_ids=["broken"],
        )
        service = QuotaService(repository, alert_dispatcher=lambda alert: None)

        counts = await service.increment_quotas("response-1", ["a", "broken", "c"])

        assert counts == {"a": 1, "c": 1}

    async def test_failed_flush_leaves_session_usable(self, db, make_survey, make_quota, quota_service):
        """Should keep counting later quotas after a database error on one."""
        survey = await make_survey(question("Gender"))
        first = await make_quota(survey, MALE)
        broken = await make_quota(survey, MALE)
        last = await make_quota(survey, MALE)
        response = Response(survey_id=survey.id, matched_quota_ids=[])
        db.add(response)
        await db.commit()
        first_id, broken_id, last_id, response_id = first.id, broken.id, last.id, response.id

        def fail_on_broken_quota(session, flush_context):
            for obj in session.new:
                if isinstance(obj, QuotaResponse) and obj.quota_id == broken_id:
                    raise OperationalError("INSERT INTO quota_responses", {}, Exception("disk I/O error"))

        event.listen(db.sync_session, "after_flush", fail_on_broken_quota)
        try:
            counts = await quota_service.increment_quotas(response_id, [first_id, broken_id, last_id])
        finally:
            event.remove(db.sync_session, "after_flush", fail_on_broken_quota)

        assert counts == {first_id: 1, last_id: 1}
        repository = SQLAlchemyQuotaRepository(db)
        assert (await repository.get_quota(broken_id)).current_count == 0
        assert not await repository.is_counted(broken_id, response_id)


class TestAlerts:
    def test_crossed_threshold(self):
        quota = fake_quota("q", MALE, limit=10, alert_at_50=True, alert_at_80=True)
        assert crossed_threshold(quota, 5, [50, 80, 100]) == 50
        assert crossed_threshold(quota, 6, [50, 80, 100]) is None
        assert crossed_threshold(quota, 8, [50, 80, 100]) == 80
        assert crossed_threshold(quota, 10, [50, 80, 100]) == 100

    def test_disabled_threshold_is_skipped(self):
        quota = fake_quota("q", MALE, limit=10, alert_at_50=False)
        assert crossed_threshold(quota, 5, [50, 80, 100]) is None

    def test_first_enabled_crossed_level_wins(self):
        """Should report only the lowest level when one increment crosses several."""
        quota = fake_quota("q", MALE, limit=1, alert_at_50=True, alert_at_80=True)
        assert crossed_threshold(quota, 1, [50, 80, 100]) == 50

    async def test_alert_dispatched_on_increment(self):
        sent = []
        quota = fake_quota("q", MALE, limit=2, alert_at_50=True, alert_emails=["ops@example.com"])
        service = QuotaService(
            FakeQuotaRepository([quota]),
            alert_dispatcher=sent.append,
            alert_thresholds=[50, 80, 100],
        )

        await service.increment_quotas("response-1", ["q"])
        await service.increment_quotas("response-2", ["q"])

        assert [a.percentage for a in sent] == [50, 100]
        assert sent[1].recipients == ["ops@example.com"]
        assert sent[1].current_count == 2

    async def test_no_alert_without_recipients(self):
        sent = []
        quota = fake_quota("q", MALE, limit=1)
        service = QuotaService(FakeQuotaRepository([quota]), alert_dispatcher=sent.append)

        await service.increment_quotas("response-1", ["q"])

        assert sent == []


class TestQuotaPersistence:
    """Quota administration and counting against SQLite."""

    async def test_status_percentage(self, make_survey, make_quota, quota_service):
        """Should report 50% for limit 10 and count 5."""
        survey = await make_survey(question("Gender"))
        await make_quota(survey, MALE, limit=10, current_count=5)
        await make_quota(survey, MALE, limit=4, current_count=1, is_active=False)

        status = await quota_service.get_quota_status(survey.id)

        assert [q.percentage for q in status.quotas] == [50, 25]
        assert status.total_limit == 14
        assert status.total_count == 6

    @pytest.mark.parametrize(
        "count, limit, expected",
        [(1, 8, 13), (1, 200, 1), (3, 8, 38), (5, 10, 50), (0, 3, 0), (7, 7, 100)],
    )
    def test_fill_percentage_rounds_half_up(self, count, limit, expected):
        assert fill_percentage(count, limit) == expected

    async def test_status_percentage_half_rounds_up(self, make_survey, make_quota, quota_service):
        """Should report 13% for 1 of 8, not 12%."""
        survey = await make_survey(question("Gender"))
        await make_quota(survey, MALE, limit=8, current_count=1)
        await make_quota(survey, MALE, limit=200, current_count=1)

        status = await quota_service.get_quota_status(survey.id)

        assert [q.percentage for q in status.quotas] == [13, 1]

    async def test_status_unknown_survey(self, quota_service):
        with pytest.raises(NotFoundError):
            await quota_service.get_quota_status("missing")

    async def test_create_quota(self, make_survey, quota_service):
        gender = question("Gender", QuestionType.MULTIPLE_CHOICE, options=["Male", "Female"])
        survey = await make_survey(gender)

        quota = await quota_service.create_quota(
            survey.id,
            QuotaCreate(
                name="Men",
                limit=100,
                conditions=[equals(gender.id, "Male")],
                alertEmails=["ops@example.com"],
            ),
        )

        assert quota.current_count == 0
        assert quota.position == 1
        assert quota.action == QuotaAction.END_SURVEY
        assert quota.conditions == [{"questionId": gender.id, "operator": "EQUALS", "value": "Male"}]

    async def test_create_quota_rejects_foreign_question(self, make_survey, quota_service):
        survey = await make_survey(question("Gender"))
        with pytest.raises(NotFoundError):
            await quota_service.create_quota(
                survey.id,
                QuotaCreate(name="Bad", limit=1, conditions=[equals("other-question", "x")]),
            )

    async def test_toggle_keeps_count(self, make_survey, make_quota, quota_service):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE, limit=10, current_count=4)

        toggled = await quota_service.toggle_quota(quota.id)
        assert toggled.is_active is False
        assert toggled.current_count == 4

        toggled = await quota_service.toggle_quota(quota.id)
        assert toggled.is_active is True
        assert toggled.current_count == 4

    async def test_update_requires_url_for_redirect(self, make_survey, make_quota, quota_service):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE)

        with pytest.raises(ValidationError):
            await quota_service.update_quota(quota.id, QuotaUpdate(action=QuotaAction.REDIRECT))

    async def test_update_fields(self, make_survey, make_quota, quota_service):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE, limit=10, current_count=3)

        updated = await quota_service.update_quota(
            quota.id,
            QuotaUpdate(limit=20, action=QuotaAction.REDIRECT, actionUrl="https://example.com/full"),
        )

        assert updated.limit == 20
        assert updated.action_url == "https://example.com/full"
        assert updated.current_count == 3

    async def test_delete_quota(self, make_survey, make_quota, quota_service):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE)

        await quota_service.delete_quota(quota.id)

        with pytest.raises(NotFoundError):
            await quota_service.delete_quota(quota.id)

    async def test_sql_increment_is_atomic_and_idempotent(self, db, make_survey, make_quota):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE, limit=10)
        response = Response(survey_id=survey.id, matched_quota_ids=[])
        db.add(response)
        await db.commit()

        repository = SQLAlchemyQuotaRepository(db)
        assert await repository.increment(quota.id, response.id) == 1
        assert await repository.increment(quota.id, response.id) is None

        refreshed = await repository.get_quota(quota.id)
        assert refreshed.current_count == 1

    async def test_reset_zeroes_count(self, db, make_survey, make_quota, quota_service):
        survey = await make_survey(question("Gender"))
        quota = await make_quota(survey, MALE, limit=10)
        response = Response(survey_id=survey.id, matched_quota_ids=[])
        db.add(response)
        await db.commit()
        response_id = response.id

        await quota_service.increment_quotas(response_id, [quota.id])
        reset = await quota_service.reset_quota(quota.id)
        assert reset.current_count == 0

        # The response can be counted again after a reset
        counts = await quota_service.increment_quotas(response_id, [quota.id])
        assert counts == {quota.id: 1}

    async def test_interlocked_quotas(self, make_survey, quota_service):
        age = question("Age", QuestionType.DROPDOWN, options=["18-34", "35+"])
        gender = question("Gender", QuestionType.MULTIPLE_CHOICE, options=["Male", "Female"])
        survey = await make_survey(age, gender)

        quotas = await quota_service.create_interlocked_quotas(
            survey.id,
            InterlockedQuotaCreate(
                name="Age x Gender",
                question1Id=age.id,
                question1Values=["18-34", "35+"],
                question2Id=gender.id,
                question2Values=["Male", "Female"],
                limits={"18-34": {"Male": 50, "Female": 50}, "35+": {"Male": 40, "Female": 0}},
            ),
        )

        assert len(quotas) == 3
        assert [q.limit for q in quotas] == [50, 50, 40]
        assert quotas[0].name == "Age x Gender: 18-34 × Male"
        assert quotas[2].conditions == [
            {"questionId": age.id, "operator": "EQUALS", "value": "35+"},
            {"questionId": gender.id, "operator": "EQUALS", "value": "Male"},
        ]
        assert [q.position for q in quotas] == [1, 2, 3]

    async def test_interlocked_requires_a_positive_cell(self, make_survey, quota_service):
        age = question("Age")
        gender = question("Gender")
        survey = await make_survey(age, gender)

        with pytest.raises(ValidationError):
            await quota_service.create_interlocked_quotas(
                survey.id,
                InterlockedQuotaCreate(
                    name="Empty",
                    question1Id=age.id,
                    question1Values=["a"],
                    question2Id=gender.id,
                    question2Values=["b"],
                    limits={},
                ),
            )
