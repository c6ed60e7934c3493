"""
Shared fixtures: an in-memory SQLite database per test and builders that
persist surveys, rules and quotas into it.
"""
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from surveyflow.db.base import Base
from surveyflow.models import (
    Question,
    Quota,
    QuotaAction,
    Survey,
    SurveyLogic,
    SurveyStatus,
)
from surveyflow.repositories.logic import SQLAlchemyLogicRepository
from surveyflow.repositories.quota import SQLAlchemyQuotaRepository
from surveyflow.repositories.survey import SQLAlchemySurveyRepository
from surveyflow.services.logic_engine import LogicRuleEngine
from surveyflow.services.quota_service import QuotaService
from surveyflow.services.response_service import ResponseService


# ============================================================================
# Database
# ============================================================================

@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


# ============================================================================
# Builders
# ============================================================================

@pytest.fixture
def make_survey(db):
    """Persist an ACTIVE survey whose questions keep the given order."""

    async def _make(*questions: Question, **kwargs) -> Survey:
        kwargs.setdefault("status", SurveyStatus.ACTIVE)
        kwargs.setdefault("quotas_enabled", True)
        survey = Survey(title="Test survey", **kwargs)
        for order, q in enumerate(questions):
            q.order = order
            survey.questions.append(q)
        db.add(survey)
        await db.commit()
        return survey

    return _make


@pytest.fixture
def make_rule(db):
    """Persist a logic rule from wire-shaped conditions and actions."""
    counter = {"position": 0}

    async def _make(
        survey: Survey,
        source: Question,
        conditions: List[Dict[str, Any]],
        actions: List[Dict[str, Any]],
        priority: int = 0,
    ) -> SurveyLogic:
        counter["position"] += 1
        rule = SurveyLogic(
            survey_id=survey.id,
            source_question_id=source.id,
            priority=priority,
            position=counter["position"],
            conditions=conditions,
            actions=actions,
        )
        db.add(rule)
        await db.commit()
        return rule

    return _make


@pytest.fixture
def make_quota(db):
    """Persist a quota directly, bypassing the service."""
    counter = {"position": 0}

    async def _make(
        survey: Survey,
        conditions: List[Dict[str, Any]],
        limit: int = 10,
        action: QuotaAction = QuotaAction.END_SURVEY,
        current_count: int = 0,
        **kwargs,
    ) -> Quota:
        counter["position"] += 1
        kwargs.setdefault("name", f"Quota {counter['position']}")
        kwargs.setdefault("alert_emails", [])
        quota = Quota(
            survey_id=survey.id,
            limit=limit,
            action=action,
            current_count=current_count,
            is_active=kwargs.pop("is_active", True),
            position=counter["position"],
            conditions=conditions,
            **kwargs,
        )
        db.add(quota)
        await db.commit()
        return quota

    return _make


@pytest.fixture
def sent_alerts():
    return []


@pytest.fixture
def quota_service(db, sent_alerts):
    return QuotaService(
        SQLAlchemyQuotaRepository(db),
        survey_repository=SQLAlchemySurveyRepository(db),
        alert_dispatcher=sent_alerts.append,
        alert_thresholds=[50, 80, 100],
    )


@pytest.fixture
def response_service(db, quota_service):
    return ResponseService(
        SQLAlchemySurveyRepository(db),
        LogicRuleEngine(SQLAlchemyLogicRepository(db)),
        quota_service,
    )
