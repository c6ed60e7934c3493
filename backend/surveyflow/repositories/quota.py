"""
Quota data access.

current_count is changed only by increment(), which records the
(quota, response) join row and bumps the counter with a single
``UPDATE ... SET current_count = current_count + 1`` in one transaction.
Concurrent submissions therefore never lose an increment; the only
overshoot comes from the window between the advisory check and the count.
"""
import logging
from typing import List, Optional, Protocol

from sqlalchemy import select, func, update, delete, and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from surveyflow.models.quota import Quota, QuotaResponse

logger = logging.getLogger(__name__)


class QuotaRepository(Protocol):
    """Read/write port used by the quota tracker."""

    async def list_quotas(self, survey_id: str, active_only: bool = False) -> List[Quota]:
        """Quotas of a survey in position order."""
        ...

    async def get_quota(self, quota_id: str) -> Optional[Quota]:
        ...

    async def increment(self, quota_id: str, response_id: str) -> Optional[int]:
        """
        Count a response against a quota.

        Returns the new current_count, or None when the pair was already
        recorded (or the quota no longer exists).
        """
        ...


class SQLAlchemyQuotaRepository:
    """Quota storage backed by an AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_quotas(self, survey_id: str, active_only: bool = False) -> List[Quota]:
        query = select(Quota).where(Quota.survey_id == survey_id)
        if active_only:
            query = query.where(Quota.is_active == True)  # noqa: E712
        query = query.order_by(Quota.position).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_quota(self, quota_id: str) -> Optional[Quota]:
        result = await self.db.execute(
            select(Quota)
            .where(Quota.id == quota_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def next_position(self, survey_id: str) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.max(Quota.position), 0)).where(
                Quota.survey_id == survey_id
            )
        )
        return (result.scalar() or 0) + 1

    async def is_counted(self, quota_id: str, response_id: str) -> bool:
        result = await self.db.execute(
            select(QuotaResponse.id).where(
                and_(
                    QuotaResponse.quota_id == quota_id,
                    QuotaResponse.response_id == response_id,
                )
            )
        )
        return result.scalar_one_or_none() is not None

    async def increment(self, quota_id: str, response_id: str) -> Optional[int]:
        if await self.is_counted(quota_id, response_id):
            return None

        self.db.add(QuotaResponse(quota_id=quota_id, response_id=response_id))
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent retry recorded the same pair first
            await self.db.rollback()
            logger.info(f"Quota {quota_id} already counted response {response_id}")
            return None
        except SQLAlchemyError:
            await self.db.rollback()
            raise

        try:
            result = await self.db.execute(
                update(Quota)
                .where(Quota.id == quota_id)
                .values(current_count=Quota.current_count + 1)
                .returning(Quota.current_count)
                .execution_options(synchronize_session=False)
            )
            new_count = result.scalar_one_or_none()
            if new_count is None:
                await self.db.rollback()
                logger.warning(f"Quota {quota_id} disappeared before it could be incremented")
                return None

            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return new_count

    async def add(self, *quotas: Quota) -> List[Quota]:
        self.db.add_all(quotas)
        await self.db.commit()
        for quota in quotas:
            await self.db.refresh(quota)
        return list(quotas)

    async def save(self, quota: Quota) -> Quota:
        await self.db.commit()
        await self.db.refresh(quota)
        return quota

    async def delete(self, quota: Quota) -> None:
        await self.db.delete(quota)
        await self.db.commit()

    async def reset(self, quota: Quota) -> Quota:
        await self.db.execute(
            delete(QuotaResponse).where(QuotaResponse.quota_id == quota.id)
        )
        await self.db.execute(
            update(Quota).where(Quota.id == quota.id).values(current_count=0)
        )
        await self.db.commit()
        await self.db.refresh(quota)
        return quota
