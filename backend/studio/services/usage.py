"""Monthly usage counters per organization.

Increments are a plain read-then-write: two concurrent requests for the same
organization and month can lose one count. That is acceptable for these
counters. Metering never fails a generation; errors are logged and dropped.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import structlog
from sqlalchemy import select

from studio.models.db import UsageMetric
from studio.services.database import DATABASE_ERRORS, SessionFactory

logger = structlog.get_logger()


class UsageMeter(Protocol):
    async def increment_usage(self, organization_id: str, image_generated: bool) -> None: ...


def current_month(now: datetime | None = None) -> str:
    """UTC "YYYY-MM" bucket."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


class SqlUsageMeter:
    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._sessions = session_factory
        self._clock = clock

    async def increment_usage(self, organization_id: str, image_generated: bool) -> None:
        month = current_month(self._clock())
        try:
            org_uuid = uuid.UUID(organization_id)
            async with self._sessions() as session:
                row = await session.scalar(
                    select(UsageMetric).where(
                        UsageMetric.organization_id == org_uuid,
                        UsageMetric.month == month,
                    )
                )
                if row is None:
                    session.add(
                        UsageMetric(
                            organization_id=org_uuid,
                            month=month,
                            images_generated=1 if image_generated else 0,
                            api_calls=1,
                            storage_used_mb=0,
                        )
                    )
                else:
                    row.images_generated = (row.images_generated or 0) + (1 if image_generated else 0)
                    row.api_calls = (row.api_calls or 0) + 1
                await session.commit()
        except (*DATABASE_ERRORS, ValueError) as exc:
            logger.warning(
                "usage_increment_failed",
                organization_id=organization_id,
                month=month,
                error=str(exc),
            )


@dataclass
class UsageCounts:
    images_generated: int = 0
    api_calls: int = 0


class InMemoryUsageMeter:
    def __init__(self) -> None:
        self.counts: dict[tuple[str, str], UsageCounts] = {}

    async def increment_usage(self, organization_id: str, image_generated: bool) -> None:
        counts = self.counts.setdefault((organization_id, current_month()), UsageCounts())
        counts.api_calls += 1
        if image_generated:
            counts.images_generated += 1
