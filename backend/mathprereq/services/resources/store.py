from datetime import datetime, timedelta

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mathprereq.core.database import get_session_factory, utcnow
from mathprereq.core.logging import get_logger
from mathprereq.models.resource import EducationalResourceRecord
from mathprereq.services.resources.models import EducationalResource
from mathprereq.services.resources.postprocess import dedupe_by_url

logger = get_logger(__name__)

# Columns never overwritten when a URL is rediscovered
_KEEP_ON_CONFLICT = {"id", "url"}


class ResourceStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or get_session_factory()

    async def upsert_resources(self, resources: list[EducationalResource]) -> int:
        """Insert or update by URL. Returns the number of rows written."""
        resources = dedupe_by_url(resources)
        if not resources:
            return 0

        rows = [r.model_dump() for r in resources]
        async with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(EducationalResourceRecord).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["url"],
                set_={
                    col: stmt.excluded[col]
                    for col in rows[0]
                    if col not in _KEEP_ON_CONFLICT
                },
            )
            await session.execute(stmt)
            await session.commit()

        logger.info("resources_upserted", count=len(rows))
        return len(rows)

    async def is_recently_scraped(
        self,
        concept_id: str,
        hours: int = 24,
        now: datetime | None = None,
    ) -> bool:
        since = (now or utcnow()) - timedelta(hours=hours)
        async with self._session_factory() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(EducationalResourceRecord)
                .where(
                    EducationalResourceRecord.concept_id == concept_id,
                    EducationalResourceRecord.scraped_at >= since,
                )
            )
        return bool(count)

    async def find_by_concept(
        self,
        concept_id: str,
        limit: int = 10,
        resource_type: str | None = None,
        min_quality: float | None = None,
        difficulty: str | None = None,
    ) -> list[EducationalResource]:
        query = select(EducationalResourceRecord).where(
            EducationalResourceRecord.concept_id == concept_id
        )
        if resource_type:
            query = query.where(EducationalResourceRecord.resource_type == resource_type)
        if min_quality is not None:
            query = query.where(EducationalResourceRecord.quality_score >= min_quality)
        if difficulty:
            query = query.where(EducationalResourceRecord.difficulty_level == difficulty)
        query = query.order_by(
            EducationalResourceRecord.quality_score.desc(),
            EducationalResourceRecord.scraped_at.desc(),
        ).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            records = result.scalars().all()
        return [EducationalResource.model_validate(r) for r in records]

    async def get_stats(self) -> dict:
        per_concept = (
            select(
                EducationalResourceRecord.concept_id,
                func.count().label("count"),
                func.avg(EducationalResourceRecord.quality_score).label("avg_quality"),
            )
            .group_by(EducationalResourceRecord.concept_id)
        )
        by_type = (
            select(EducationalResourceRecord.resource_type, func.count())
            .group_by(EducationalResourceRecord.resource_type)
        )
        async with self._session_factory() as session:
            concepts = (await session.execute(per_concept)).all()
            types = (await session.execute(by_type)).all()

        if not concepts:
            return {
                "total_concepts": 0,
                "total_resources": 0,
                "avg_resources_per_concept": 0.0,
                "avg_quality_score": 0.0,
                "resources_by_type": {},
            }

        total = sum(row.count for row in concepts)
        return {
            "total_concepts": len(concepts),
            "total_resources": total,
            "avg_resources_per_concept": round(total / len(concepts), 2),
            # Mean of per-concept means, so heavily covered concepts do not dominate
            "avg_quality_score": round(sum(float(row.avg_quality) for row in concepts) / len(concepts), 3),
            "resources_by_type": {kind: count for kind, count in types},
        }
