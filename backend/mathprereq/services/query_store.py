"""
Query Repository

Persists pipeline runs and answers the read-side questions asked of them:
cache candidates for a concept, recent queries, and analytics.
"""

from collections import Counter, defaultdict
from datetime import datetime, timedelta

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mathprereq.core.database import as_utc, get_session_factory, utcnow
from mathprereq.core.logging import get_logger
from mathprereq.models.query import QueryRecord
from mathprereq.services.entities import Concept, ProcessingStep, Query

logger = get_logger(__name__)


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def to_record(query: Query) -> QueryRecord:
    return QueryRecord(
        id=query.id,
        user_id=query.user_id,
        text=query.text,
        identified_concepts=list(query.identified_concepts),
        prerequisite_path=[c.model_dump() for c in query.prerequisite_path],
        explanation=query.explanation,
        retrieved_context=list(query.retrieved_context),
        llm_provider=query.llm_provider,
        llm_model=query.llm_model,
        timestamp=query.timestamp,
        processing_time_ms=query.processing_time_ms,
        success=query.success,
        error_message=query.error_message,
        request_id=query.request_id,
        processing_steps=[s.model_dump() for s in query.processing_steps],
    )


def to_entity(record: QueryRecord) -> Query:
    return Query(
        id=record.id,
        user_id=record.user_id,
        text=record.text,
        identified_concepts=list(record.identified_concepts or []),
        prerequisite_path=[Concept(**c) for c in record.prerequisite_path or []],
        explanation=record.explanation or "",
        retrieved_context=list(record.retrieved_context or []),
        llm_provider=record.llm_provider or "",
        llm_model=record.llm_model or "",
        timestamp=as_utc(record.timestamp),
        processing_time_ms=record.processing_time_ms,
        success=record.success,
        error_message=record.error_message,
        request_id=record.request_id,
        processing_steps=[ProcessingStep(**s) for s in record.processing_steps or []],
    )


class QueryRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or get_session_factory()

    async def save(self, query: Query) -> None:
        async with self._session_factory() as session:
            session.add(to_record(query))
            await session.commit()
        logger.info("query_saved", query_id=str(query.id), success=query.success)

    async def find_cached_candidates(
        self,
        concept_name: str,
        field: str = "any",
        limit: int | None = 50,
        offset: int = 0,
    ) -> list[Query]:
        """
        Successful queries with an explanation that mention ``concept_name``
        (case-insensitive substring), newest first.

        ``field`` picks where the mention must appear: ``"concepts"`` (the
        identified concept list), ``"text"`` (the question) or ``"any"``.
        ``limit=None`` returns every candidate.
        """
        pattern = _like_pattern(concept_name.strip())
        in_text = QueryRecord.text.ilike(pattern, escape="\\")
        in_concepts = cast(QueryRecord.identified_concepts, String).ilike(pattern, escape="\\")
        predicates = {"text": in_text, "concepts": in_concepts, "any": or_(in_text, in_concepts)}
        if field not in predicates:
            raise ValueError(f"Unknown candidate field: {field}")

        stmt = (
            select(QueryRecord)
            .where(
                QueryRecord.success.is_(True),
                QueryRecord.explanation != "",
                predicates[field],
            )
            .order_by(QueryRecord.timestamp.desc(), QueryRecord.id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [to_entity(r) for r in records]

    async def find_recent(self, limit: int = 20, offset: int = 0) -> list[Query]:
        stmt = (
            select(QueryRecord)
            .where(QueryRecord.success.is_(True))
            .order_by(QueryRecord.timestamp.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [to_entity(r) for r in records]

    async def get_query_stats(self, now: datetime | None = None) -> dict:
        since = (now or utcnow()) - timedelta(hours=24)
        stmt = select(
            func.count(QueryRecord.id),
            func.count(QueryRecord.id).filter(QueryRecord.success.is_(True)),
            func.avg(QueryRecord.processing_time_ms),
            func.count(QueryRecord.id).filter(QueryRecord.timestamp >= since),
        )
        async with self._session_factory() as session:
            total, successful, avg_time, last_24h = (await session.execute(stmt)).one()

        total = total or 0
        successful = successful or 0
        return {
            "total_queries": total,
            "successful_queries": successful,
            "failed_queries": total - successful,
            "success_rate": round(successful / total, 3) if total else 0.0,
            "avg_processing_time_ms": round(float(avg_time), 1) if avg_time is not None else 0.0,
            "queries_last_24h": last_24h or 0,
        }

    async def get_popular_concepts(self, limit: int = 10, days: int | None = None) -> list[dict]:
        stmt = select(QueryRecord.identified_concepts).where(QueryRecord.success.is_(True))
        if days:
            stmt = stmt.where(QueryRecord.timestamp >= utcnow() - timedelta(days=days))
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()

        counts: Counter[str] = Counter()
        for concepts in rows:
            # Count a concept once per query
            counts.update({c.strip().lower() for c in concepts or [] if c and c.strip()})
        return [{"concept": name, "count": n} for name, n in counts.most_common(limit)]

    async def get_query_trends(self, days: int = 7, now: datetime | None = None) -> list[dict]:
        now = now or utcnow()
        start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
        stmt = select(QueryRecord.timestamp, QueryRecord.success, QueryRecord.processing_time_ms).where(
            QueryRecord.timestamp >= start
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        buckets: dict[str, dict] = defaultdict(lambda: {"total": 0, "successful": 0, "time_ms": 0})
        for timestamp, success, time_ms in rows:
            bucket = buckets[as_utc(timestamp).date().isoformat()]
            bucket["total"] += 1
            bucket["successful"] += int(bool(success))
            bucket["time_ms"] += time_ms or 0

        trends = []
        for offset in range(days):
            day = (start + timedelta(days=offset)).date().isoformat()
            bucket = buckets.get(day, {"total": 0, "successful": 0, "time_ms": 0})
            trends.append(
                {
                    "date": day,
                    "total_queries": bucket["total"],
                    "successful_queries": bucket["successful"],
                    "avg_processing_time_ms": round(bucket["time_ms"] / bucket["total"], 1)
                    if bucket["total"]
                    else 0.0,
                }
            )
        return trends

    async def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=days)
        async with self._session_factory() as session:
            result = await session.execute(delete(QueryRecord).where(QueryRecord.timestamp < cutoff))
            await session.commit()
        logger.info("cached_queries_deleted", older_than_days=days, deleted=result.rowcount)
        return result.rowcount or 0
