"""
Concept Graph

Prerequisite relationships between math concepts live in Neo4j as
``(:Concept {id, name, description})-[:PREREQUISITE_FOR]->(:Concept)``.

A resolved path lists prerequisites before targets. Within each role,
concepts are ordered by ascending distance to the nearest target, then by
name. Targets have distance 0.
"""

from abc import ABC, abstractmethod

from neo4j import AsyncDriver, AsyncGraphDatabase

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger
from mathprereq.services.entities import Concept

logger = get_logger(__name__)

ROLE_RANK = {"prerequisite": 0, "target": 1}


def order_prerequisite_path(rows: list[dict]) -> list[Concept]:
    """Sort raw path rows (id, name, description, type, distance) into a path."""
    ordered = sorted(
        rows,
        key=lambda r: (ROLE_RANK.get(r.get("type"), 1), r.get("distance") or 0, r.get("name") or ""),
    )
    seen: set[str] = set()
    path: list[Concept] = []
    for row in ordered:
        if row["id"] in seen:
            continue
        seen.add(row["id"])
        path.append(
            Concept(
                id=str(row["id"]),
                name=row.get("name") or "",
                description=row.get("description") or "",
                type=row.get("type") or "target",
            )
        )
    return path


class ConceptGraph(ABC):
    @abstractmethod
    async def resolve_prerequisite_path(self, names: list[str]) -> list[Concept]:
        ...

    @abstractmethod
    async def get_concept_detail(self, concept_id: str) -> dict | None:
        ...

    @abstractmethod
    async def get_all_concepts(self) -> list[Concept]:
        ...

    @abstractmethod
    async def get_stats(self) -> dict:
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        ...

    async def close(self) -> None:
        pass


class Neo4jConceptGraph(ConceptGraph):
    def __init__(self, driver: AsyncDriver, max_depth: int = 10):
        self._driver = driver
        self._max_depth = max(1, int(max_depth))

    @classmethod
    def from_settings(cls) -> "Neo4jConceptGraph":
        settings = get_settings()
        driver = AsyncGraphDatabase.driver(
            settings.neo4j_uri,
            auth=(settings.neo4j_user, settings.neo4j_password),
        )
        return cls(driver, max_depth=settings.graph_max_depth)

    async def _run_read(self, query: str, params: dict | None = None) -> list[dict]:
        async def work(tx):
            result = await tx.run(query, params or {})
            return await result.data()

        async with self._driver.session() as session:
            return await session.execute_read(work)

    async def find_concept_id(self, name: str) -> str | None:
        rows = await self._run_read(
            "MATCH (c:Concept) "
            "WHERE toLower(c.id) = toLower($name) OR toLower(c.name) CONTAINS toLower($name) "
            # Prefer an exact id/name hit over a substring hit
            "RETURN c.id AS id, "
            "CASE WHEN toLower(c.id) = toLower($name) OR toLower(c.name) = toLower($name) "
            "THEN 0 ELSE 1 END AS rank "
            "ORDER BY rank, size(c.name) LIMIT 1",
            {"name": name},
        )
        if not rows:
            return None
        return rows[0]["id"]

    async def resolve_prerequisite_path(self, names: list[str]) -> list[Concept]:
        if not names:
            return []

        target_ids: list[str] = []
        for name in names:
            concept_id = await self.find_concept_id(name)
            if concept_id is None:
                logger.warning("concept_not_in_graph", concept=name)
                continue
            if concept_id not in target_ids:
                target_ids.append(concept_id)

        if not target_ids:
            logger.warning("no_target_concepts_found", concepts=names)
            return []

        # Variable-length bounds cannot be parameters
        query = (
            f"MATCH path = (p:Concept)-[:PREREQUISITE_FOR*1..{self._max_depth}]->(t:Concept) "
            "WHERE t.id IN $ids AND NOT p.id IN $ids "
            "RETURN p.id AS id, p.name AS name, p.description AS description, "
            "'prerequisite' AS type, min(length(path)) AS distance "
            "UNION "
            "MATCH (t:Concept) WHERE t.id IN $ids "
            "RETURN t.id AS id, t.name AS name, t.description AS description, "
            "'target' AS type, 0 AS distance"
        )
        rows = await self._run_read(query, {"ids": target_ids})
        path = order_prerequisite_path(rows)
        logger.info("prerequisite_path_resolved", targets=target_ids, length=len(path))
        return path

    async def get_concept_detail(self, concept_id: str) -> dict | None:
        rows = await self._run_read(
            "MATCH (c:Concept) WHERE c.id = $id OR c.name = $id "
            "OPTIONAL MATCH (pre:Concept)-[:PREREQUISITE_FOR]->(c) "
            "OPTIONAL MATCH (c)-[:PREREQUISITE_FOR]->(nxt:Concept) "
            "RETURN c.id AS id, c.name AS name, c.description AS description, "
            "collect(DISTINCT {id: pre.id, name: pre.name, description: pre.description}) AS prerequisites, "
            "collect(DISTINCT {id: nxt.id, name: nxt.name, description: nxt.description}) AS leads_to "
            "LIMIT 1",
            {"id": concept_id},
        )
        if not rows:
            return None
        row = rows[0]

        def related(items: list[dict], kind: str) -> list[Concept]:
            # OPTIONAL MATCH yields a single all-null map when nothing matched
            return [
                Concept(id=str(i["id"]), name=i.get("name") or "", description=i.get("description") or "", type=kind)
                for i in items
                if i.get("id") is not None
            ]

        return {
            "concept": Concept(
                id=str(row["id"]),
                name=row.get("name") or "",
                description=row.get("description") or "",
                type="target",
            ),
            "prerequisites": related(row.get("prerequisites") or [], "prerequisite"),
            "leads_to": related(row.get("leads_to") or [], "next_concept"),
        }

    async def get_all_concepts(self) -> list[Concept]:
        rows = await self._run_read(
            "MATCH (c:Concept) RETURN c.id AS id, c.name AS name, c.description AS description "
            "ORDER BY c.name"
        )
        return [
            Concept(id=str(r["id"]), name=r.get("name") or "", description=r.get("description") or "")
            for r in rows
        ]

    async def get_stats(self) -> dict:
        rows = await self._run_read(
            "MATCH (c:Concept) WITH count(c) AS concepts "
            "OPTIONAL MATCH ()-[r:PREREQUISITE_FOR]->() "
            "RETURN concepts, count(r) AS relationships"
        )
        row = rows[0] if rows else {"concepts": 0, "relationships": 0}
        return {
            "total_concepts": row["concepts"],
            "total_relationships": row["relationships"],
        }

    async def is_healthy(self) -> bool:
        try:
            await self._run_read("RETURN 1 AS ok")
            return True
        except Exception as e:
            logger.warning("graph_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self._driver.close()


# ── Singleton ─────────────────────────────────────────────────────────────────

_graph: ConceptGraph | None = None


def get_concept_graph() -> ConceptGraph:
    global _graph
    if _graph is None:
        _graph = Neo4jConceptGraph.from_settings()
    return _graph


async def close_concept_graph() -> None:
    global _graph
    if _graph is not None:
        await _graph.close()
    _graph = None
