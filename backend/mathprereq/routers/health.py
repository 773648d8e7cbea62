import asyncio

from fastapi import APIRouter, Depends

from mathprereq.core.database import check_database
from mathprereq.services.query_service import QueryService, get_query_service

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy"}


@router.get("/health-detailed")
async def health_detailed(service: QueryService = Depends(get_query_service)):
    graph_ok, index_status, db_ok = await asyncio.gather(
        service.graph.is_healthy(),
        asyncio.to_thread(service.index.status),
        check_database(),
    )
    checks = {
        "concept_graph": "healthy" if graph_ok else "unhealthy",
        "semantic_index": "healthy" if index_status.get("available") else "unavailable",
        "database": "healthy" if db_ok else "unhealthy",
    }
    # The semantic index is optional; the pipeline degrades without it
    overall = "healthy" if graph_ok and db_ok else "degraded"
    return {
        "status": overall,
        "checks": checks,
        "llm": {"provider": service.llm.provider_name, "model": service.llm.model},
        "background_jobs": service.runner.pending,
    }
