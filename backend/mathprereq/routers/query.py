"""
Query Router

Free-text questions, concept queries (cache-first) and query analytics.
"""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query as QueryParam, status
from pydantic import BaseModel, Field

from mathprereq.services.entities import Concept, QueryResult, SmartQueryResult
from mathprereq.services.query_service import QueryService, get_query_service

router = APIRouter()


# Schemas
class QueryRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=2000)
    user_id: str | None = None


class ConceptQueryRequest(BaseModel):
    concept_name: str = Field(..., min_length=1, max_length=200)
    user_id: str | None = None
    include_resources: bool = True
    max_resources: int = Field(10, ge=1, le=50)


class ResourceSchema(BaseModel):
    id: uuid.UUID
    concept_id: str
    concept_name: str
    title: str
    url: str
    description: str
    resource_type: str
    source_domain: str
    difficulty_level: str
    quality_score: float
    content_preview: str
    scraped_at: datetime
    tags: list[str]
    is_verified: bool
    duration: str | None = None
    view_count: int | None = None
    thumbnail_url: str | None = None
    author_channel: str | None = None

    class Config:
        from_attributes = True


class ConceptQueryResponse(SmartQueryResult):
    resources: list[ResourceSchema] = []


class CachedQueryResponse(BaseModel):
    id: uuid.UUID
    text: str
    identified_concepts: list[str]
    prerequisite_path: list[Concept]
    explanation: str
    timestamp: datetime
    processing_time_ms: int
    llm_model: str


class ClearCacheResponse(BaseModel):
    deleted: int
    older_than_days: int


def request_id_header(x_request_id: str | None = Header(None)) -> str:
    return x_request_id or uuid.uuid4().hex


# Endpoints
@router.post("/query", response_model=QueryResult)
async def process_query(
    request: QueryRequest,
    request_id: str = Depends(request_id_header),
    service: QueryService = Depends(get_query_service),
):
    """Run the full explanation pipeline for a free-text question."""
    question = request.question.strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question must not be blank")
    return await service.process_query(question, request.user_id, request_id)


@router.post("/concept-query", response_model=ConceptQueryResponse)
async def concept_query(
    request: ConceptQueryRequest,
    request_id: str = Depends(request_id_header),
    service: QueryService = Depends(get_query_service),
):
    """
    Explain a single concept.

    Served from a cached query when one is fresh enough, otherwise processed
    from scratch. Stored learning resources are attached when requested.
    """
    name = request.concept_name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Concept name must not be blank")

    result = await service.smart_concept_query(name, request.user_id, request_id)

    resources = []
    if request.include_resources:
        resources = await service.get_resources_for_concepts(
            [name] + result.identified_concepts, limit=request.max_resources
        )

    return ConceptQueryResponse(
        **result.model_dump(),
        resources=[ResourceSchema.model_validate(r, from_attributes=True) for r in resources],
    )


@router.get("/queries/cached", response_model=list[CachedQueryResponse])
async def list_cached_queries(
    limit: int = QueryParam(20, ge=1, le=100),
    offset: int = QueryParam(0, ge=0),
    service: QueryService = Depends(get_query_service),
):
    """Most recent successful queries (the concept cache)."""
    queries = await service.get_cached_queries(limit=limit, offset=offset)
    return [CachedQueryResponse(**q.model_dump()) for q in queries]


@router.delete("/queries/cache", response_model=ClearCacheResponse)
async def clear_cache(
    older_than_days: int = QueryParam(30, ge=0, le=3650),
    service: QueryService = Depends(get_query_service),
):
    deleted = await service.clear_concept_cache(older_than_days)
    return ClearCacheResponse(deleted=deleted, older_than_days=older_than_days)


# Analytics
@router.get("/analytics/stats")
async def query_stats(service: QueryService = Depends(get_query_service)):
    return await service.get_query_stats()


@router.get("/analytics/popular-concepts")
async def popular_concepts(
    limit: int = QueryParam(10, ge=1, le=100),
    days: int | None = QueryParam(None, ge=1, le=365),
    service: QueryService = Depends(get_query_service),
):
    return await service.get_popular_concepts(limit=limit, days=days)


@router.get("/analytics/trends")
async def query_trends(
    days: int = QueryParam(7, ge=1, le=90),
    service: QueryService = Depends(get_query_service),
):
    return await service.get_query_trends(days=days)
