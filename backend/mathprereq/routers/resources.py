"""
Resources Router

Stored learning resources per concept, on-demand discovery and store stats.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from mathprereq.routers.query import ResourceSchema
from mathprereq.services.query_service import QueryService, get_query_service
from mathprereq.services.resources.models import Difficulty, ResourceKind
from mathprereq.services.resources.search_terms import concept_id

router = APIRouter()


class ConceptResourcesResponse(BaseModel):
    concept_name: str
    concept_id: str
    resources: list[ResourceSchema]


class DiscoverRequest(BaseModel):
    concepts: list[str] = Field(..., min_length=1, max_length=20)


class DiscoverResponse(BaseModel):
    scheduled: bool
    concepts: list[str]


@router.get("/concept/{concept_name}", response_model=ConceptResourcesResponse)
async def resources_for_concept(
    concept_name: str,
    limit: int = Query(10, ge=1, le=50),
    resource_type: ResourceKind | None = Query(None, alias="type"),
    min_quality: float | None = Query(None, ge=0.0, le=1.0),
    difficulty: Difficulty | None = None,
    service: QueryService = Depends(get_query_service),
):
    cid = concept_id(concept_name.strip())
    if not cid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid concept name")

    resources = await service.resources.find_by_concept(
        cid,
        limit=limit,
        resource_type=resource_type.value if resource_type else None,
        min_quality=min_quality,
        difficulty=difficulty.value if difficulty else None,
    )
    return ConceptResourcesResponse(
        concept_name=concept_name,
        concept_id=cid,
        resources=[ResourceSchema.model_validate(r, from_attributes=True) for r in resources],
    )


@router.post("/discover", response_model=DiscoverResponse, status_code=status.HTTP_202_ACCEPTED)
async def discover_resources(
    request: DiscoverRequest,
    service: QueryService = Depends(get_query_service),
):
    """Schedule background resource discovery for the given concepts."""
    names = [c.strip() for c in request.concepts if c.strip()]
    if not names:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No concept names given")
    scheduled = service.schedule_discovery(names)
    return DiscoverResponse(scheduled=scheduled, concepts=names)


@router.get("/stats")
async def resource_stats(service: QueryService = Depends(get_query_service)):
    return await service.get_resource_stats()
