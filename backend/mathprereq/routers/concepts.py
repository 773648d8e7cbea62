from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from mathprereq.services.entities import Concept
from mathprereq.services.query_service import QueryService, get_query_service

router = APIRouter()


class ConceptDetailResponse(BaseModel):
    concept: Concept
    prerequisites: list[Concept]
    leads_to: list[Concept]


@router.get("", response_model=list[Concept])
async def list_concepts(service: QueryService = Depends(get_query_service)):
    return await service.get_all_concepts()


@router.get("/stats")
async def graph_stats(service: QueryService = Depends(get_query_service)):
    return await service.get_graph_stats()


@router.get("/{concept_id}", response_model=ConceptDetailResponse)
async def concept_detail(concept_id: str, service: QueryService = Depends(get_query_service)):
    """Look up a concept by id or exact name, with its neighbours in the graph."""
    detail = await service.get_concept_detail(concept_id)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Concept not found: {concept_id}",
        )
    return ConceptDetailResponse(**detail)
