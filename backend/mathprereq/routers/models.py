"""
Models Router

Exposes the LLM models the backend can be configured with.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mathprereq.services.llm.registry import list_models
from mathprereq.services.query_service import QueryService, get_query_service


router = APIRouter()


class ModelInfo(BaseModel):
    id: str
    display_name: str
    provider: str
    tier: str
    description: str
    active: bool


@router.get("", response_model=list[ModelInfo])
async def get_available_models(service: QueryService = Depends(get_query_service)):
    """Return the registered models, flagging the one in use."""
    return list_models(active_model_id=service.llm.model_id)
