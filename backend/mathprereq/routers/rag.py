"""
RAG Admin Router

Provides endpoints to check the semantic index and trigger re-ingestion.
"""

import asyncio

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from mathprereq.core.logging import get_logger
from mathprereq.services.rag.retriever import get_semantic_index

router = APIRouter()
logger = get_logger(__name__)


class RAGStatusResponse(BaseModel):
    available: bool
    chunk_count: int
    collection: str
    persist_dir: str
    message: str = ""


@router.get("/status", response_model=RAGStatusResponse)
async def rag_status():
    """Check the status of the semantic index."""
    info = await asyncio.to_thread(get_semantic_index().status)
    return RAGStatusResponse(**info)


@router.post("/ingest")
async def trigger_ingestion():
    """
    Rebuild the semantic index from the course documents directory.

    Blocking work (loading, embedding, writing Chroma) runs in a worker thread.
    """
    from mathprereq.services.rag.ingest import run_ingestion

    index = get_semantic_index()
    try:
        count = await asyncio.to_thread(run_ingestion)
    except Exception as e:
        logger.error("ingestion_failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Ingestion failed: {str(e)}",
        )
    index.reset()
    return {
        "status": "success",
        "message": f"Ingestion complete. {count} chunks stored.",
        "chunk_count": count,
    }
