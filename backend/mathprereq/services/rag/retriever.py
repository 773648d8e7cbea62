"""
Semantic Index

Queries the ChromaDB vector store for course-material chunks that are
semantically similar to a student's question.

Uses the chromadb client directly (not langchain_chroma) to avoid
LangChain Document deserialization that can raise KeyError('_type').

How retrieval works:
1. The question is converted into a vector using OpenAI embeddings.
2. ChromaDB compares this vector against stored chunk vectors (cosine distance).
3. Results come back nearest-first; score = 1 - distance, so descending score.

Both the embedding call and the Chroma query are blocking, so they run in a
worker thread to keep the event loop free.
"""

import asyncio
import os
from abc import ABC, abstractmethod

import chromadb
from langchain_openai import OpenAIEmbeddings

from mathprereq.core.config import get_settings
from mathprereq.core.errors import SemanticIndexUnavailable
from mathprereq.core.logging import get_logger
from mathprereq.services.entities import VectorResult

logger = get_logger(__name__)


class SemanticIndex(ABC):
    @abstractmethod
    async def search(self, query: str, k: int) -> list[VectorResult]:
        ...

    @abstractmethod
    def status(self) -> dict:
        ...


class ChromaSemanticIndex(SemanticIndex):
    def __init__(self, persist_dir: str, collection_name: str, embeddings=None):
        self.persist_dir = persist_dir
        self.collection_name = collection_name
        self._embeddings = embeddings
        self._collection = None

    @classmethod
    def from_settings(cls) -> "ChromaSemanticIndex":
        settings = get_settings()
        return cls(settings.chroma_persist_dir, settings.chroma_collection)

    def _load(self):
        """Open the persisted collection; raises SemanticIndexUnavailable."""
        if self._collection is not None:
            return self._collection

        if not os.path.exists(self.persist_dir):
            raise SemanticIndexUnavailable(
                f"ChromaDB directory {self.persist_dir} not found (run ingestion first)"
            )

        try:
            client = chromadb.PersistentClient(path=self.persist_dir)
            collection = client.get_collection(self.collection_name)
        except Exception as e:
            if str(e) == "'_type'":
                raise SemanticIndexUnavailable(
                    "incompatible persisted format (missing '_type'); re-run ingestion"
                ) from e
            raise SemanticIndexUnavailable(f"failed to load ChromaDB: {e}") from e

        if self._embeddings is None:
            settings = get_settings()
            self._embeddings = OpenAIEmbeddings(
                model=settings.embedding_model,
                openai_api_key=settings.openai_api_key,
            )

        logger.info("semantic_index_loaded", collection=self.collection_name, chunks=collection.count())
        self._collection = collection
        return collection

    def reset(self) -> None:
        """Forget the open collection (after re-ingestion)."""
        self._collection = None

    def _search_sync(self, query: str, k: int) -> list[VectorResult]:
        collection = self._load()
        query_embedding = self._embeddings.embed_query(query)
        result = collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            include=["documents", "metadatas", "distances"],
        )
        # Each field is a list of lists, one per query embedding
        docs = result["documents"][0] if result.get("documents") else []
        metas = result["metadatas"][0] if result.get("metadatas") else []
        distances = result["distances"][0] if result.get("distances") else []

        results = [
            VectorResult(
                content=(text or "").strip(),
                score=1.0 - float(distance),
                metadata=dict(meta or {}),
            )
            for text, meta, distance in zip(docs, metas, distances)
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    async def search(self, query: str, k: int) -> list[VectorResult]:
        results = await asyncio.to_thread(self._search_sync, query, k)
        logger.info("semantic_search_completed", results=len(results), k=k)
        return results

    def status(self) -> dict:
        info = {
            "available": False,
            "chunk_count": 0,
            "collection": self.collection_name,
            "persist_dir": os.path.abspath(self.persist_dir),
            "message": "",
        }
        try:
            collection = self._load()
        except SemanticIndexUnavailable as e:
            info["message"] = str(e)
            return info

        info["available"] = True
        info["chunk_count"] = collection.count()
        return info


# ── Singleton ─────────────────────────────────────────────────────────────────

_index: ChromaSemanticIndex | None = None


def get_semantic_index() -> ChromaSemanticIndex:
    global _index
    if _index is None:
        _index = ChromaSemanticIndex.from_settings()
    return _index
