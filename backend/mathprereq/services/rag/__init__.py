"""
RAG (Retrieval-Augmented Generation) Pipeline

Grounds generated explanations in course material by:
1. Ingesting course documents into a ChromaDB vector store
2. Retrieving the chunks closest to the student's question at query time
3. Passing those chunks to the explanation prompt as context
"""

from mathprereq.services.rag.retriever import (
    SemanticIndex,
    ChromaSemanticIndex,
    get_semantic_index,
)

__all__ = [
    "SemanticIndex",
    "ChromaSemanticIndex",
    "get_semantic_index",
]
