"""
Course Material Ingestion

Loads course documents (PDF, DOCX, Markdown/text) from the course_docs/
directory, splits them into chunks, embeds them using OpenAI, and stores
them in ChromaDB for the semantic index.

How it works:
1. LOAD: LangChain document loaders read raw files into Document objects
2. TAG: Metadata (course, topic, source_file) extracted from folder/filename
3. SPLIT: RecursiveCharacterTextSplitter breaks docs into ~500-char chunks
4. EMBED: OpenAI embeddings convert each chunk to a vector
5. STORE: Chroma.from_documents() saves vectors + text + metadata to disk,
   in a cosine-distance collection so the retriever can report
   score = 1 - distance

Usage:
    cd backend
    python -m mathprereq.services.rag.ingest
"""

import os
import re
import shutil
import sys
from pathlib import Path

from langchain_community.document_loaders import Docx2txtLoader, PyMuPDFLoader, TextLoader
from langchain_text_splitters import RecursiveCharacterTextSplitter
from langchain_openai import OpenAIEmbeddings
from langchain_chroma import Chroma

from mathprereq.core.config import get_settings
from mathprereq.core.logging import get_logger, setup_logging

logger = get_logger(__name__)

# "03_chain_rule" -> "chain rule"
ORDER_PREFIX = re.compile(r"^\d+[_\-\s]+")


class IngestionError(RuntimeError):
    pass


# ── Metadata Extraction ──────────────────────────────────────────────────────

def extract_metadata_from_path(file_path: str) -> dict:
    """
    Extract course and topic metadata from the file's directory and name.

    For example:
        course_docs/calculus_1/03_chain_rule.pdf
        → course="calculus_1", topic="chain rule"
    """
    p = Path(file_path)
    topic = ORDER_PREFIX.sub("", p.stem).replace("_", " ").replace("-", " ").strip().lower()
    return {
        "course": p.parent.name,
        "topic": topic or p.stem.lower(),
        "source_file": p.name,
    }


# ── Document Loading ─────────────────────────────────────────────────────────

def _loader_for(file_path: Path):
    suffix = file_path.suffix.lower()
    if suffix == ".docx":
        return Docx2txtLoader(str(file_path))
    if suffix == ".pdf":
        return PyMuPDFLoader(str(file_path))
    if suffix in (".md", ".txt"):
        return TextLoader(str(file_path), encoding="utf-8")
    return None


def load_documents(docs_dir: str) -> list:
    """Walk the docs directory and load every supported file."""
    documents = []
    docs_path = Path(docs_dir)

    if not docs_path.exists():
        logger.warning("ingest_docs_dir_missing", docs_dir=docs_dir)
        return documents

    for file_path in sorted(docs_path.rglob("*")):
        loader = _loader_for(file_path)
        if loader is None:
            continue

        try:
            docs = loader.load()
        except Exception as e:
            logger.error("ingest_load_failed", file=file_path.name, error=str(e))
            continue

        file_meta = extract_metadata_from_path(str(file_path))
        for doc in docs:
            doc.metadata.update(file_meta)
        documents.extend(docs)
        logger.info("ingest_file_loaded", file=file_path.name, pages=len(docs))

    return documents


# ── Chunking ─────────────────────────────────────────────────────────────────

def split_documents(documents: list) -> list:
    # chunk_overlap keeps a formula from being cut in half at a boundary
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=500,
        chunk_overlap=100,
        separators=["\n\n", "\n", ". ", " ", ""],
        length_function=len,
    )
    return splitter.split_documents(documents)


# ── Embedding & Storage ──────────────────────────────────────────────────────

def create_vector_store(chunks: list, persist_dir: str, collection_name: str) -> Chroma:
    settings = get_settings()
    embeddings = OpenAIEmbeddings(
        model=settings.embedding_model,
        openai_api_key=settings.openai_api_key,
    )

    # Full re-ingest
    if os.path.exists(persist_dir):
        logger.info("ingest_removing_old_index", persist_dir=persist_dir)
        shutil.rmtree(persist_dir)

    return Chroma.from_documents(
        documents=chunks,
        embedding=embeddings,
        persist_directory=persist_dir,
        collection_name=collection_name,
        collection_metadata={"hnsw:space": "cosine"},
    )


# ── Main ─────────────────────────────────────────────────────────────────────

def run_ingestion(docs_dir: str | None = None, persist_dir: str | None = None) -> int:
    """
    Run the full ingestion pipeline.

    Returns:
        Number of chunks stored

    Raises:
        IngestionError: Missing API key or no documents to ingest
    """
    settings = get_settings()
    docs_dir = docs_dir or settings.course_docs_dir
    persist_dir = persist_dir or settings.chroma_persist_dir

    if not settings.openai_api_key:
        raise IngestionError("OPENAI_API_KEY is not set; cannot create embeddings")

    logger.info(
        "ingest_started",
        docs_dir=os.path.abspath(docs_dir),
        persist_dir=os.path.abspath(persist_dir),
    )

    documents = load_documents(docs_dir)
    if not documents:
        raise IngestionError(f"no documents found in {docs_dir}")

    chunks = split_documents(documents)
    topics = sorted(set(c.metadata.get("topic", "?") for c in chunks))
    logger.info("ingest_split", pages=len(documents), chunks=len(chunks), topics=topics)

    vector_store = create_vector_store(chunks, persist_dir, settings.chroma_collection)
    count = vector_store._collection.count()
    logger.info("ingest_completed", chunks=count)
    return count


if __name__ == "__main__":
    setup_logging()
    try:
        run_ingestion()
    except IngestionError as e:
        logger.error("ingest_failed", error=str(e))
        sys.exit(1)
