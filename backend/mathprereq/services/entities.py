"""
Domain entities shared by the pipeline, the cache layer and the HTTP routers.

These are plain pydantic models; persistence goes through the SQLAlchemy
records in ``mathprereq.models`` via the repositories.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from mathprereq.core.database import utcnow


class Concept(BaseModel):
    id: str
    name: str
    description: str = ""
    type: str = "target"  # "prerequisite" | "target"


class VectorResult(BaseModel):
    content: str
    score: float
    metadata: dict = Field(default_factory=dict)


class ProcessingStep(BaseModel):
    name: str
    duration_ms: int
    success: bool
    error: str | None = None


class Query(BaseModel):
    """A single run of the explanation pipeline."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    user_id: str | None = None
    text: str
    identified_concepts: list[str] = Field(default_factory=list)
    prerequisite_path: list[Concept] = Field(default_factory=list)
    explanation: str = ""
    retrieved_context: list[str] = Field(default_factory=list)
    llm_provider: str = ""
    llm_model: str = ""
    timestamp: datetime = Field(default_factory=utcnow)
    processing_time_ms: int = 0
    success: bool = False
    error_message: str | None = None
    request_id: str | None = None
    processing_steps: list[ProcessingStep] = Field(default_factory=list)

    def add_processing_step(
        self, name: str, duration_ms: int, success: bool, error: str | None = None
    ) -> None:
        self.processing_steps.append(
            ProcessingStep(name=name, duration_ms=duration_ms, success=success, error=error)
        )

    def mark_completed(self, success: bool, error: str | None = None) -> None:
        self.success = success
        self.error_message = error
        if not success:
            # A failed query never carries an explanation
            self.explanation = ""


class QueryResult(BaseModel):
    query_id: uuid.UUID
    request_id: str | None = None
    identified_concepts: list[str]
    prerequisite_path: list[Concept]
    explanation: str
    retrieved_context: list[str]
    processing_time_ms: int
    llm_provider: str
    llm_model: str


class SmartQueryResult(QueryResult):
    concept_name: str
    source: str  # "cache" | "processed"
    cache_age_seconds: float | None = None
    timestamp: datetime
