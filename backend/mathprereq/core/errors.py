"""
Error taxonomy for the query pipeline and resource discovery.

Only FatalStageError crosses the pipeline boundary; everything else is
absorbed where it happens and shows up in the processing-step log or in
the structured logs.
"""

STAGE_DESCRIPTIONS = {
    "identify_concepts": "concept identification",
    "find_prerequisites": "prerequisite path finding",
    "vector_search": "context retrieval",
    "generate_explanation": "explanation generation",
}


class StageError(Exception):
    """A pipeline stage failed."""

    def __init__(self, stage: str, cause: BaseException):
        self.stage = stage
        self.cause = cause
        description = STAGE_DESCRIPTIONS.get(stage, stage)
        super().__init__(f"{description} failed: {_describe(cause)}")


class FatalStageError(StageError):
    """Stage failure that aborts the pipeline and is returned to the caller."""


class DegradedStageError(StageError):
    """Stage failure that is recovered locally (retrieval)."""


class SourceFetchError(Exception):
    """One external educational source could not be fetched or parsed."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(f"{source}: {message}")


class PersistenceError(Exception):
    """A background write to the durable store failed."""


class SemanticIndexUnavailable(RuntimeError):
    """The vector store has not been initialised."""


def _describe(exc: BaseException) -> str:
    text = str(exc)
    if not text:
        # TimeoutError and friends carry no message
        return type(exc).__name__
    return text
