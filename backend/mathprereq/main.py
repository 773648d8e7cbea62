from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from mathprereq.core.config import get_settings
from mathprereq.core.database import dispose_engine, init_models
from mathprereq.core.errors import FatalStageError
from mathprereq.core.logging import get_logger, setup_logging
from mathprereq.routers import concepts, health, models, query, rag, resources
from mathprereq.services.background import get_background_runner
from mathprereq.services.graph.concept_graph import close_concept_graph
from mathprereq.services.llm.registry import close_providers
from mathprereq.services.query_service import reset_query_service
from mathprereq.services.resources.discovery import close_discovery_engine


settings = get_settings()
logger = get_logger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: logging and tables (no migrations; create_all is idempotent)
    setup_logging()
    await init_models()
    logger.info("app_started", model=settings.openai_model)
    yield
    # Shutdown: let detached jobs finish, then close clients
    await get_background_runner().shutdown(timeout=settings.background_shutdown_timeout_seconds)
    await close_discovery_engine()
    await close_concept_graph()
    await close_providers()
    await dispose_engine()
    reset_query_service()
    logger.info("app_stopped")


app = FastAPI(
    title="MathPrereq API",
    description="Explains math questions along their prerequisite path, with curated learning resources",
    version="1.0.0",
    lifespan=lifespan,
)
# Avoid 307 redirects for trailing slash that can cause redirect loops behind nginx
app.router.redirect_slashes = False

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FatalStageError)
async def fatal_stage_handler(request: Request, exc: FatalStageError):
    return JSONResponse(status_code=502, content={"error": str(exc), "stage": exc.stage})


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(query.router, prefix=API_PREFIX, tags=["Queries"])
app.include_router(resources.router, prefix=f"{API_PREFIX}/resources", tags=["Resources"])
app.include_router(concepts.router, prefix=f"{API_PREFIX}/concepts", tags=["Concepts"])
app.include_router(models.router, prefix=f"{API_PREFIX}/models", tags=["Models"])
app.include_router(rag.router, prefix=f"{API_PREFIX}/rag", tags=["RAG"])
