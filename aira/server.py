"""FastAPI server for the AIRA field-service assistant.

Run with:
    uvicorn aira.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from aira.agent import ChatOrchestrator
from aira.api.routes import router
from aira.config import CORS_ORIGINS, DATA_BACKEND, SERVER_HOST, SERVER_PORT
from aira.services.backend import FieldServiceBackend, InMemoryBackend
from aira.services.bedrock_gateway import create_bedrock_gateway
from aira.services.conversation_store import ConversationStore
from aira.services.field_api_client import FieldAPIClient
from aira.services.metrics import metrics
from aira.tools.executor import FunctionExecutor

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logging.getLogger("botocore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def build_backend(kind: str = DATA_BACKEND) -> FieldServiceBackend:
    """Select the business-data collaborator named by ``DATA_BACKEND``."""
    if kind == "api":
        return FieldAPIClient()
    if kind == "memory":
        logger.warning("Using the in-memory data backend; records are lost on restart")
        return InMemoryBackend()
    raise ValueError(f"Unknown DATA_BACKEND {kind!r}; expected 'api' or 'memory'")


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build every dependency once and store it in app state.

    Shutdown closes the data backend and flushes buffered metrics.
    """
    logger.info("Initialising AIRA dependencies (backend=%s)…", DATA_BACKEND)
    backend = build_backend()
    gateway = create_bedrock_gateway()
    executor = FunctionExecutor(backend)

    application.state.backend = backend
    application.state.gateway = gateway
    application.state.orchestrator = ChatOrchestrator(gateway, executor)
    application.state.conversations = ConversationStore()
    logger.info("AIRA ready.")
    try:
        yield
    finally:
        logger.info("Shutting down: closing backend and flushing metrics")
        backend.close()
        metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="AIRA Assistant",
    description=(
        "AI assistant for field-service teams: manage customers, jobs, "
        "invoices and notifications in natural language."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID to every request and echo it as ``X-Request-ID``."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "AIRA Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting AIRA API server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "aira.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
