"""
HTTP API for the brain: synchronous ingest, queued ingest and questions.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.config import AppSettings
from src.config import settings as app_settings
from src.core_rag_engine import CoreRAGEngine
from src.ingest_queue import IngestJobQueue, redis_connection
from src.rag import PayloadValidationError, ServiceContext


logger = logging.getLogger(__name__)


def create_app(
    engine: Optional[CoreRAGEngine] = None,
    settings: Optional[AppSettings] = None,
) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        engine: Pre-built engine; when omitted one is built on startup and
            its service context closed on shutdown
        settings: Application settings used to build the engine

    Returns:
        Configured FastAPI application
    """
    cfg = settings or app_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            app.state.engine = engine
            yield
            return

        context = ServiceContext.init(cfg)
        job_queue = IngestJobQueue(redis_connection(cfg.queue), cfg.queue)
        app.state.engine = CoreRAGEngine(context, job_queue=job_queue)
        logger.info("Brain API started.")
        try:
            yield
        finally:
            context.close()
            logger.info("Brain API stopped.")

    app = FastAPI(title="Brain API", description="Question answering over local files", lifespan=lifespan)

    @app.exception_handler(PayloadValidationError)
    async def payload_validation_handler(request: Request, exc: PayloadValidationError) -> JSONResponse:
        logger.warning(f"Rejected payload on {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"status": "error", "message": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(f"Malformed request on {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"status": "error", "message": "Malformed request body."})

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/ai/ingest")
    def ingest(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        result = request.app.state.engine.ingest(payload)
        status_code = 200 if result.get("status") == "ok" else 500
        return JSONResponse(status_code=status_code, content=result)

    @app.post("/queue/ingest")
    def queue_ingest(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        result = request.app.state.engine.enqueue(payload)
        status_code = 200 if result.get("status") == "ok" else 500
        return JSONResponse(status_code=status_code, content=result)

    @app.post("/ai/ask")
    def ask(request: Request, payload: Dict[str, Any] = Body(...)) -> JSONResponse:
        result = request.app.state.engine.ask(payload)
        status_code = 200 if result.status == "ok" else 500
        return JSONResponse(status_code=status_code, content=result.model_dump())

    return app
