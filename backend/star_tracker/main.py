import re
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from .config import Settings, get_settings
from .datasources.base import AnalyticalStore
from .datasources.clickhouse_adapter import ClickHouseAdapter
from .errors import ValidationFailure
from .schemas import MAX_PAGE_SIZE, AISearchRequest, CountResponse, SearchRequest, SearchResponse
from .services.llm_client import LLMClient
from .services.search_orchestrator import SearchOrchestrator

MAX_TERM_LENGTH = 200
MAX_UTTERANCE_LENGTH = 500
MAX_LANGUAGE_LENGTH = 40
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


def validate_search(body: SearchRequest) -> None:
    if len(body.term) > MAX_TERM_LENGTH:
        raise ValidationFailure(f"term longer than {MAX_TERM_LENGTH} characters")
    # "" and "all" both mean no language filter; the value is always a bound parameter
    if len(body.language) > MAX_LANGUAGE_LENGTH or _CONTROL_CHARS.search(body.language):
        raise ValidationFailure(f"malformed language filter: {body.language!r}")


def validate_ai_search(body: AISearchRequest) -> None:
    if len(body.utterance) > MAX_UTTERANCE_LENGTH:
        raise ValidationFailure(f"utterance longer than {MAX_UTTERANCE_LENGTH} characters")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[AnalyticalStore] = None,
    llm: Optional[LLMClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        app.state.store = store or ClickHouseAdapter(settings)
        app.state.llm = llm or LLMClient(settings)
        app.state.orchestrator = SearchOrchestrator(app.state.store, app.state.llm, settings)
        logger.info(f"[Startup] serving {settings.clickhouse_database}.{settings.repos_table}")
        try:
            yield
        finally:
            await app.state.store.close()
            await app.state.llm.close()
            logger.info("[Shutdown] clients closed")

    app = FastAPI(title="Star Tracker", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationFailure)
    async def validation_failure_handler(request: Request, exc: ValidationFailure):
        logger.info(f"[Validation] rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    def get_orchestrator(request: Request) -> SearchOrchestrator:
        return request.app.state.orchestrator

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}

    @app.get("/repositories", response_model=SearchResponse)
    async def list_repositories(
        offset: int = Query(0, ge=0),
        limit: int = Query(settings.page_size, ge=1, le=MAX_PAGE_SIZE),
        orchestrator: SearchOrchestrator = Depends(get_orchestrator),
    ):
        return await orchestrator.list_default(offset, limit)

    @app.get("/repositories/count", response_model=CountResponse)
    async def count_repositories(orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
        return CountResponse(total=await orchestrator.count())

    @app.post("/search", response_model=SearchResponse)
    async def search(body: SearchRequest, orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
        validate_search(body)
        return await orchestrator.search(body)

    @app.post("/search/ai", response_model=SearchResponse)
    async def ai_search(body: AISearchRequest, orchestrator: SearchOrchestrator = Depends(get_orchestrator)):
        validate_ai_search(body)
        return await orchestrator.ai_search(body)

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8020)
