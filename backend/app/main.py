import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from starlette.responses import JSONResponse

from .auth import SessionAuthMiddleware
from .auth_routes import router as auth_router
from .config import DEFAULT_SESSION_SECRET, Settings, get_settings
from .dashboard_routes import router as dashboard_router
from .db.monitoring import get_pool_snapshot
from .db.session import create_schema, dispose_engine, get_engine
from .history_routes import router as history_router
from .logging_config import configure_logging
from .model_answer_routes import router as model_answer_router
from .practice_routes import reset_response_cache, reset_sessions, router as practice_router


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info("OpenAI API key configured: %s", bool(settings.openai_api_key))
    if settings.session_secret == DEFAULT_SESSION_SECRET:
        logger.warning("SPEAKING_SESSION_SECRET is not set; session tokens are signed with the built-in default")
    if settings.database_url and settings.database_url.startswith("sqlite"):
        create_schema()
    elif not settings.database_url:
        logger.warning("SPEAKING_DATABASE_URL is not configured; history and model answer routes will fail")
    try:
        yield
    finally:
        reset_sessions()
        reset_response_cache()
        dispose_engine()


app = FastAPI(title="Speaking Coach Backend", version="0.1.0", lifespan=lifespan)
app.add_middleware(SessionAuthMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected %s %s: %s validation error(s)", request.method, request.url.path, len(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


app.include_router(auth_router)
app.include_router(practice_router)
app.include_router(history_router)
app.include_router(model_answer_router)
app.include_router(dashboard_router)


@app.get("/healthz")
def health(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return {
        "status": "ok",
        "openai_configured": bool(settings.openai_api_key),
        "database_configured": bool(settings.database_url),
    }


@app.get("/healthz/database")
def database_health() -> JSONResponse:
    try:
        engine = get_engine()
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        logger.exception("Database health check failed")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "error", "detail": str(exc)},
        )
    return JSONResponse({"status": "ok", "pool": get_pool_snapshot(engine)})
