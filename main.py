"""FastAPI entry point for the worksheet submission & assessment service."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import get_settings
from errors.exceptions import AppError
from models.errors import error_body, format_error
from services.middleware import RequestIdMiddleware
from services.record_store import RedisRecordStore, create_record_store
from services.section_service import seed_worksheets
from services.submission_service import WorksheetSessionRegistry

# Provider keys in .env must reach os.environ for LiteLLM
load_dotenv()
settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle — start/stop shared resources."""
    store = create_record_store(settings)

    # Verify Redis connectivity if using Redis store
    if isinstance(store, RedisRecordStore):
        if await store.ping():
            logger.info("Redis connection verified")
        else:
            logger.warning("Redis connection failed; store calls will error until it recovers")

    app.state.record_store = store
    app.state.session_registry = WorksheetSessionRegistry(
        store,
        stage_count=settings.worksheet_stage_count,
        title=settings.worksheet_title,
    )
    await seed_worksheets(store)

    yield

    await store.close()


app = FastAPI(
    title="LKPD Assessment Service",
    description="Worksheet progress tracking and AI-assisted essay assessment",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ─────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=settings.cors_allow_headers,
)
app.add_middleware(RequestIdMiddleware)


# ── Error rendering ──────────────────────────────────────────


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(format_error(exc.code, str(exc)))
    else:
        logger.info(format_error(exc.code, str(exc)))
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.details))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content=error_body("Invalid request body", details))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500, content=error_body("Internal server error", str(exc))
    )


# ── Register routers ────────────────────────────────────────
from api.assessment import router as assessment_router  # noqa: E402
from api.health import router as health_router  # noqa: E402
from api.lkpd import router as lkpd_router  # noqa: E402
from api.rubrics import router as rubrics_router  # noqa: E402
from api.worksheet import router as worksheet_router  # noqa: E402

app.include_router(health_router)
app.include_router(assessment_router)
app.include_router(rubrics_router)
app.include_router(worksheet_router)
app.include_router(lkpd_router)


if __name__ == "__main__":
    if settings.debug:
        # Development: single worker with reload
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            reload=True,
        )
    else:
        # Production: prefer gunicorn main:app -c deploy/gunicorn.conf.py
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.service_port,
            timeout_keep_alive=75,
        )
