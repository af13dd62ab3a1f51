"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from prompt_library.config import settings
from prompt_library.database import dispose_engine, get_db, get_engine
from prompt_library.errors import PromptLibraryError, StoreError
from prompt_library.models import Base
from prompt_library.validation import first_error_message

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, release the pool on shutdown."""
    if not settings.ADMIN_KEY:
        logger.warning("ADMIN_KEY is not set; admin routes will refuse every request")

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await dispose_engine()


app = FastAPI(
    title="Prompt Library API",
    version="1.0.0",
    description="Versioned prompt management with status workflow and audit log.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PromptLibraryError)
async def prompt_library_error_handler(request: Request, exc: PromptLibraryError):
    if exc.status_code >= 500 and not isinstance(exc, StoreError):
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": first_error_message(exc.errors())})


@app.get("/api/health")
async def health_check():
    """Verify configuration and database connectivity."""
    status = {"status": "ok", "admin_key_configured": bool(settings.ADMIN_KEY)}
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            status["database"] = "connected"
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        status.update(status="error", database=str(e))
    if not settings.ADMIN_KEY:
        status["status"] = "error"
    return status


# Register routers
from prompt_library.routes.prompts import router as prompts_router
from prompt_library.routes.versions import router as versions_router
from prompt_library.routes.events import router as events_router
from prompt_library.routes.tags import router as tags_router, purposes_router
app.include_router(prompts_router)
app.include_router(versions_router)
app.include_router(events_router)
app.include_router(tags_router)
app.include_router(purposes_router)


def run():
    """Console entry point: serve the API with uvicorn on API_PORT."""
    import uvicorn

    uvicorn.run("prompt_library.main:app", host="0.0.0.0", port=settings.API_PORT)
