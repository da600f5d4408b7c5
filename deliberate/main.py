"""Deliberate FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deliberate.api.admin import router as admin_router
from deliberate.api.attachments import router as attachments_router
from deliberate.api.charity import router as charity_router
from deliberate.api.coaching import router as coaching_router
from deliberate.api.comments import router as comments_router
from deliberate.api.decisions import router as decisions_router
from deliberate.api.health import router as health_router
from deliberate.api.judgments import router as judgments_router
from deliberate.config import settings
from deliberate.database import dispose_engine
from deliberate.errors import DeliberateError, ValidationFailed
from deliberate.services.charity import CharityClient
from deliberate.services.file_storage import FileStorage
from deliberate.services.llm import build_completions, close_completions

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the external clients for the life of the process."""
    app.state.file_storage = FileStorage(settings.upload_dir)
    app.state.completions = build_completions(settings)
    app.state.charity = None
    if settings.charity_api_url:
        charity = CharityClient(
            settings.charity_api_url,
            api_key=settings.charity_api_key,
            timeout=settings.charity_timeout,
            max_retries=settings.charity_max_retries,
        )
        error = await charity.connect()
        if error:
            logger.warning("Charity service not reachable at startup: %s", error)
        app.state.charity = charity
    else:
        logger.info("CHARITY_API_URL not set; charity lookups disabled")

    yield

    if app.state.charity is not None:
        await app.state.charity.aclose()
    await close_completions(app.state.completions)
    await dispose_engine()


app = FastAPI(
    title="Deliberate - Decision Governance",
    description="Blind committee judgments, noise analysis and AI decision coaching",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DeliberateError)
async def deliberate_error_handler(request: Request, exc: DeliberateError):
    body = {"detail": exc.message}
    if isinstance(exc, ValidationFailed) and exc.field:
        body["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report the first violated constraint as a 400."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or None
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{field}: {message}" if field else message, "field": field},
    )


app.include_router(health_router, tags=["Health"])
app.include_router(decisions_router, prefix="/api", tags=["Decisions"])
app.include_router(judgments_router, prefix="/api", tags=["Judgments"])
app.include_router(comments_router, prefix="/api", tags=["Comments"])
app.include_router(attachments_router, prefix="/api", tags=["Attachments"])
app.include_router(coaching_router, prefix="/api", tags=["Coaching"])
app.include_router(charity_router, prefix="/api", tags=["Charity"])
app.include_router(admin_router, prefix="/api/admin", tags=["Admin"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "Deliberate", "version": "0.1.0", "docs": "/docs"}
