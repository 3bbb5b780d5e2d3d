"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from devhub import __version__
from devhub.api.deps import container
from devhub.api.v1 import (
    application_feedback,
    chat,
    dashboard,
    feedback,
    github,
    health,
    history,
    jira,
    logs,
    models,
    requirements,
    salesforce,
    share,
    vote,
)
from devhub.core.config import settings
from devhub.core.constants import API_PREFIX
from devhub.core.exceptions import DevHubError
from devhub.core.logging import (
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
    unbind_context,
)
from devhub.core.security import generate_request_id
from devhub.db.session import close_db, init_db

# Initialize logging
setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting DevHub gateway",
        app_name=settings.app_name,
        env=settings.app_env,
    )

    await init_db()
    container.initialize()
    logger.info("Service container initialized")

    yield

    # Shutdown
    logger.info("Shutting down DevHub gateway")
    await container.close()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title="DevHub Gateway API",
    description="Backend for the developer hub: chat, sharing, feedback, GitHub, JIRA and analysis proxies",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Tag every log line of a request with its id."""
    clear_context()
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    bind_context(request_id=request_id)

    try:
        response = await call_next(request)
    finally:
        unbind_context("request_id")
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


# Exception handlers
@app.exception_handler(DevHubError)
async def devhub_error_handler(
    request: Request,
    exc: DevHubError,
) -> JSONResponse:
    """Handle custom application errors."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Application error",
        error_code=exc.code,
        error_message=exc.message,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle unexpected errors."""
    logger.exception(
        "Unexpected error",
        error=str(exc),
        path=request.url.path,
    )
    error = {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"}
    if not settings.is_production:
        error["details"] = {"type": type(exc).__name__}
    return JSONResponse(status_code=500, content={"error": error})


# Include routers
app.include_router(health.router, prefix=API_PREFIX, tags=["Health"])
app.include_router(models.router, prefix=API_PREFIX, tags=["Models"])
app.include_router(chat.router, prefix=API_PREFIX, tags=["Chat"])
app.include_router(history.router, prefix=API_PREFIX, tags=["History"])
app.include_router(vote.router, prefix=API_PREFIX, tags=["Votes"])
app.include_router(share.router, prefix=API_PREFIX, tags=["Sharing"])
app.include_router(feedback.router, prefix=API_PREFIX, tags=["Feedback"])
app.include_router(application_feedback.router, prefix=API_PREFIX, tags=["Application Feedback"])
app.include_router(github.router, prefix=API_PREFIX, tags=["GitHub"])
app.include_router(jira.router, prefix=API_PREFIX, tags=["JIRA"])
app.include_router(logs.router, prefix=API_PREFIX, tags=["Log Analysis"])
app.include_router(requirements.router, prefix=API_PREFIX, tags=["Requirements"])
app.include_router(salesforce.router, prefix=API_PREFIX, tags=["Salesforce"])
app.include_router(dashboard.router, prefix=API_PREFIX, tags=["Dashboard"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else "Disabled in production",
    }


# API info endpoint
@app.get("/api")
async def api_info() -> dict[str, Any]:
    """API information endpoint."""
    return {
        "name": "DevHub Gateway API",
        "version": __version__,
        "prefix": API_PREFIX,
        "endpoints": {
            "health": f"{API_PREFIX}/health",
            "models": f"{API_PREFIX}/models",
            "chat": f"{API_PREFIX}/query/stream",
            "history": f"{API_PREFIX}/history",
            "github": f"{API_PREFIX}/github",
            "jira": f"{API_PREFIX}/jira",
            "dashboard": f"{API_PREFIX}/dashboard",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "devhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
    )
