"""
Expressive Chat - Main FastAPI Application
"""

import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .config import settings
from .api import auth_router, chat_router, conversation_router
from .core.errors import ChatAppError
from .core.logging_config import setup_logging
from .core.orchestrator import init_orchestrator
from .llm.factory import create_llm_provider
from .middleware import RequestLoggingMiddleware
from .storage import close_database, init_chat_storage, init_database, init_user_storage

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)


def _get_llm_provider():
    """Get configured LLM provider or None."""
    return create_llm_provider(
        provider=settings.llm_provider,
        api_key=settings.llm_api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout=settings.llm_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    setup_logging(settings)

    if settings.using_insecure_secret:
        logger.warning(
            "SECRET_KEY is not set: using the INSECURE development signing key. "
            "Never run like this in production."
        )

    database = await init_database(settings.database_url, echo=settings.database_echo)
    init_user_storage(database)
    chat_storage = init_chat_storage(database)

    llm_provider = _get_llm_provider()
    if llm_provider is None:
        logger.warning("LLM_API_KEY is not set: every turn will get the fallback error reply")
    orchestrator = init_orchestrator(chat_storage, llm_provider)

    logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
    logger.info(f"LLM provider: {settings.llm_provider if llm_provider else 'none'}")
    logger.info(f"Log level: {settings.log_level.upper()}")
    yield
    # Shutdown
    orchestrator.shutdown()
    await close_database()
    logger.info(f"Shutting down {settings.app_name}")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-user chat with persistent conversations against a generative model",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware (after CORS)
if settings.log_api_requests:
    app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ChatAppError)
async def chat_app_error_handler(request: Request, exc: ChatAppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "ValidationError", "detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "ServerError", "detail": "Server error"},
    )


# Include routers
app.include_router(auth_router)
app.include_router(chat_router)
app.include_router(conversation_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.environment,
        "version": settings.app_version
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "expressive_chat.main:app",
        host="0.0.0.0",
        port=3000,
        reload=settings.debug
    )
