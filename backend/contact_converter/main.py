import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv, find_dotenv

from .config import Settings
from .context import AppContext
from .logging_config import setup_logging
from .middleware.logging_middleware import LoggingMiddleware
from .routers import files as files_router
from .routers import health as health_router
from .routers import whatsapp as whatsapp_router

logger = logging.getLogger(__name__)


def _load_env() -> None:
    # Prefer a repo-root .env, but also load backend/.env if present to allow overrides.
    repo_root_env = Path(__file__).resolve().parents[2] / ".env"
    backend_env = Path(__file__).resolve().parents[1] / ".env"
    if repo_root_env.exists():
        load_dotenv(dotenv_path=repo_root_env, override=False)
    if backend_env.exists():
        load_dotenv(dotenv_path=backend_env, override=False)
    # As a fallback, try auto-discovery upward from the working directory
    if not repo_root_env.exists() and not backend_env.exists():
        load_dotenv(find_dotenv(usecwd=True), override=False)


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Explicit settings; read from the environment when omitted
        context: Pre-built context (tests); created in the lifespan when omitted
    """
    if settings is None and context is None:
        _load_env()
        settings = Settings.from_env()
    settings = settings or context.settings
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = context is None
        if owned:
            app.state.ctx = await AppContext.create(settings)
        try:
            yield
        finally:
            if owned:
                await app.state.ctx.aclose()

    app = FastAPI(title="WhatsApp Contact Converter", version="1.0.0", lifespan=lifespan)
    if context is not None:
        app.state.ctx = context

    app.add_middleware(LoggingMiddleware)

    # Routers
    app.include_router(health_router.router)
    app.include_router(whatsapp_router.router)
    app.include_router(files_router.router)

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        # Always log for debugging
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)

        # Only return detailed errors in development
        if settings.is_production:
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"}
            )
        else:
            return JSONResponse(
                status_code=500,
                content={"detail": str(exc), "type": type(exc).__name__}
            )

    return app


app = create_app()
