"""
LetterDesk - FastAPI Application

Main entry point for the LetterDesk backend.

Lifecycle:
- requested → generating → reviewing → completed → downloaded
- Drafting runs on a background worker pool; the credit is charged only
  once content exists, in the same transaction that moves the letter
  to reviewing.
"""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, load_settings
from .errors import LetterDeskError
from .routers import (
    admin_router, auth_router, employee_router, letters_router,
    payments_router, scheduler_router, subscriptions_router,
)
from .services.accounts import AccountStore
from .services.container import AppServices, build_services
from .services.lifecycle import LetterLifecycleEngine

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def startup(services: AppServices) -> None:
    """Create tables, seed the plan catalog and reset stalled generations."""
    services.database.create_all()
    db = services.database.session()
    try:
        AccountStore(db).seed_default_plans()
        db.commit()
        reset = LetterLifecycleEngine(db).reap_stalled(
            timedelta(minutes=services.settings.generation_stall_minutes)
        )
        if reset:
            logger.warning(f"Reset {reset} stalled generations on startup")
    finally:
        db.close()


async def handle_domain_error(request: Request, exc: LetterDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(settings: Optional[Settings] = None, services: Optional[AppServices] = None) -> FastAPI:
    """
    Build the application. Settings are read from the environment unless
    given; tests pass prebuilt services with fake collaborators.
    """
    if services is None:
        settings = settings or load_settings()
        services = build_services(settings)
    else:
        settings = services.settings
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup(services)
        yield
        services.close()

    app = FastAPI(
        lifespan=lifespan,
        title="LetterDesk",
        description="""
    LetterDesk - Legal Letter Service

    Customers buy letter credits, request letters, and download the PDF
    once an attorney has reviewed the AI draft.

    ## Lifecycle
    1. **Requested**: letter stored, drafting scheduled
    2. **Generating**: AI drafting in flight
    3. **Reviewing**: draft stored, one credit charged
    4. **Completed**: attorney approved, PDF rendered
    5. **Downloaded**: fetched by the owner
    """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(LetterDeskError, handle_domain_error)

    # Include routers
    app.include_router(auth_router)
    app.include_router(subscriptions_router)
    app.include_router(payments_router)
    app.include_router(letters_router)
    app.include_router(admin_router)
    app.include_router(employee_router)
    app.include_router(scheduler_router)

    @app.get("/")
    async def root():
        """Root endpoint - API information."""
        return {
            "name": "LetterDesk",
            "version": __version__,
            "description": "Legal Letter Service",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "generation": services.settings.generation_enabled,
            "payments": services.settings.payments_enabled,
        }

    return app


# For running with: uvicorn letterdesk.main:create_app --factory
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8001)
