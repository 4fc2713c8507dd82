"""FastAPI application factory."""

import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from huminex_payroll import __version__
from huminex_payroll.api.errors import install_exception_handlers
from huminex_payroll.api.routes import health_router, payroll_router
from huminex_payroll.config import Settings, get_settings
from huminex_payroll.database import create_schema, create_session_factory, get_engine
from huminex_payroll.events import AsyncEventEmitter, EmitterEventPublisher, log_event
from huminex_payroll.log import configure_logging
from huminex_payroll.services.documents import LocalDocumentStorage

logger = logging.getLogger(__name__)

TRACE_HEADER = "X-Trace-Id"
REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    if app.state.settings.create_schema_on_startup:
        await create_schema(app.state.engine)
        logger.info("Database schema ensured")
    yield
    # Shutdown
    await app.state.engine.dispose()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Huminex Payroll API",
        description="Tenant-scoped payroll runs and payslips",
        version=__version__,
        debug=settings.debug,
        lifespan=lifespan,
    )

    engine = get_engine(settings.database_url)
    emitter = AsyncEventEmitter()
    emitter.on_all(log_event)

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.documents = LocalDocumentStorage(settings.payroll_documents_dir)
    app.state.emitter = emitter
    app.state.publisher = EmitterEventPublisher(emitter)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[TRACE_HEADER],
    )

    @app.middleware("http")
    async def trace_requests(request: Request, call_next) -> Response:
        trace_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        request.state.trace_id = trace_id
        started = time.perf_counter()

        response = await call_next(request)

        response.headers[TRACE_HEADER] = trace_id
        logger.info(
            "%s %s -> %d in %.1fms (trace %s)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            trace_id,
        )
        return response

    install_exception_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_router, prefix="/api/v1")

    return app
