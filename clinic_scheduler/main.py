from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from datetime import datetime, timezone
from typing import Optional
import logging

# Load environment variables as early as possible
load_dotenv()

from .core.config import Settings, settings
from .application.ports.appointment_store import AppointmentStore
from .application.services.scheduling_service import SchedulingService
from .exceptions import SchedulingError, StoreError, http_exception_handler, scheduling_exception_handler
from .infrastructure.audit.std_logger import StdSchedulingEventLogger
from .infrastructure.store.http_store import HttpAppointmentStore
from .middleware import LoggingMiddleware, ErrorHandlingMiddleware
from .routers import scheduling_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def build_scheduling_service(config: Settings, store: Optional[AppointmentStore] = None) -> SchedulingService:
    if store is None:
        store = HttpAppointmentStore(
            base_url=config.STORE_BASE_URL,
            token=config.STORE_API_TOKEN,
            timeout=config.STORE_TIMEOUT_SECONDS,
        )
    return SchedulingService(
        store=store,
        events=StdSchedulingEventLogger(),
        working_hours=config.working_hours(),
        default_type=config.DEFAULT_APPOINTMENT_TYPE,
        store_datetime_format=config.STORE_DATETIME_FORMAT,
    )


def create_app(store: Optional[AppointmentStore] = None, config: Settings = settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        logger.info(f"Starting {config.APP_NAME}...")
        service = build_scheduling_service(config, store)
        app.state.scheduling_service = service
        app.state.store_ok = True
        app.state.store_error = None
        try:
            await service.refresh()
        except StoreError as e:
            # Do not crash the app; report via health endpoint
            app.state.store_ok = False
            app.state.store_error = str(e)
            logger.exception("Initial appointment load failed")
        yield
        # Shutdown
        logger.info(f"Shutting down {config.APP_NAME}...")

    app = FastAPI(
        title=config.APP_NAME,
        version=config.APP_VERSION,
        debug=config.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if config.DOCS_ENABLED else None),
        redoc_url=("/redoc" if config.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if config.DOCS_ENABLED else None)
    )

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(SchedulingError, scheduling_exception_handler)

    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(scheduling_router.router)

    @app.get("/health")
    def health_check():
        service = getattr(app.state, "scheduling_service", None)
        return {
            "status": "healthy" if getattr(app.state, "store_ok", True) else "degraded",
            "service": config.APP_NAME,
            "version": config.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "store": {
                "ok": getattr(app.state, "store_ok", True),
                "error": getattr(app.state, "store_error", None),
                "base_url": config.STORE_BASE_URL,
            },
            "appointments_loaded": len(service.collection) if service else 0,
        }

    return app


app = create_app()
