from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv
import logging

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .database import create_db_and_tables
from .dependencies import scheduler_service_scope
from .exceptions import http_exception_handler
from .infrastructure.scheduler.apscheduler_runner import AppointmentSweepScheduler
from .middleware import ErrorHandlingMiddleware, LoggingMiddleware, SecurityMiddleware
from .routers import appointments_router, emergency_router, health_router, payments_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    create_db_and_tables()
    logger.info("Database initialized successfully")

    app.state.sweeper = None
    if settings.SCHEDULER_ENABLED:
        app.state.sweeper = AppointmentSweepScheduler(scheduler_service_scope, settings)
        app.state.sweeper.start()
    else:
        logger.info("Appointment scheduler disabled")
    yield
    # Shutdown
    if app.state.sweeper:
        app.state.sweeper.stop()
    logger.info(f"Shutting down {settings.APP_NAME}...")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    docs_url=("/docs" if settings.DOCS_ENABLED else None),
    redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
    openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
)

app.add_exception_handler(HTTPException, http_exception_handler)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(SecurityMiddleware)

app.add_middleware(GZipMiddleware, minimum_size=settings.GZIP_MIN_SIZE)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.allowed_methods_list,
    allow_headers=settings.allowed_headers_list,
)

app.include_router(health_router.router)
app.include_router(appointments_router.router)
app.include_router(emergency_router.router)
app.include_router(payments_router.router)


def run():
    import uvicorn
    uvicorn.run(
        "consult_scheduler.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,  # sweeps run in-process, one scheduler per deployment
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    run()
