from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging

from bitlend.core.config import settings
from bitlend.core.database import Base, async_engine
from bitlend.core.exceptions import LendingError, ValidationError
from bitlend.core.locks import build_lock_manager
from bitlend.modules.valuation.services import build_valuation
from bitlend.store.providers import MemoryStoreProvider, build_store_provider
from bitlend.store.seed import seed_demo_data
from bitlend.modules.users.router import router as users_router
from bitlend.modules.loans.router import router as loans_router
from bitlend.modules.transactions.router import router as transactions_router
from bitlend.modules.stats.router import router as stats_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    # Startup
    if settings.STORAGE_BACKEND == "sql":
        async with async_engine.begin() as conn:
            # Create all tables
            await conn.run_sync(Base.metadata.create_all)

    provider = app.state.store_provider
    if settings.SEED_DEMO_DATA and isinstance(provider, MemoryStoreProvider):
        await seed_demo_data(provider.store)

    logger.info(f"{settings.APP_NAME} started with {settings.STORAGE_BACKEND} storage")

    yield

    # Shutdown
    await app.state.locks.close()
    await async_engine.dispose()


app = FastAPI(
    title=f"{settings.APP_NAME} API",
    description="Peer-to-peer crypto lending marketplace",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Shared per-process state
app.state.store_provider = build_store_provider(settings)
app.state.locks = build_lock_manager(settings)
app.state.valuation = build_valuation(settings)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def lending_error_response(exc: LendingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(LendingError)
async def lending_error_handler(request: Request, exc: LendingError):
    """Render engine failures as {"kind", "message"}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return lending_error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Render malformed request bodies in the same {"kind", "message"} shape"""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part != "body")
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return lending_error_response(ValidationError("; ".join(problems)))


# Include routers
app.include_router(users_router)
app.include_router(loans_router)
app.include_router(transactions_router)
app.include_router(stats_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "ok",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs"
    }
