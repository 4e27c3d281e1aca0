from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from eventhub.api.middleware import RequestTimingMiddleware
from eventhub.api.v1.router import v1_router
from eventhub.common.exceptions import EventHubException, ExternalServiceError
from eventhub.common.logging import get_logger, setup_logging
from eventhub.config import settings

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("EventHub API starting (env=%s)", settings.APP_ENV)
    yield


app = FastAPI(
    title="EventHub API",
    description="Event vendor matching and booking",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestTimingMiddleware)


# --- Error handlers ---


@app.exception_handler(EventHubException)
async def eventhub_exception_handler(request: Request, exc: EventHubException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    err = ExternalServiceError(
        "database", "storage is temporarily unavailable", status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(status_code=err.status_code, content={"detail": err.detail, "code": err.code})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "internal"},
    )


# API routes
app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "service": "eventhub",
        "version": "1.0.0",
        "env": settings.APP_ENV,
    }
