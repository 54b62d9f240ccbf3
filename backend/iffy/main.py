from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import time
from .config import settings
from .db import engine
from .models import Base
from .routes import gift
from .schemas import HealthResponse
from .logger import logger
from .exceptions import (
    IffyBaseException,
    iffy_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Iffy API", extra={"profile": settings.DEPLOYMENT_PROFILE})
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise
    yield
    logger.info("Shutting down Iffy API")
    await engine.dispose()

app = FastAPI(
    title="Iffy API",
    version="1.0.0",
    description="Photo-based gift recommendations with cartoon portraits",
    lifespan=lifespan,
)

app.add_exception_handler(IffyBaseException, iffy_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(gift.router)

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return HealthResponse(status="ok", service="iffy-backend")
