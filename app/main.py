import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.interview import interview_router
from app.core.config import settings
from app.core.exceptions import (
    AppError,
    app_exception_handler,
    global_exception_handler,
    http_exception_handler,
)
from app.core.logger import setup_logger
from app.services.tools.rate_limiter import SlidingWindowRateLimiter, default_policies

# Setup logger with fresh log file on startup
setup_logger(
    log_level=logging.DEBUG if settings.DEBUG_MODE else logging.INFO,
    clear_log=True,
    use_json=settings.LOG_JSON,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The limiter and HTTP client are owned by the app and live exactly as long as it
    app.state.rate_limiter = SlidingWindowRateLimiter()
    app.state.rate_limit_policies = default_policies()
    app.state.http_client = httpx.AsyncClient()
    logger.info("Application startup: Interview Analysis Service")
    try:
        yield
    finally:
        await app.state.http_client.aclose()
        logger.info("Application shutdown")


app = FastAPI(
    title="Interview Analysis",
    description="Transcript retrieval, AI scoring and result validation for mock interviews.",
    version="1.0.0",
    lifespan=lifespan
)

app.add_exception_handler(AppError, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for simplicity in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(interview_router, prefix="/api/v1", tags=["interview"])


@app.get("/health")
async def health():
    return {"status": "ok"}
