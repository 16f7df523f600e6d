"""FastAPI backend for the destination configuration service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from config import CATALOG_DIR, CORS_ORIGINS, LOG_LEVEL, RATE_LIMIT
from destinations import CatalogValidationError, DestinationError, load_catalog
from routes import (
    audit_router,
    destination_error_handler,
    destinations_router,
    request_validation_error_handler,
    specifications_router,
)
from routes.destinations import get_repository

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize resources on startup."""
    repository = get_repository()
    try:
        count = load_catalog(repository, CATALOG_DIR)
        logger.info(f"Destination catalog loaded: {count} version(s) from {CATALOG_DIR}")
    except CatalogValidationError as e:
        for error in e.errors:
            logger.error(f"Catalog error: {error}")
        raise

    yield


app = FastAPI(
    title="Destination Configuration Service",
    description="Destination configuration management with secret masking",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting configuration
# Applied to every endpoint through the middleware
limiter = Limiter(key_func=get_remote_address, default_limits=[RATE_LIMIT])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(DestinationError, destination_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

# Register API routers
app.include_router(destinations_router)
app.include_router(specifications_router)
app.include_router(audit_router)


@app.get("/health")
@limiter.exempt
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
