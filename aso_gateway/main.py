"""
FastAPI application entry point for the ASO data gateway.

Configures logging, the database pool lifecycle, CORS, routers and the
exception handlers that render every failure as
{ success: false, error, timestamp }.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from aso_gateway import __version__
from aso_gateway.api.aso_data import error_response, router as aso_data_router
from aso_gateway.core.database import init_db, close_db
from aso_gateway.core.errors import GatewayError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    On startup, initialize the database pool; on shutdown, close it.

    Startup continues if the database is unreachable; requests that need the
    stores will retry the lazy initialization.
    """
    logger.info("ASO data gateway starting")
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    yield

    logger.info("ASO data gateway shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="ASO Data Gateway",
    version=__version__,
    description=(
        "Analytics data gateway for the ASO dashboard. Authenticates to the "
        "metrics warehouse with a service account, gates requests per "
        "organization, and normalizes traffic source vocabulary."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(aso_data_router, prefix="/aso-data", tags=["aso-data"])


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(GatewayError)
async def gateway_error_handler(request: Request, exc: GatewayError):
    # Raised outside the route body, e.g. while assembling dependencies
    logger.warning(f"{request.method} {request.url.path} failed ({exc.status_code}): {exc.message}")
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
        for error in exc.errors()
    )
    return error_response(400, f"Invalid request: {details}")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # Unreachable database or missing settings while resolving dependencies
    logger.error(f"{request.method} {request.url.path} failed: {str(exc)}", exc_info=True)
    return error_response(500, str(exc) or "Internal server error")


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancer probes."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "ASO Data Gateway",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "aso_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
