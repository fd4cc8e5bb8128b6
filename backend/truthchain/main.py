"""
TruthChain FastAPI Application Entry Point
Main application setup with middleware and routers
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from truthchain.core.config import settings
from truthchain.core.database import init_db, close_db
from truthchain.core.exceptions import SubmissionValidationError, TruthChainError
from truthchain.api.v1.router import api_router
from truthchain.services.content_store import resolve_backend

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    await init_db()
    logger.info(
        f"[App] {settings.APP_NAME} started "
        f"(verification={settings.VERIFICATION_MODE}, storage={resolve_backend(settings)})"
    )
    yield
    # Shutdown
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Text + media verification anchored on IPFS and an EVM smart contract",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

# CORS Middleware
cors_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# GZip Middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)


@app.exception_handler(TruthChainError)
async def truthchain_error_handler(request: Request, exc: TruthChainError):
    """Structured {kind, message, ...} body for every protocol failure"""
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and parameters share the ValidationError body"""
    details = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ()) if part != "body")
        details.append(f"{location}: {item.get('msg')}" if location else str(item.get("msg")))

    error = SubmissionValidationError("Invalid request: " + "; ".join(details))
    return JSONResponse(status_code=error.http_status, content=error.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"[App] Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"kind": "InternalError", "message": "Unexpected server error", "retryable": False},
    )


# Include API routers
app.include_router(api_router, prefix="/api/v1")

# Locally stored files (local content store fallback)
if resolve_backend(settings) == "local":
    app.mount(
        "/uploads",
        StaticFiles(directory=Path(settings.LOCAL_UPLOAD_DIR), check_dir=False),
        name="uploads",
    )


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok",
        "environment": settings.ENVIRONMENT,
    }


@app.get("/health")
async def health_check():
    """Health check for monitoring"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "truthchain.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
