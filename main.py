import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from app.core.config import settings
from app.core.database import engine
from app.core.exceptions import BaseAppException
from app.core.logging_config import setup_logging
from app.db.immutability import register_immutability_listeners
from app.middleware.logging import LoggingMiddleware
from app.api.v1.api import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    register_immutability_listeners()
    logger.info(f"🚀 Inventory Ledger Service starting ({settings.ENVIRONMENT})")
    yield
    await engine.dispose()
    logger.info("🛑 Inventory Ledger Service stopped")


# Create FastAPI app
app_config = {
    "title": "Inventory Ledger Service",
    "description": "Stock records, an append-only movement ledger and order allocation",
    "version": "1.0.0",
    "docs_url": "/api/docs",
    "lifespan": lifespan,
}

app = FastAPI(**app_config)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=settings.ALLOWED_METHODS,
    allow_headers=settings.ALLOWED_HEADERS
)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    if exc.status_code >= 500:
        logger.error(f"❌ {request.method} {request.url.path}: {exc.error_code} {exc.detail} {exc.context}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({**exc.context, "detail": exc.detail, "error": exc.error_code}),
    )


# Include routers
app.include_router(api_router, prefix="/api/v1")

@app.get("/")
async def root():
    return {
        "message": "📦 Inventory Ledger Service",
        "status": "active",
        "version": "1.0.0",
        "docs": "/api/docs"
    }

@app.get("/health")
async def health_check():
    database = "connected"
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Health check database failure: {e}")
        database = "unavailable"

    return JSONResponse(
        status_code=200 if database == "connected" else 503,
        content={
            "status": "healthy" if database == "connected" else "degraded",
            "components": {"database": database},
        },
    )


def run_http():
    """Run HTTP server on port 9106"""
    import uvicorn
    print("🚀 Starting HTTP server on port 9106...")
    uvicorn.run(
        "main:app",  # Use string import
        host="0.0.0.0",
        port=9106,
        reload=False
    )


if __name__ == "__main__":
    run_http()
