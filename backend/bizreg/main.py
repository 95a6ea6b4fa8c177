"""
bizreg FastAPI Application Entry Point
Main application setup with exception handlers and routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bizreg.api.v1.router import api_router
from bizreg.core.config import settings
from bizreg.core.database import close_db, init_db
from bizreg.core.exceptions import IngestionError
from bizreg.core.logging import setup_logging
from bizreg.services.business_entity_service import build_business_entity_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    # Startup
    setup_logging(settings.LOG_LEVEL, json_output=settings.LOG_JSON)
    init_db()
    app.state.business_service = build_business_entity_service(settings)
    yield
    # Shutdown
    app.state.business_service.close()
    close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="공정거래위원회 통신판매사업자 수집 서비스",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Include API routers
app.include_router(api_router, prefix="/api/v1")


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError):
    """Run-level ingestion errors (e.g. store unavailable)"""
    logger.error(f"[API] {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=503, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"[API] Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "서버 내부 오류가 발생했습니다."},
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
        "bizreg.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
