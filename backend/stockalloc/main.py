"""
Stock Allocation FastAPI Main Application
Entry point for the stock allocation REST API
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from stockalloc.core.config import settings
from stockalloc.core.database import check_db_connection, init_db
from stockalloc.core.logging import get_logger
from stockalloc.api.v1.api_router import api_router

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown tasks

    Creates the document table on startup
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    init_db()
    logger.info("Application startup completed successfully")
    yield
    logger.info("Shutting down application")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Stock Allocation & Reconciliation API

    Allocates goods received against proforma invoice line items to
    purchase orders, project codes and warehouse stock.

    ### Operations:
    - **Targets**: open purchase orders, projects and warehouses for a product
    - **Suggestions**: priority based split of a received quantity
    - **Allocate**: validated allocation with stock counter updates
    - **Reset**: exact reversal of one item's allocations
    - **Analytics**: totals over active allocations
    """,
    docs_url=settings.DOCS_URL,
    openapi_url=settings.OPENAPI_URL,
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get("/health", tags=["System"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers

    Returns system status and database connectivity
    """
    try:
        db_status = check_db_connection()

        return {
            "status": "healthy" if db_status else "degraded",
            "version": settings.APP_VERSION,
            "database": "connected" if db_status else "disconnected",
            "debug": settings.DEBUG
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise HTTPException(status_code=503, detail="Service unavailable")


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Global exception handler for unhandled errors
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
            "type": "server_error"
        }
    )


# Include API routers
app.include_router(api_router, prefix=settings.API_V1_STR)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "stockalloc.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
