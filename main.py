"""
PouchShop - storefront backend
Kustom checkout bridge, admin order management and the admin-data proxy
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
import uvicorn
from contextlib import asynccontextmanager
import logging
from datetime import datetime

from pouchshop.config import get_settings
from pouchshop.database import engine, Base
from pouchshop.models import activity_log, catalog, order, user  # noqa: F401 (table registration)
from pouchshop.rate_limit import limiter
from pouchshop.routers import admin_data, admin_orders, auth, checkout
from pouchshop.utils.error_handler import ErrorContext, ErrorHandler, ServiceError, envelope_error

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    logger.info("Starting PouchShop API...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")
    if not settings.kustom_configured:
        logger.warning("Kustom credentials are not configured; checkout calls will fail")

    yield

    logger.info("Shutting down PouchShop API...")

app = FastAPI(
    title="PouchShop API",
    description="Checkout bridge and back-office API for the PouchShop storefront",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Add rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# The storefront calls the functions from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(checkout.router, prefix="/functions/v1", tags=["checkout"])
app.include_router(admin_data.router, prefix="/functions/v1", tags=["admin-data"])
app.include_router(admin_orders.router, prefix="/api/v1/admin/orders", tags=["admin-orders"])
app.include_router(auth.router, prefix="/api/v1/auth", tags=["authentication"])

@app.get("/")
@limiter.limit("10/minute")
async def root(request: Request):
    """Root endpoint with API information - publicly accessible"""
    return {
        "message": "PouchShop API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
        "timestamp": datetime.utcnow().isoformat()
    }

@app.get("/health")
@limiter.limit("30/minute")
async def health_check(request: Request):
    """Health check endpoint"""
    return {
        "status": "healthy",
        "kustom_configured": settings.kustom_configured,
        "timestamp": datetime.utcnow().isoformat()
    }

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Domain errors that escaped a router keep their status code"""
    ctx = ErrorContext(request)
    logger.warning(f"{type(exc).__name__} in {ctx.method} {ctx.endpoint}: {exc.message}", extra={"request_id": ctx.request_id})
    return envelope_error(exc.message, exc.status_code, ctx.request_id)

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Unhandled errors become a 500 carrying an id for log correlation"""
    return ErrorHandler.create_error_response(ErrorContext(request), exc)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
