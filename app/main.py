"""
Resume Platform - Main Application

FastAPI backend with:
- MongoDB for accounts and resume versions
- OTP email verification over SMTP
- LLM (DeepSeek / OpenAI-compatible) for resume parsing
- JWT authentication

Run: uvicorn app.main:app --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.errors import CoreError
from app.core.logging_config import setup_logging, get_logger
from app.db.mongodb import init_mongo_indexes, test_mongo_connection

settings = get_settings()

setup_logging(settings.log_level)
logger = get_logger("main")

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="""
    Resume platform backend.

    ## Features
    - **Authentication**: registration with 6-digit email OTP, JWT login
    - **Resumes**: upload with AI parsing and analysis, full version history,
      exactly one active version per account
    - **Admin**: account management and platform statistics
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    debug=settings.debug,
)

# CORS middleware (allow all for development)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Every error leaves the API as {"success": false, "message": ...}
@app.exception_handler(CoreError)
async def core_error_handler(request: Request, exc: CoreError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


# Include API routes
app.include_router(api_router, prefix="/api")


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize MongoDB indexes on startup."""
    try:
        init_mongo_indexes()
    except Exception as e:
        logger.warning("MongoDB index initialization failed: %s", e)


@app.get("/", tags=["Health"])
async def root():
    return {"status": "healthy", "app": settings.app_name}


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "mongodb": "connected" if test_mongo_connection() else "disconnected",
    }
