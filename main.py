from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime
import logging
import uvicorn

from core.config import settings
from core.logging import setup_logging
from core.exceptions import register_exception_handlers
from database import init_db
from routers import auth, users, providers, students

setup_logging()
logger = logging.getLogger(__name__)

# =================== INITIALIZATION ===================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup"""
    await init_db()
    logger.info(f"{settings.APP_NAME} API v{settings.APP_VERSION} is ready")
    yield
    logger.info(f"{settings.APP_NAME} API shutting down")

# Create FastAPI app
app = FastAPI(
    title=f"{settings.APP_NAME} - Meal Subscription Marketplace",
    description="Students subscribe to meal plans from local food providers",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# =================== ROUTES ===================

app.include_router(auth.router, prefix="/api/auth")
app.include_router(users.router, prefix="/api/user")
app.include_router(providers.router, prefix="/api/providers")
app.include_router(students.router, prefix="/api/students")

@app.get("/api/health")
async def health_check():
    """Health check endpoint"""
    return {
        "success": True,
        "status": "healthy",
        "service": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "timestamp": datetime.now().isoformat()
    }

# =================== MAIN ENTRY POINT ===================

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
