from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from tuition_ledger.api.v1.endpoints import fees, students, payments, monthly_fees
from tuition_ledger.core.config import settings
from tuition_ledger.db.supabase import initialize_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Starting SO Center Fee Engine API...")
    try:
        await initialize_database()
        logger.info("✓ Supabase connection established")
    except Exception as e:
        logger.error(f"✗ Supabase connection failed: {e}")

    yield

    # Shutdown
    logger.info("Shutting down SO Center Fee Engine API...")

# Initialize FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Enrollment fee calculation, monthly fee accrual and payment recording for SO Centers",
    version=settings.VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }

# Include API routers
app.include_router(fees.router, prefix=f"{settings.API_V1_PREFIX}/fees", tags=["Fees"])
app.include_router(students.router, prefix=f"{settings.API_V1_PREFIX}/students", tags=["Students"])
app.include_router(payments.router, prefix=f"{settings.API_V1_PREFIX}/payments", tags=["Payments"])
app.include_router(
    monthly_fees.router,
    prefix=f"{settings.API_V1_PREFIX}/admin/monthly-fees",
    tags=["Monthly Fees (Admin)"]
)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tuition_ledger.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development"
    )
