from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from database import database
from greenlease import __product__, __version__
from greenlease.routes import contracts_router, signature_router, wizard_router

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {__product__} API")
    if os.getenv("PYTEST_RUNNING"):
        logger.info("PYTEST_RUNNING set - skipping MongoDB connection")
    else:
        await database.connect()

    if not os.getenv("PDFSHIFT_API_KEY"):
        logger.warning("PDFSHIFT_API_KEY is not set. Contract PDF download and distribution will fail.")

    yield

    # Shutdown
    logger.info(f"Shutting down {__product__} API")
    await database.close()

# Create FastAPI app
app = FastAPI(
    title=f"{__product__} API",
    description="Lease contract generation and multi-party digital signatures",
    version=__version__,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(contracts_router)
app.include_router(signature_router)
app.include_router(wizard_router)

# Root endpoint
@app.get("/api")
async def root():
    return {
        "service": __product__,
        "version": __version__,
        "status": "operational"
    }

# Health check
@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "environment": os.getenv("ENVIRONMENT", "development")
    }

# Validation error handler: log request_id + error locations for signing/invite debugging
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    request_id = str(uuid.uuid4())
    errors = exc.errors()
    path = getattr(request, "url", None) and getattr(request.url, "path", "") or ""
    if path.startswith("/api/signature"):
        logger.warning(
            "Signature request validation failed request_id=%s path=%s errors=%s",
            request_id,
            path,
            [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
        )
    return JSONResponse(
        status_code=422,
        content={"detail": [{k: v for k, v in e.items() if k != "ctx"} for e in errors], "request_id": request_id},
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=os.getenv("ENVIRONMENT") == "development"
    )
