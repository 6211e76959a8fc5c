from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from contextlib import asynccontextmanager
import os
import logging
import traceback

from app.config import Capabilities, get_env_presence
from app.extraction_api import router as extraction_router
from app.rate_limit import limiter
from slowapi.errors import RateLimitExceeded
from slowapi import _rate_limit_exceeded_handler
from core.pipeline_config import PipelineConfig
from pipeline import __version__ as pipeline_version
from pipeline.extractor import Extractor

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application lifecycle events."""
    careerai_env = os.getenv("CAREERAI_ENV", "production").lower()
    if careerai_env == "dev":
        logger.info("[careerai] env: CAREERAI_ENV=dev (detailed errors enabled)")
    else:
        logger.info(f"[careerai] env: CAREERAI_ENV={careerai_env}")

    # Tests may install their own extractor before startup
    if getattr(app.state, "extractor", None) is None:
        app.state.extractor = Extractor(PipelineConfig.from_env())

    yield

    removed = app.state.extractor.cache.clear()
    logger.info(f"[careerai] Shutdown, dropped {removed} cached extractions")


app = FastAPI(title="CareerAI Extraction API", version=pipeline_version, lifespan=lifespan)

# Add rate limiter state
app.state.limiter = limiter

# Rate limit exceeded handler
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# Error masking middleware
@app.middleware("http")
async def error_masking_middleware(request: Request, call_next):
    """Mask detailed errors in production; show full errors in dev."""
    try:
        response = await call_next(request)
        return response
    except HTTPException:
        raise
    except Exception as e:
        is_dev = os.getenv("CAREERAI_ENV", "").lower() == "dev"

        logger.error(f"Unhandled error: {str(e)}")
        if is_dev:
            logger.error(traceback.format_exc())

        if is_dev:
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "error": str(e),
                    "traceback": traceback.format_exc()
                }
            )
        else:
            return JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "error": "An internal error occurred. Please try again later."
                }
            )


app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CAREERAI_CORS_ORIGINS", "http://localhost:3000,http://localhost:5000").split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(extraction_router)


def _capabilities(request: Request) -> Capabilities:
    # Report the running extractor's settings; before startup, those it would be built with
    extractor = getattr(request.app.state, "extractor", None)
    return Capabilities(extractor.config if extractor is not None else None)


@app.get("/api/healthz")
async def healthz(request: Request):
    return _capabilities(request).get_status()


@app.get("/api/capabilities")
async def capabilities(request: Request):
    return _capabilities(request).get_capabilities()


@app.get("/admin/config/env")
async def env_presence():
    """Which configuration variables are set (never their values). Dev only."""
    if os.getenv("CAREERAI_ENV", "").lower() != "dev":
        raise HTTPException(status_code=404, detail="Not found")
    return get_env_presence()
