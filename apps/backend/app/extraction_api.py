"""
Job description extraction endpoints.

The extractor itself is built once at startup and lives on ``app.state``.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.rate_limit import limiter, RATE_LIMIT_ADMIN, RATE_LIMIT_EXTRACT
from pipeline.extractor import Extractor
from pipeline.models import ExtractionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/job-descriptions", tags=["job_descriptions"])

ALTERNATIVE_METHOD = "paste_text"


class ExtractRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Job posting URL")
    user_id: Optional[str] = Field(None, description="Caller identity, used for logging only")
    html: Optional[str] = Field(None, description="Pre-fetched page HTML")
    site_hint: Optional[str] = Field(None, description="Site profile id, e.g. 'greenhouse'")


def get_extractor(request: Request) -> Extractor:
    extractor = getattr(request.app.state, "extractor", None)
    if extractor is None:
        raise HTTPException(status_code=503, detail="Extraction pipeline not initialized")
    return extractor


@router.post("/extract")
@limiter.limit(RATE_LIMIT_EXTRACT)
async def extract_job_description(request: Request, body: ExtractRequest):
    """Extract job posting text from a URL."""
    extractor = get_extractor(request)

    parsed = urlparse(body.url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status_code=400, detail="Invalid URL format. URL must start with http:// or https://")

    try:
        result = await extractor.extract_job_posting(
            body.url,
            context_user_id=body.user_id,
            raw_html=body.html,
            site_hint=body.site_hint,
        )
    except ExtractionError as e:
        logger.info(f"[api] Extraction failed for {body.url}: {e.reason_code.value}")
        content = e.to_dict()
        content["status"] = "error"
        content["url"] = body.url
        content["alternative_method"] = ALTERNATIVE_METHOD
        return JSONResponse(status_code=400, content=content)

    return {
        "status": "ok",
        "data": result.to_dict(),
        "error": None,
    }


@router.post("/cache/clear")
@limiter.limit(RATE_LIMIT_ADMIN)
async def clear_cache(request: Request):
    """Drop every cached extraction."""
    extractor = get_extractor(request)
    removed = extractor.cache.clear()
    logger.info(f"[api] Cleared {removed} cached extractions")
    return {"status": "ok", "data": {"removed": removed}, "error": None}


@router.get("/cache/stats")
async def cache_stats(request: Request):
    extractor = get_extractor(request)
    return {"status": "ok", "data": extractor.cache.stats(), "error": None}
