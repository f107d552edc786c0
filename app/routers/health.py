"""
routers/health.py
Kubernetes / Docker / load balancer health probe.
"""

from fastapi import APIRouter
from app.models.response import HealthResponse
from app.core.config import settings

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        stt_model=settings.STT_MODEL,
        extraction_provider=settings.EXTRACTION_PROVIDER,
        extraction_model=settings.llm_model,
    )
