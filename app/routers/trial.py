"""
routers/trial.py

POST /api/trial — audio clip in, intent JSON out.
Orchestration flow:
  1. Check API key (if enabled)
  2. Stage the `audio` upload (400 if missing)
  3. Speech-to-text
  4. Intent extraction
  5. Return TrialResponse JSON
Temp audio is removed on every path; errors are rendered by the
PipelineError handler in main.py.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.security.api_key import APIKeyHeader

from app.core.config import settings
from app.models.response import ErrorResponse, TrialResponse
from app.services.pipeline import IntentPipeline

router = APIRouter(prefix="/api", tags=["trial"])

# ── Optional API key auth ──────────────────────────────────────────────────
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Depends(api_key_header)):
    if settings.REQUIRE_API_KEY:
        if not api_key or api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return api_key


def get_pipeline(request: Request) -> IntentPipeline:
    """Pipeline built once in the app lifespan."""
    return request.app.state.pipeline


# ── Main endpoint ──────────────────────────────────────────────────────────

@router.post(
    "/trial",
    response_model=TrialResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def trial(
    audio: Optional[UploadFile] = File(None, description="Recorded or uploaded audio clip"),
    pipeline: IntentPipeline = Depends(get_pipeline),
    _: Optional[str] = Depends(verify_api_key),
):
    """
    Transcribe a short Hinglish clip and extract a CRM intent.
    The browser recorder sends the clip as multipart field `audio`.
    """
    return await pipeline.run(audio)
