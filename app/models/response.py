"""
models/response.py
All outgoing response schemas.
The upload UI reads these and renders them.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field

from app.models.intent import IntentRecord


class TrialResponse(BaseModel):
    status: Literal["success"] = "success"
    latency_ms: int = Field(..., ge=0)
    transcription: str              # normalized Latin-script Hinglish
    original_transcription: str     # raw STT output, kept for diagnostics
    intent: IntentRecord


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    stt_model: str
    extraction_provider: str
    extraction_model: str
