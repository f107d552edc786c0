"""
services/pipeline.py

The /api/trial request pipeline.

  RECEIVED → TRANSCRIBING → EXTRACTING → ASSEMBLING → DONE
       └──────────────┴─────────────┴──────────────┴──→ FAILED

The staged audio file lives inside `AudioStore.hold()`, so it is deleted
on the transition into DONE or FAILED, whichever comes first.
Collaborators are injected; nothing here is a module-level singleton.
"""

import time
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from fastapi import UploadFile

from app.core.config import Settings
from app.core.exceptions import PipelineError
from app.core.logger import get_logger
from app.models.intent import ExtractionEnvelope, TranscriptionResult
from app.models.response import TrialResponse
from app.services.audio_store import AudioStore
from app.services.llm_service import build_extractor
from app.services.stt_service import WhisperTranscriber

logger = get_logger(__name__)


class RequestState(str, Enum):
    RECEIVED = "received"
    TRANSCRIBING = "transcribing"
    EXTRACTING = "extracting"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


class Transcriber(Protocol):
    async def transcribe(self, audio_path) -> TranscriptionResult: ...


class Extractor(Protocol):
    async def extract(self, transcript: str, today: date) -> ExtractionEnvelope: ...


def today_in(tz_name: str) -> Callable[[], date]:
    tz = ZoneInfo(tz_name)
    return lambda: datetime.now(tz).date()


def assemble_response(
    started_at: float,
    transcript: TranscriptionResult,
    envelope: ExtractionEnvelope,
    now: Optional[float] = None,
) -> TrialResponse:
    """Combine stage outputs into the outbound payload. No I/O."""
    finished_at = time.perf_counter() if now is None else now
    return TrialResponse(
        latency_ms=max(0, int((finished_at - started_at) * 1000)),
        transcription=envelope.normalized_text,
        original_transcription=transcript.text,
        intent=envelope.intent,
    )


class IntentPipeline:
    def __init__(
        self,
        transcriber: Transcriber,
        extractor: Extractor,
        store: AudioStore,
        today: Callable[[], date] = date.today,
    ):
        self.transcriber = transcriber
        self.extractor = extractor
        self.store = store
        self.today = today

    async def run(self, upload: Optional[UploadFile]) -> TrialResponse:
        started_at = time.perf_counter()
        request_id = uuid.uuid4().hex[:12]
        state = RequestState.RECEIVED

        def enter(new_state: RequestState) -> None:
            nonlocal state
            state = new_state
            logger.debug(f"→ {state.value}", extra={"request_id": request_id, "state": state.value})

        try:
            async with self.store.hold(upload, request_id) as audio:
                logger.info(
                    f"Received {audio.filename!r} ({audio.size} bytes, {audio.content_type})",
                    extra={"request_id": request_id, "state": state.value},
                )

                enter(RequestState.TRANSCRIBING)
                transcript = await self.transcriber.transcribe(audio.path)

                enter(RequestState.EXTRACTING)
                envelope = await self.extractor.extract(transcript.text, self.today())

                enter(RequestState.ASSEMBLING)
                response = assemble_response(started_at, transcript, envelope)
        except PipelineError as e:
            logger.warning(
                f"{e.category} during {state.value}: {e.details}",
                extra={"request_id": request_id, "state": RequestState.FAILED.value},
            )
            raise
        except Exception as e:
            logger.error(
                f"Unexpected {type(e).__name__} during {state.value}: {e}",
                exc_info=True,
                extra={"request_id": request_id, "state": RequestState.FAILED.value},
            )
            raise

        enter(RequestState.DONE)
        logger.info(
            f"action={response.intent.action!r} date={response.intent.date} "
            f"time={response.intent.time} actionable={response.intent.is_actionable} "
            f"| {response.latency_ms}ms",
            extra={"request_id": request_id, "state": state.value},
        )
        return response


def build_pipeline(settings: Settings) -> IntentPipeline:
    store = AudioStore(settings.UPLOAD_DIR)
    store.ensure_directory()
    return IntentPipeline(
        transcriber=WhisperTranscriber.from_settings(settings),
        extractor=build_extractor(settings),
        store=store,
        today=today_in(settings.APP_TIMEZONE),
    )
