"""
tests/conftest.py
Shared fakes for the STT and extraction collaborators.
"""

import io
from datetime import date
from pathlib import Path

import pytest
from starlette.datastructures import Headers, UploadFile

from app.core.exceptions import ExtractionMalformed
from app.models.intent import ExtractionEnvelope, IntentRecord, TranscriptionResult
from app.services.audio_store import AudioStore
from app.services.pipeline import IntentPipeline

TODAY = date(2026, 2, 3)
TOMORROW = "2026-02-04"


class FakeTranscriber:
    def __init__(self, text: str = "kal ki meeting postpone kar do", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[Path] = []
        self.seen_existing: list[bool] = []

    async def transcribe(self, audio_path: Path) -> TranscriptionResult:
        self.calls.append(Path(audio_path))
        self.seen_existing.append(Path(audio_path).exists())
        if self.error:
            raise self.error
        return TranscriptionResult(text=self.text, model="fake-whisper")


class FakeExtractor:
    """Echoes a canned envelope; can be primed to fail."""

    def __init__(self, envelope: ExtractionEnvelope | None = None, error: Exception | None = None):
        self.envelope = envelope or ExtractionEnvelope(
            normalized_text="Kal ki meeting postpone kar do",
            intent=IntentRecord(
                action="postpone meeting",
                date=TOMORROW,
                time=None,
                summary="Postponing tomorrow's meeting.",
            ),
        )
        self.error = error
        self.calls: list[tuple[str, date]] = []

    async def extract(self, transcript: str, today: date) -> ExtractionEnvelope:
        self.calls.append((transcript, today))
        if self.error:
            raise self.error
        return self.envelope


def make_upload(data: bytes = b"RIFF....WAVEfmt ", filename: str = "clip.wav",
                content_type: str = "audio/wav") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def store(tmp_path) -> AudioStore:
    return AudioStore(tmp_path / "uploads")


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def pipeline(transcriber, extractor, store) -> IntentPipeline:
    return IntentPipeline(transcriber, extractor, store, today=lambda: TODAY)


@pytest.fixture
def malformed_extractor() -> FakeExtractor:
    return FakeExtractor(error=ExtractionMalformed("Extraction output is not the expected JSON"))
