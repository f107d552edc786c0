"""
tests/test_pipeline.py
pytest tests for the intake → STT → extraction → assembly pipeline.
Run: pytest tests/ -v
"""

import asyncio
import re

import pytest

from app.core.exceptions import (
    ExtractionFailed,
    ExtractionMalformed,
    NoAudioSupplied,
    TranscriptionFailed,
)
from app.models.intent import ExtractionEnvelope, IntentRecord, TranscriptionResult
from app.services.audio_store import AudioStore
from app.services.pipeline import IntentPipeline, assemble_response

from conftest import TODAY, TOMORROW, FakeExtractor, FakeTranscriber, make_upload


def _leftover_files(store):
    return list(store.directory.glob("*")) if store.directory.exists() else []


@pytest.mark.asyncio
async def test_successful_run_returns_full_outcome(pipeline, transcriber, extractor, store):
    result = await pipeline.run(make_upload())

    assert result.status == "success"
    assert result.latency_ms >= 0
    assert result.original_transcription == "kal ki meeting postpone kar do"
    assert result.transcription == "Kal ki meeting postpone kar do"
    assert result.intent.action == "postpone meeting"
    assert result.intent.date == TOMORROW
    assert result.intent.time is None

    # extraction sees the raw transcript and the injected date
    assert extractor.calls == [("kal ki meeting postpone kar do", TODAY)]
    # STT got a real file, which is gone afterwards
    assert transcriber.seen_existing == [True]
    assert not transcriber.calls[0].exists()
    assert _leftover_files(store) == []


@pytest.mark.asyncio
async def test_intent_serializes_all_four_fields(pipeline):
    result = await pipeline.run(make_upload())
    intent = result.model_dump(by_alias=True)["intent"]

    assert set(intent) == {"action", "date", "time", "get_summary"}
    assert intent["get_summary"] == "Postponing tomorrow's meeting."
    assert intent["date"] is None or re.match(r"^\d{4}-\d{2}-\d{2}$", intent["date"])
    assert intent["time"] is None or re.match(r"^\d{2}:\d{2}$", intent["time"])


@pytest.mark.asyncio
async def test_missing_audio_fails_before_any_provider_call(pipeline, transcriber, extractor):
    with pytest.raises(NoAudioSupplied) as exc_info:
        await pipeline.run(None)

    assert exc_info.value.status_code == 400
    assert transcriber.calls == []
    assert extractor.calls == []


@pytest.mark.asyncio
async def test_empty_audio_counts_as_missing(pipeline, transcriber, store):
    with pytest.raises(NoAudioSupplied):
        await pipeline.run(make_upload(data=b""))

    assert transcriber.calls == []
    assert _leftover_files(store) == []


@pytest.mark.asyncio
async def test_malformed_extraction_still_cleans_up(transcriber, malformed_extractor, store):
    pipeline = IntentPipeline(transcriber, malformed_extractor, store, today=lambda: TODAY)

    with pytest.raises(ExtractionMalformed):
        await pipeline.run(make_upload())

    assert len(transcriber.calls) == 1
    assert not transcriber.calls[0].exists()
    assert _leftover_files(store) == []


@pytest.mark.asyncio
async def test_transcription_failure_skips_extraction_and_cleans_up(extractor, store):
    transcriber = FakeTranscriber(error=TranscriptionFailed("STT provider returned 503", upstream_status=503))
    pipeline = IntentPipeline(transcriber, extractor, store, today=lambda: TODAY)

    with pytest.raises(TranscriptionFailed) as exc_info:
        await pipeline.run(make_upload())

    assert exc_info.value.upstream_status == 503
    assert extractor.calls == []
    assert _leftover_files(store) == []


@pytest.mark.asyncio
async def test_extraction_failure_cleans_up(transcriber, store):
    extractor = FakeExtractor(error=ExtractionFailed("gemini unreachable"))
    pipeline = IntentPipeline(transcriber, extractor, store, today=lambda: TODAY)

    with pytest.raises(ExtractionFailed):
        await pipeline.run(make_upload())

    assert _leftover_files(store) == []


@pytest.mark.asyncio
async def test_unexpected_error_still_cleans_up(extractor, store, caplog):
    transcriber = FakeTranscriber(error=RuntimeError("bug"))
    pipeline = IntentPipeline(transcriber, extractor, store, today=lambda: TODAY)

    with pytest.raises(RuntimeError):
        await pipeline.run(make_upload())

    assert _leftover_files(store) == []
    failed = [r for r in caplog.records if getattr(r, "state", None) == "failed"]
    assert len(failed) == 1
    assert failed[0].levelname == "ERROR"
    assert "RuntimeError during transcribing" in failed[0].getMessage()
    assert failed[0].exc_info is not None


@pytest.mark.asyncio
async def test_done_log_reports_actionability(pipeline, caplog):
    await pipeline.run(make_upload())

    done = [r for r in caplog.records if getattr(r, "state", None) == "done" and r.levelname == "INFO"]
    assert len(done) == 1
    assert "action='postpone meeting'" in done[0].getMessage()
    assert "actionable=True" in done[0].getMessage()


@pytest.mark.asyncio
async def test_non_actionable_utterance_passes_through(transcriber, store):
    extractor = FakeExtractor(envelope=ExtractionEnvelope(
        normalized_text="Tujhe dekha toh yeh jaana sanam",
        intent=IntentRecord(action="none", summary="The speaker is singing a song."),
    ))
    transcriber.text = "तुझे देखा तो ये जाना सनम"
    pipeline = IntentPipeline(transcriber, extractor, store, today=lambda: TODAY)

    result = await pipeline.run(make_upload())

    assert result.intent.action == "none"
    assert result.intent.date is None
    assert result.intent.time is None
    assert not result.intent.is_actionable
    assert result.original_transcription == "तुझे देखा तो ये जाना सनम"


@pytest.mark.asyncio
async def test_concurrent_uploads_same_tick_stay_independent(tmp_path):
    class SlowEchoTranscriber(FakeTranscriber):
        async def transcribe(self, audio_path):
            self.calls.append(audio_path)
            content = audio_path.read_bytes()
            await asyncio.sleep(0.01)
            return TranscriptionResult(text=content.decode())

    class EchoExtractor(FakeExtractor):
        async def extract(self, transcript, today):
            return ExtractionEnvelope(
                normalized_text=transcript.upper(),
                intent=IntentRecord(action="call client", summary=transcript),
            )

    store = AudioStore(tmp_path, clock_ns=lambda: 1_700_000_000_000_000_000)  # frozen clock
    transcriber = SlowEchoTranscriber()
    pipeline = IntentPipeline(transcriber, EchoExtractor(), store, today=lambda: TODAY)

    first, second = await asyncio.gather(
        pipeline.run(make_upload(b"rahul ko call karo", "a.webm", "audio/webm")),
        pipeline.run(make_upload(b"priya ko call karo", "b.webm", "audio/webm")),
    )

    assert len(set(transcriber.calls)) == 2
    assert first.original_transcription == "rahul ko call karo"
    assert second.original_transcription == "priya ko call karo"
    assert first.transcription == "RAHUL KO CALL KARO"
    assert list(tmp_path.glob("*")) == []


def test_assemble_response_is_pure():
    transcript = TranscriptionResult(text="raw")
    envelope = ExtractionEnvelope(
        normalized_text="Raw",
        intent=IntentRecord(action="none", summary="Nothing to do."),
    )

    response = assemble_response(10.0, transcript, envelope, now=10.25)

    assert response.latency_ms == 250
    assert response.original_transcription == "raw"
    assert response.transcription == "Raw"


def test_assemble_response_never_negative():
    transcript = TranscriptionResult(text="raw")
    envelope = ExtractionEnvelope(
        normalized_text="Raw",
        intent=IntentRecord(action="none", summary="Nothing to do."),
    )
    assert assemble_response(5.0, transcript, envelope, now=4.0).latency_ms == 0
