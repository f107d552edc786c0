"""
services/stt_service.py

Speech-to-text client.
Any OpenAI-compatible /audio/transcriptions endpoint works:
  - Groq      (default, whisper-large-v3)
  - OpenAI    (whisper-1 / gpt-4o-transcribe)
  - self-hosted faster-whisper servers

Single attempt, no retries: the caller is waiting on the other end.
"""

import asyncio
import time
from pathlib import Path
from typing import Optional

from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI

from app.core.config import Settings
from app.core.exceptions import TranscriptionFailed
from app.core.logger import get_logger
from app.models.intent import TranscriptionResult

logger = get_logger(__name__)


class WhisperTranscriber:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        model: str,
        timeout: float,
        language: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.language = language
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhisperTranscriber":
        return cls(
            api_key=settings.GROQ_API_KEY,
            base_url=settings.STT_BASE_URL,
            model=settings.STT_MODEL,
            timeout=settings.STT_TIMEOUT,
            language=settings.STT_LANGUAGE,
        )

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key or "none",
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    async def transcribe(self, audio_path: Path) -> TranscriptionResult:
        t0 = time.perf_counter()
        kwargs = {"model": self.model, "file": Path(audio_path)}
        if self.language:
            kwargs["language"] = self.language

        try:
            response = await asyncio.wait_for(
                self.client.audio.transcriptions.create(**kwargs),
                timeout=self.timeout,
            )
        except APIStatusError as e:
            raise TranscriptionFailed(
                f"STT provider returned {e.status_code}: {e.message}",
                upstream_status=e.status_code,
                cause=e,
            ) from e
        except (APITimeoutError, asyncio.TimeoutError) as e:
            raise TranscriptionFailed(
                f"STT provider timed out after {self.timeout}s", cause=e
            ) from e
        except APIConnectionError as e:
            raise TranscriptionFailed(f"STT provider unreachable: {e}", cause=e) from e
        except (APIError, ValueError) as e:
            # 2xx with an unparseable body, or a body the SDK cannot validate
            raise TranscriptionFailed(
                f"STT provider sent an unreadable response: {e}", cause=e
            ) from e

        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise TranscriptionFailed("STT provider response has no text field.")
        # Empty text is a valid answer for silence; extraction maps it to "none"
        text = text.strip()

        latency_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(f"STT [{latency_ms}ms] model={self.model}: {text[:120]!r}")
        return TranscriptionResult(text=text, model=self.model)
