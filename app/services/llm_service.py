"""
services/llm_service.py

Intent extraction client.
Turns a raw (possibly Devanagari) transcript into:
  - normalized Latin-script Hinglish text
  - an intent record: action / date / time / get_summary

Supports:
  - Gemini      (google-genai, JSON response mime type)
  - OpenRouter  (any model via API key)
  - Self-hosted (vLLM / Ollama / LM Studio — any OpenAI-compatible endpoint)

Output is parsed strictly: anything that is not the pinned JSON shape is
ExtractionMalformed. No fence stripping, no repair.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, AsyncOpenAI
from pydantic import ValidationError

from app.core.config import Settings
from app.core.exceptions import ExtractionFailed, ExtractionMalformed
from app.core.logger import get_logger
from app.models.intent import NO_ACTION, ExtractionEnvelope

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are a CRM Voice Assistant for Indian sales and support teams.
Users speak Hinglish: Hindi mixed with English, sometimes transcribed in Devanagari.

Today is {weekday}, {long_date} ({iso_date}). Treat this as ground truth when resolving
relative dates: "aaj" = today, "kal" = tomorrow (CRM requests are about the future),
"parso" = the day after tomorrow, "agle Monday" / "next Monday" = the coming Monday.

Rules:
1. normalized_text: rewrite the transcript in Latin-script Hinglish. Transliterate any
   Devanagari or other non-Latin script. Fix casing and punctuation but keep the
   speaker's words. Never output non-Latin characters.
2. intent.action: a short English verb + object, e.g. "schedule meeting",
   "call client", "send quotation", "postpone meeting". Never a single bare verb.
3. If there is no actionable request (casual conversation, song lyrics, silence, noise),
   set intent.action to "{no_action}" and intent.date / intent.time to null.
4. intent.date: "YYYY-MM-DD" or null if no date is stated.
   intent.time: 24-hour "HH:MM" (e.g. "shaam 5 baje" -> "17:00") or null if no time is stated.
5. intent.get_summary: one short English sentence restating the request.
6. Do not hallucinate. Only fill fields grounded in the transcript; use null otherwise.

Return ONLY pure JSON with exactly this shape, nothing before or after:
{{"normalized_text": "<string>", "intent": {{"action": "<string>", "date": "<YYYY-MM-DD or null>", "time": "<HH:MM or null>", "get_summary": "<string>"}}}}"""


def build_system_instruction(today: date) -> str:
    return SYSTEM_PROMPT.format(
        weekday=today.strftime("%A"),
        long_date=today.strftime("%B %d, %Y"),
        iso_date=today.isoformat(),
        no_action=NO_ACTION,
    )


def build_prompt(transcript: str) -> str:
    # json.dumps quotes the transcript safely, Devanagari kept as-is
    return f"Convert this text to JSON: {json.dumps(transcript, ensure_ascii=False)}"


def parse_envelope(raw: Optional[str]) -> ExtractionEnvelope:
    """Parse provider output into an ExtractionEnvelope or raise ExtractionMalformed."""
    if not raw or not raw.strip():
        raise ExtractionMalformed("Extraction provider returned an empty response.")
    try:
        return ExtractionEnvelope.model_validate_json(raw)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ExtractionMalformed(
            f"Extraction output is not the expected JSON ({where}: {first.get('msg')}). "
            f"Raw: {raw[:200]!r}",
            cause=e,
        ) from e


class IntentExtractor(ABC):
    """Shared flow: build prompts → provider call (bounded) → strict parse."""

    provider: str = ""

    def __init__(self, model: str, timeout: float, temperature: float, max_tokens: int):
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens

    @abstractmethod
    async def _complete(self, system_instruction: str, prompt: str) -> Optional[str]:
        """Return the provider's raw text. Raise ExtractionFailed on provider errors."""

    async def extract(self, transcript: str, today: date) -> ExtractionEnvelope:
        t0 = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self._complete(build_system_instruction(today), build_prompt(transcript)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ExtractionFailed(
                f"Extraction provider timed out after {self.timeout}s", cause=e
            ) from e

        latency_ms = int((time.perf_counter() - t0) * 1000)
        logger.info(f"LLM raw [{latency_ms}ms] model={self.model}: {(raw or '')[:300]!r}")
        return parse_envelope(raw)


class GeminiIntentExtractor(IntentExtractor):
    provider = "gemini"

    def __init__(self, api_key: str, client: Optional[genai.Client] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def _complete(self, system_instruction: str, prompt: str) -> Optional[str]:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    response_mime_type="application/json",
                    temperature=self.temperature,
                    max_output_tokens=self.max_tokens,
                ),
            )
        except genai_errors.APIError as e:
            raise ExtractionFailed(
                f"Gemini returned {e.code}: {e.message}", upstream_status=e.code, cause=e
            ) from e
        except httpx.TimeoutException as e:
            raise ExtractionFailed(f"Gemini timed out: {e}", cause=e) from e
        except httpx.HTTPError as e:
            raise ExtractionFailed(f"Gemini unreachable: {e}", cause=e) from e
        except ValueError as e:
            raise ExtractionMalformed(f"Gemini sent an unreadable response: {e}", cause=e) from e
        return response.text


class OpenAICompatibleIntentExtractor(IntentExtractor):
    """OpenRouter or any self-hosted OpenAI-compatible chat endpoint."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        base_url: str,
        json_mode: bool = True,
        client: Optional[AsyncOpenAI] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.provider = provider
        self.api_key = api_key
        self.base_url = base_url
        self.json_mode = json_mode
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            client_kwargs = {
                "api_key": self.api_key or "none",
                "base_url": self.base_url,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if self.provider == "openrouter":
                client_kwargs["default_headers"] = {"X-Title": "CRM Voice Intent"}
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def _complete(self, system_instruction: str, prompt: str) -> Optional[str]:
        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.json_mode:
            request["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**request)
        except APIStatusError as e:
            raise ExtractionFailed(
                f"{self.provider} returned {e.status_code}: {e.message}",
                upstream_status=e.status_code,
                cause=e,
            ) from e
        except APITimeoutError as e:
            raise ExtractionFailed(f"{self.provider} timed out", cause=e) from e
        except APIConnectionError as e:
            raise ExtractionFailed(f"{self.provider} unreachable: {e}", cause=e) from e
        except ValueError as e:
            # 2xx whose body is not JSON
            raise ExtractionMalformed(
                f"{self.provider} sent an unreadable response: {e}", cause=e
            ) from e
        except APIError as e:
            raise ExtractionFailed(f"{self.provider} error: {e}", cause=e) from e

        # A 2xx body not labelled JSON comes back from the SDK as a bare str
        choices = getattr(response, "choices", None)
        if not choices:
            raise ExtractionMalformed(f"{self.provider} returned no choices.")
        return choices[0].message.content


def build_extractor(settings: Settings) -> IntentExtractor:
    common = {
        "model": settings.llm_model,
        "timeout": settings.LLM_TIMEOUT,
        "temperature": settings.LLM_TEMPERATURE,
        "max_tokens": settings.LLM_MAX_TOKENS,
    }
    if settings.EXTRACTION_PROVIDER == "gemini":
        return GeminiIntentExtractor(api_key=settings.GEMINI_API_KEY, **common)
    return OpenAICompatibleIntentExtractor(
        provider=settings.EXTRACTION_PROVIDER,
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
        json_mode=settings.LLM_JSON_MODE,
        **common,
    )
