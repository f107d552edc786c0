"""
core/config.py
All environment variables and settings in one place.
Supports: Groq Whisper STT  +  Gemini / OpenRouter / Self-hosted extraction
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ─── App ───────────────────────────────────────────────
    APP_NAME: str = "CRM Voice Intent"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    ALLOWED_ORIGINS: list[str] = ["*"]   # tighten in production
    APP_TIMEZONE: str = "Asia/Kolkata"   # "today" for relative dates
    UPLOAD_DIR: str = "uploads"

    # ─── Speech-to-text (OpenAI-compatible, Groq default) ──
    GROQ_API_KEY: str = ""
    STT_BASE_URL: str = "https://api.groq.com/openai/v1"
    STT_MODEL: str = "whisper-large-v3"
    STT_LANGUAGE: Optional[str] = None   # None = let the model detect
    STT_TIMEOUT: float = 30.0            # seconds

    # ─── Extraction Provider ───────────────────────────────
    # Options: "gemini" | "openrouter" | "self_hosted"
    EXTRACTION_PROVIDER: Literal["gemini", "openrouter", "self_hosted"] = "gemini"

    # ─── Gemini ────────────────────────────────────────────
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-lite"

    # ─── OpenRouter ────────────────────────────────────────
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENROUTER_MODEL: str = "openai/gpt-4o-mini"

    # ─── Self-Hosted Model (vLLM / Ollama / LM Studio) ─────
    SELF_HOSTED_BASE_URL: str = "http://localhost:11434/v1"   # Ollama default
    SELF_HOSTED_API_KEY: str = "none"
    SELF_HOSTED_MODEL: str = "qwen2.5:7b-instruct"

    # ─── LLM Generation Settings ───────────────────────────
    LLM_MAX_TOKENS: int = 512
    LLM_TEMPERATURE: float = 0.1      # low = deterministic JSON
    LLM_TIMEOUT: float = 15.0         # seconds
    LLM_JSON_MODE: bool = True        # some self-hosted models reject response_format

    # ─── Security ──────────────────────────────────────────
    API_KEY: str = ""                  # Optional: protect your API
    REQUIRE_API_KEY: bool = False

    @property
    def llm_base_url(self) -> Optional[str]:
        if self.EXTRACTION_PROVIDER == "openrouter":
            return self.OPENROUTER_BASE_URL
        if self.EXTRACTION_PROVIDER == "self_hosted":
            return self.SELF_HOSTED_BASE_URL
        return None

    @property
    def llm_api_key(self) -> str:
        if self.EXTRACTION_PROVIDER == "openrouter":
            return self.OPENROUTER_API_KEY
        if self.EXTRACTION_PROVIDER == "self_hosted":
            return self.SELF_HOSTED_API_KEY
        return self.GEMINI_API_KEY

    @property
    def llm_model(self) -> str:
        if self.EXTRACTION_PROVIDER == "openrouter":
            return self.OPENROUTER_MODEL
        if self.EXTRACTION_PROVIDER == "self_hosted":
            return self.SELF_HOSTED_MODEL
        return self.GEMINI_MODEL


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
