from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_FALLBACK_MODELS = (
    "models/gemini-2.5-flash",
    "models/gemini-2.0-flash",
    "models/gemini-1.5-flash",
    "models/gemini-1.5-pro",
    "models/text-bison-001",
    "models/chat-bison-001",
)
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


@dataclass(frozen=True)
class Settings:
    api_key: str | None = None
    model: str | None = None
    fallback_models: tuple[str, ...] = DEFAULT_FALLBACK_MODELS
    discover_models: bool = True
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = 60.0
    resolution_deadline: float = 180.0
    advanced_trigger_chars: int = 50
    analysis_min_chars: int = 10
    translation_min_chars: int = 50
    translation_max_chars: int = 30000
    cors_allowed_origins: list[str] = field(default_factory=lambda: _split_csv(DEFAULT_CORS_ORIGINS))


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_str(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_str(name)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def load_settings() -> Settings:
    """Read the server configuration from the environment."""

    fallback_raw = _env_str("GEMINI_FALLBACK_MODELS")
    fallback_models = tuple(_split_csv(fallback_raw)) if fallback_raw else DEFAULT_FALLBACK_MODELS

    return Settings(
        api_key=_env_str("GEMINI_API_KEY"),
        model=_env_str("GEMINI_MODEL"),
        fallback_models=fallback_models or DEFAULT_FALLBACK_MODELS,
        discover_models=_env_bool("GEMINI_DISCOVER_MODELS", True),
        api_base_url=(_env_str("GEMINI_API_BASE_URL") or DEFAULT_API_BASE_URL).rstrip("/"),
        request_timeout=_env_float("GEMINI_REQUEST_TIMEOUT", 60.0),
        resolution_deadline=_env_float("GEMINI_RESOLUTION_DEADLINE", 180.0),
        advanced_trigger_chars=_env_int("LEGAL_AI_ADVANCED_TRIGGER_CHARS", 50),
        analysis_min_chars=_env_int("LEGAL_AI_ANALYSIS_MIN_CHARS", 10),
        translation_min_chars=_env_int("LEGAL_AI_TRANSLATION_MIN_CHARS", 50),
        translation_max_chars=_env_int("LEGAL_AI_TRANSLATION_MAX_CHARS", 30000) or 30000,
        cors_allowed_origins=_split_csv(os.getenv("LEGAL_AI_CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS)),
    )
