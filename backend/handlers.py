"""Per-use-case orchestration: validate input, run the pipeline, shape the payload.

Handlers raise ``backend.errors`` exceptions; the HTTP layer turns them into
status codes.
"""

from __future__ import annotations

import logging
import re
from typing import Callable

from backend.errors import ExtractionError, InputError
from backend.interpretation import interpret_analysis, interpret_translation
from backend.llm_provider import GeminiRestBackend, GenerativeBackend
from backend.model_resolver import generate_text
from backend.pdf_extraction import decode_document, extract_document_text
from backend.prompts import (
    ANALYSIS_GENERATION_CONFIG,
    build_analysis_prompt,
    build_chat_prompt,
    build_generation_prompt,
    build_translation_prompt,
)
from backend.settings import Settings

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str, Settings], GenerativeBackend]

API_KEY_REQUIRED_MESSAGE = "API key is required. Set GEMINI_API_KEY in the server environment."
CONNECTION_PROMPT = "Reply with exactly one word: CONNECTED"


def build_backend(api_key: str, settings: Settings) -> GenerativeBackend:
    return GeminiRestBackend(
        api_key=api_key,
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
    )


def resolve_api_key(settings: Settings, client_api_key: str | None = None) -> str:
    """Server-configured key first; a client-supplied key is a legacy fallback."""

    if settings.api_key:
        return settings.api_key

    client_key = (client_api_key or "").strip()
    if client_key:
        logger.warning("Using client-supplied API key; configure GEMINI_API_KEY on the server instead.")
        return client_key

    raise InputError(API_KEY_REQUIRED_MESSAGE)


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def handle_chat(
    message: str | None,
    legal_context: str | None = None,
    client_api_key: str | None = None,
    *,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    if _is_blank(message):
        raise InputError("Message is required.")

    backend = backend_factory(resolve_api_key(settings, client_api_key), settings)
    generated = generate_text(backend, build_chat_prompt(message, legal_context), settings)
    return {"text": generated.text}


def handle_analyze(
    file_content: str | None,
    file_name: str | None,
    client_api_key: str | None = None,
    *,
    mime_type: str | None = None,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    if _is_blank(file_content):
        raise InputError("File content is required")
    if _is_blank(file_name):
        raise InputError("File name is required")

    api_key = resolve_api_key(settings, client_api_key)
    logger.info("Received file: %s (%s base64 characters)", file_name, len(file_content))

    document = decode_document(file_content, media_type=mime_type, file_name=file_name)
    try:
        extracted = extract_document_text(
            document,
            minimum_chars=settings.analysis_min_chars,
            advanced_trigger_chars=settings.advanced_trigger_chars,
        )
    except ExtractionError as exc:
        logger.warning("PDF extraction error for %s: %s", file_name, exc.message)
        raise ExtractionError(f"Failed to process PDF: {exc.message}") from exc

    backend = backend_factory(api_key, settings)
    generated = generate_text(
        backend,
        build_analysis_prompt(extracted.text),
        settings,
        generation_config=ANALYSIS_GENERATION_CONFIG,
    )
    logger.info("AI response received from %s, length: %s", generated.model, len(generated.text))

    return interpret_analysis(generated.text).to_dict()


def clean_generated_content(content: str) -> str:
    without_fences = content.replace("```", "")
    return re.sub(r"^\s*markdown\s*", "", without_fences, flags=re.IGNORECASE).strip()


def handle_generate(
    document_type: str | None,
    title: str | None,
    description: str | None,
    client_api_key: str | None = None,
    *,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    if _is_blank(document_type) or _is_blank(title) or _is_blank(description):
        raise InputError("All fields are required")

    backend = backend_factory(resolve_api_key(settings, client_api_key), settings)
    generated = generate_text(backend, build_generation_prompt(document_type, title, description), settings)
    return {"content": clean_generated_content(generated.text)}


def handle_translate(
    file_content: str | None,
    file_name: str | None,
    target_language: str | None,
    mime_type: str | None = None,
    client_api_key: str | None = None,
    *,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    if _is_blank(file_content) or _is_blank(file_name) or _is_blank(target_language):
        raise InputError("File content, name, and target language are required")

    api_key = resolve_api_key(settings, client_api_key)
    document = decode_document(
        file_content,
        media_type=mime_type,
        file_name=file_name,
        default_media_type="text/plain",
    )
    try:
        extracted = extract_document_text(
            document,
            minimum_chars=settings.translation_min_chars,
            advanced_trigger_chars=settings.advanced_trigger_chars,
        )
    except ExtractionError as exc:
        logger.warning("Translation extraction error for %s: %s", file_name, exc.message)
        raise ExtractionError(
            f"Unable to extract readable text for translation. {exc.message}"
        ) from exc

    backend = backend_factory(api_key, settings)
    prompt = build_translation_prompt(extracted.text, target_language, settings.translation_max_chars)
    generated = generate_text(backend, prompt, settings)

    return interpret_translation(generated.text).to_dict()


def handle_connection_check(
    client_api_key: str | None = None,
    *,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    backend = backend_factory(resolve_api_key(settings, client_api_key), settings)
    generated = generate_text(backend, CONNECTION_PROMPT, settings)
    return {
        "connected": True,
        "model": generated.model,
        "responsePreview": generated.text[:200],
    }


def handle_list_models(
    client_api_key: str | None = None,
    *,
    settings: Settings,
    backend_factory: BackendFactory = build_backend,
) -> dict:
    backend = backend_factory(resolve_api_key(settings, client_api_key), settings)
    models = backend.list_models()
    usable = [candidate for candidate in models if candidate.supports_generation]
    return {
        "models": [
            {
                "name": candidate.resource_name,
                "displayName": candidate.display_name,
                "supportedMethods": list(candidate.supported_methods or []),
            }
            for candidate in usable
        ],
        "configuredModel": settings.model,
        "fallbackModels": list(settings.fallback_models),
    }
