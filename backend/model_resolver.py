from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from backend.errors import EmptyResponseError, InvocationError, NoModelAvailable
from backend.llm_provider import (
    GenerativeBackend,
    InvocationAttempt,
    ModelCandidate,
    describe_error,
    extract_text,
    invoke,
)
from backend.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    model: str
    method: str
    raw_result: Any
    attempts: list[InvocationAttempt] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedText:
    model: str
    text: str
    attempts: list[InvocationAttempt] = field(default_factory=list)


def _as_candidate(value: ModelCandidate | str) -> ModelCandidate:
    if isinstance(value, ModelCandidate):
        return value
    return ModelCandidate(name=value)


def order_candidates(
    candidates: Iterable[ModelCandidate | str],
    *,
    pinned: str | None = None,
    discovered: Iterable[ModelCandidate] = (),
) -> list[ModelCandidate]:
    """Configured model first, then discovered models, then the fallback sequence.

    Identifiers are deduplicated on their ``models/`` resource name; the first
    occurrence wins so a discovered entry keeps its method metadata.
    """

    ordered: list[ModelCandidate] = []
    seen: set[str] = set()
    sources: list[ModelCandidate | str] = []
    if pinned:
        sources.append(pinned)
    sources.extend(discovered)
    sources.extend(candidates)

    for source in sources:
        candidate = _as_candidate(source)
        key = candidate.resource_name
        if not key or key in seen:
            continue
        seen.add(key)
        ordered.append(candidate)
    return ordered


def discover_generation_models(discover: Callable[[], list[ModelCandidate]]) -> list[ModelCandidate]:
    try:
        listed = discover()
    except Exception as exc:  # noqa: BLE001
        logger.warning("listModels failure, using configured candidates: %s", describe_error(exc))
        return []
    return [candidate for candidate in listed if candidate.supports_generation]


def resolve(
    backend: GenerativeBackend,
    prompt: str,
    candidates: Iterable[ModelCandidate | str],
    *,
    discover: Callable[[], list[ModelCandidate]] | None = None,
    pinned: str | None = None,
    generation_config: dict | None = None,
    deadline_seconds: float | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Resolution:
    """Find the first candidate whose invocation returns a result.

    Candidates are tried strictly in order, one at a time. Resolution fails
    with ``NoModelAvailable`` carrying the attempt log and the last error once
    every candidate has failed or the deadline has passed.
    """

    started = clock()
    discovered = discover_generation_models(discover) if discover is not None else []
    ordered = order_candidates(candidates, pinned=pinned, discovered=discovered)

    attempts: list[InvocationAttempt] = []
    last_error: Exception | None = None

    for candidate in ordered:
        if deadline_seconds is not None and clock() - started > deadline_seconds:
            last_error = InvocationError(f"Model resolution exceeded the {deadline_seconds:g}s deadline.")
            break

        try:
            handle = backend.get_model(candidate)
            strategy, result = invoke(
                handle,
                prompt,
                generation_config=generation_config,
                attempts=attempts,
            )
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            logger.info("Model candidate %s failed: %s", candidate.resource_name, describe_error(exc))
            continue

        logger.info("Using model %s via %s", candidate.resource_name, strategy.value)
        return Resolution(model=candidate.resource_name, method=strategy.value, raw_result=result, attempts=attempts)

    readable = describe_error(last_error) if last_error is not None else "no candidate models configured"
    logger.error("No usable model found. Last error: %s", readable)
    raise NoModelAvailable(
        f"No supported model found. Last error: {readable}",
        attempts=attempts,
        last_error=last_error,
    )


def generate_text(
    backend: GenerativeBackend,
    prompt: str,
    settings: Settings,
    *,
    generation_config: dict | None = None,
) -> GeneratedText:
    """Resolve a model for ``prompt`` and return its normalized text output."""

    resolution = resolve(
        backend,
        prompt,
        settings.fallback_models,
        discover=backend.list_models if settings.discover_models else None,
        pinned=settings.model,
        generation_config=generation_config,
        deadline_seconds=settings.resolution_deadline,
    )

    try:
        text = extract_text(resolution.raw_result)
    except Exception as exc:  # noqa: BLE001
        logger.error("Failed to extract text from AI response of %s: %s", resolution.model, exc)
        raise InvocationError("Failed to parse AI response.") from exc

    if not text:
        logger.error("Empty AI response from %s", resolution.model)
        raise EmptyResponseError("AI returned an empty response.")

    return GeneratedText(model=resolution.model, text=text, attempts=resolution.attempts)
