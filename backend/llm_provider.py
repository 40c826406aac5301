from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from urllib import error, parse, request

from backend.errors import InvocationError

logger = logging.getLogger(__name__)


class InvocationStrategy(str, Enum):
    """Generation operations a model may expose, named as the REST API names them."""

    GENERATE_CONTENT = "generateContent"
    GENERATE_TEXT = "generateText"
    GENERATE_MESSAGE = "generateMessage"


STRATEGY_ORDER: tuple[InvocationStrategy, ...] = (
    InvocationStrategy.GENERATE_CONTENT,
    InvocationStrategy.GENERATE_TEXT,
    InvocationStrategy.GENERATE_MESSAGE,
)
_STRATEGY_NAMES = {strategy.value for strategy in STRATEGY_ORDER}


def normalize_model_name(name: str) -> str:
    cleaned = (name or "").strip()
    if cleaned and not cleaned.startswith("models/"):
        return f"models/{cleaned}"
    return cleaned


@dataclass(frozen=True)
class ModelCandidate:
    name: str
    supported_methods: tuple[str, ...] | None = None
    display_name: str | None = None

    @property
    def resource_name(self) -> str:
        return normalize_model_name(self.name)

    @property
    def supports_generation(self) -> bool:
        if self.supported_methods:
            return any(method in _STRATEGY_NAMES for method in self.supported_methods)
        lowered = self.name.lower()
        return "gemini" in lowered or "bison" in lowered


@dataclass(frozen=True)
class AttemptOutcome:
    value: Any = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class InvocationAttempt:
    model: str
    method: str
    outcome: AttemptOutcome


class ModelHandle(Protocol):
    name: str

    def supports(self, strategy: InvocationStrategy) -> bool:
        ...

    def invoke(self, strategy: InvocationStrategy, prompt: str, generation_config: dict | None = None) -> Any:
        ...


class GenerativeBackend(Protocol):
    def list_models(self) -> list[ModelCandidate]:
        ...

    def get_model(self, candidate: ModelCandidate) -> ModelHandle:
        ...


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float = 60.0) -> dict[str, Any]:
    body = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=body, headers=headers, method="POST")
    with request.urlopen(req, timeout=timeout) as response:
        response_body = response.read().decode("utf-8")
    return json.loads(response_body)


def _get_json(url: str, timeout: float = 60.0) -> dict[str, Any]:
    req = request.Request(url, headers={"Accept": "application/json"}, method="GET")
    with request.urlopen(req, timeout=timeout) as response:
        response_body = response.read().decode("utf-8")
    return json.loads(response_body)


def _http_error_warning(provider_name: str, exc: error.HTTPError) -> str:
    response_excerpt = ""
    try:
        response_body = exc.read().decode("utf-8", errors="replace").strip()
    except Exception:
        response_body = ""

    if response_body:
        try:
            parsed = json.loads(response_body)
            if isinstance(parsed, dict):
                error_payload = parsed.get("error")
                if isinstance(error_payload, dict):
                    message = error_payload.get("message")
                    if isinstance(message, str) and message.strip():
                        response_excerpt = message.strip()
        except json.JSONDecodeError:
            response_excerpt = response_body[:200]

    if response_excerpt:
        return f"{provider_name} request failed with HTTP {exc.code}: {response_excerpt}"

    return f"{provider_name} request failed with HTTP {exc.code}."


def _rest_payload(strategy: InvocationStrategy, prompt: str, generation_config: dict | None) -> dict[str, Any]:
    config = dict(generation_config or {})
    if strategy is InvocationStrategy.GENERATE_CONTENT:
        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if config:
            payload["generationConfig"] = config
        return payload

    sampling = {key: config[key] for key in ("temperature", "topP", "topK") if key in config}
    if strategy is InvocationStrategy.GENERATE_TEXT:
        return {"prompt": {"text": prompt}, **sampling}
    return {"prompt": {"messages": [{"content": prompt}]}, **sampling}


@dataclass
class GeminiRestModel:
    name: str
    api_key: str = field(repr=False)
    base_url: str
    timeout: float = 60.0
    supported_methods: tuple[str, ...] | None = None

    def supports(self, strategy: InvocationStrategy) -> bool:
        if self.supported_methods is None:
            return True
        return strategy.value in self.supported_methods

    def invoke(self, strategy: InvocationStrategy, prompt: str, generation_config: dict | None = None) -> Any:
        endpoint = f"{self.base_url}/{self.name}:{strategy.value}?key={parse.quote(self.api_key)}"
        try:
            return _post_json(
                endpoint,
                _rest_payload(strategy, prompt, generation_config),
                {"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except error.HTTPError as exc:
            raise InvocationError(_http_error_warning(f"Gemini {strategy.value}", exc)) from exc
        except (error.URLError, OSError, ValueError) as exc:
            raise InvocationError(
                f"Gemini {strategy.value} request failed before receiving a response: {exc}"
            ) from exc


@dataclass
class GeminiRestBackend:
    api_key: str = field(repr=False)
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: float = 60.0
    max_pages: int = 5

    def list_models(self) -> list[ModelCandidate]:
        candidates: list[ModelCandidate] = []
        page_token: str | None = None
        for _ in range(self.max_pages):
            query = {"key": self.api_key, "pageSize": "100"}
            if page_token:
                query["pageToken"] = page_token
            url = f"{self.base_url}/models?{parse.urlencode(query)}"
            try:
                payload = _get_json(url, timeout=self.timeout)
            except error.HTTPError as exc:
                raise InvocationError(_http_error_warning("Gemini listModels", exc)) from exc
            except (error.URLError, OSError, ValueError) as exc:
                raise InvocationError(f"Gemini listModels request failed: {exc}") from exc
            if not isinstance(payload, dict):
                raise InvocationError("Gemini listModels returned an unexpected response shape.")

            for item in payload.get("models") or []:
                if not isinstance(item, dict):
                    continue
                name = item.get("name") or item.get("id")
                if not isinstance(name, str) or not name.strip():
                    continue
                methods = item.get("supportedGenerationMethods")
                candidates.append(
                    ModelCandidate(
                        name=name.strip(),
                        supported_methods=tuple(str(method) for method in methods) if isinstance(methods, list) else None,
                        display_name=item.get("displayName"),
                    )
                )

            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        return candidates

    def get_model(self, candidate: ModelCandidate) -> GeminiRestModel:
        return GeminiRestModel(
            name=candidate.resource_name,
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            supported_methods=candidate.supported_methods,
        )


def describe_error(exc: BaseException | None) -> str:
    if exc is None:
        return "unknown error"
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


def invoke(
    handle: ModelHandle,
    prompt: str,
    *,
    generation_config: dict | None = None,
    attempts: list[InvocationAttempt] | None = None,
) -> tuple[InvocationStrategy, Any]:
    """Call the first generation operation the handle exposes.

    Operations are tried in ``STRATEGY_ORDER``; the next one is only attempted
    when the present one raises. Every attempt is appended to ``attempts``.
    """

    log = attempts if attempts is not None else []
    last_error: Exception | None = None

    for strategy in STRATEGY_ORDER:
        if not handle.supports(strategy):
            continue
        try:
            result = handle.invoke(strategy, prompt, generation_config)
        except Exception as exc:  # noqa: BLE001
            last_error = exc
            log.append(InvocationAttempt(handle.name, strategy.value, AttemptOutcome(error=exc)))
            logger.info("Model %s rejected %s: %s", handle.name, strategy.value, describe_error(exc))
            continue

        if result is None:
            last_error = InvocationError(f"{strategy.value} returned no result")
            log.append(InvocationAttempt(handle.name, strategy.value, AttemptOutcome(error=last_error)))
            continue

        log.append(InvocationAttempt(handle.name, strategy.value, AttemptOutcome(value=result)))
        return strategy, result

    if last_error is None:
        raise InvocationError(f"No supported generation method on model {handle.name}")
    if isinstance(last_error, InvocationError):
        raise last_error
    raise InvocationError(describe_error(last_error)) from last_error


def _field(container: Any, name: str) -> Any:
    if isinstance(container, dict):
        return container.get(name)
    return getattr(container, name, None)


def _first(items: Any) -> Any:
    if isinstance(items, (list, tuple)) and items:
        return items[0]
    return None


async def _await_value(awaitable: Any) -> Any:
    return await awaitable


def _call_text_operation(operation: Any) -> str:
    value = operation()
    if inspect.isawaitable(value):
        value = asyncio.run(_await_value(value))
    return "" if value is None else str(value)


def _collect_gemini_text(response_payload: dict[str, Any]) -> str:
    candidate = _first(response_payload.get("candidates"))
    if not isinstance(candidate, dict):
        return ""

    content = candidate.get("content")
    if isinstance(content, str):
        return content.strip()

    output = candidate.get("output")
    if isinstance(output, str):
        return output.strip()

    if not isinstance(content, dict):
        return ""

    parts = content.get("parts") or []
    extracted: list[str] = []
    for part in parts:
        text = part.get("text") if isinstance(part, dict) else None
        if isinstance(text, str) and text.strip():
            extracted.append(text.strip())
    return "\n".join(extracted)


def extract_text(raw_result: Any) -> str:
    """Normalize any known backend result shape into plain text.

    Shapes, in priority order: a nested ``response`` exposing a ``text``
    operation (sync or async); a nested ``response`` without one, which is
    stringified; an ``output`` array whose first item's first content entry
    holds ``text``; a REST ``candidates`` payload; a top-level ``text``;
    anything else is stringified whole.
    """

    if raw_result is None:
        return ""

    response = _field(raw_result, "response")
    if response is not None:
        text_operation = _field(response, "text")
        if callable(text_operation):
            return _call_text_operation(text_operation).strip()
        if isinstance(text_operation, str):
            return text_operation.strip()
        return str(response).strip()

    output = _field(raw_result, "output")
    if isinstance(output, (list, tuple)):
        text = _field(_first(_field(_first(output), "content")), "text")
        return "" if text is None else str(text).strip()

    if isinstance(raw_result, dict) and ("candidates" in raw_result or "promptFeedback" in raw_result):
        return _collect_gemini_text(raw_result)

    direct_text = _field(raw_result, "text")
    if isinstance(direct_text, str):
        return direct_text.strip()

    return str(raw_result).strip()
