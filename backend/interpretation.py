from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TYPE = "Legal Document"
DEFAULT_SUMMARY = "Document analysis completed."
DEFAULT_ORIGINAL_LANGUAGE = "Unknown"
TRANSLATION_DELIMITER = "---"
DEGRADED_SUMMARY_CHARS = 500

DEGRADED_KEY_POINTS = [
    "Document uploaded and processed successfully",
    "Full AI analysis available in raw response",
    "Manual review recommended for detailed insights",
]
DEGRADED_LEGAL_CONCERNS = [
    "Automated JSON parsing encountered an issue",
    "Professional legal review recommended",
]
DEGRADED_RECOMMENDATIONS = [
    "Have document reviewed by qualified legal counsel",
    "Verify all terms and conditions manually",
    "Ensure compliance with applicable laws",
]

_CODE_FENCE = re.compile(r"```(?:json)?\n?|\n?```", re.IGNORECASE)
_ORIGINAL_LANGUAGE = re.compile(r"^\s*Original Language:[ \t]*(.+)$", re.IGNORECASE | re.MULTILINE)


class StructuredAnalysis(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_type: str = DEFAULT_DOCUMENT_TYPE
    summary: str = DEFAULT_SUMMARY
    key_points: list[str] = Field(default_factory=list)
    legal_concerns: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    parties_involved: dict[str, list[str]] = Field(default_factory=dict)
    timeline_critical: list[str] = Field(default_factory=list)
    legal_provisions: list[str] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass(frozen=True)
class InterpretationDegraded:
    reason: str
    raw_text: str


@dataclass(frozen=True)
class AnalysisOutcome:
    analysis: StructuredAnalysis
    degradation: InterpretationDegraded | None = None

    @property
    def degraded(self) -> bool:
        return self.degradation is not None

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"success": True, "analysis": self.analysis.to_dict()}
        if self.degradation is not None:
            payload["rawResponse"] = self.degradation.raw_text
            payload["parseError"] = True
        return payload


@dataclass(frozen=True)
class TranslationResult:
    original_language: str
    translated_content: str

    def to_dict(self) -> dict:
        return {
            "translatedContent": self.translated_content,
            "originalLanguage": self.original_language,
        }


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text or "").strip()


def _text_or_default(value: Any, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    items: list[str] = []
    for item in value:
        if item is None:
            continue
        text = item if isinstance(item, str) else json.dumps(item, ensure_ascii=False)
        if text.strip():
            items.append(text.strip())
    return items


def _party_groups(value: Any) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    groups: dict[str, list[str]] = {}
    for key, names in value.items():
        if isinstance(names, str):
            names = [names]
        groups[str(key)] = _string_list(names)
    return groups


def analysis_from_payload(payload: dict[str, Any]) -> StructuredAnalysis:
    """Read every expected field defensively, defaulting what is missing or mistyped."""

    return StructuredAnalysis(
        document_type=_text_or_default(payload.get("documentType"), DEFAULT_DOCUMENT_TYPE),
        summary=_text_or_default(payload.get("summary"), DEFAULT_SUMMARY),
        key_points=_string_list(payload.get("keyPoints")),
        legal_concerns=_string_list(payload.get("legalConcerns")),
        recommendations=_string_list(payload.get("recommendations")),
        parties_involved=_party_groups(payload.get("partiesInvolved")),
        timeline_critical=_string_list(payload.get("timelineCritical")),
        legal_provisions=_string_list(payload.get("legalProvisions")),
    )


def degraded_analysis(raw_text: str) -> StructuredAnalysis:
    summary = raw_text[:DEGRADED_SUMMARY_CHARS]
    if len(raw_text) > DEGRADED_SUMMARY_CHARS:
        summary += "..."
    return StructuredAnalysis(
        document_type=DEFAULT_DOCUMENT_TYPE,
        summary=summary or DEFAULT_SUMMARY,
        key_points=list(DEGRADED_KEY_POINTS),
        legal_concerns=list(DEGRADED_LEGAL_CONCERNS),
        recommendations=list(DEGRADED_RECOMMENDATIONS),
    )


def interpret_analysis(raw_text: str) -> AnalysisOutcome:
    """Parse model output as a JSON analysis, degrading instead of failing."""

    cleaned = strip_code_fences(raw_text)
    try:
        payload = json.loads(cleaned)
    except (ValueError, RecursionError) as exc:
        reason = f"JSON parsing error: {exc}"
    else:
        if isinstance(payload, dict):
            return AnalysisOutcome(analysis=analysis_from_payload(payload))
        reason = f"Expected a JSON object, got {type(payload).__name__}"

    logger.warning("Analysis output could not be parsed (%s); returning degraded result", reason)
    logger.debug("Raw AI response preview: %s", raw_text[:300])
    return AnalysisOutcome(
        analysis=degraded_analysis(raw_text),
        degradation=InterpretationDegraded(reason=reason, raw_text=raw_text),
    )


def interpret_translation(raw_text: str) -> TranslationResult:
    """Split ``Original Language: <lang>\\n---\\n<text>`` output; never fails."""

    text = raw_text or ""
    head, delimiter, tail = text.partition(TRANSLATION_DELIMITER)
    if not delimiter:
        return TranslationResult(original_language=DEFAULT_ORIGINAL_LANGUAGE, translated_content=text)

    match = _ORIGINAL_LANGUAGE.search(head)
    language = match.group(1).strip() if match else ""
    translated = tail.strip()

    return TranslationResult(
        original_language=language or DEFAULT_ORIGINAL_LANGUAGE,
        translated_content=translated or text,
    )
