from __future__ import annotations

import base64
import binascii
import io
import logging
import mimetypes
import string
from dataclasses import dataclass
from typing import Any

from pypdf import PdfReader
from pypdf.generic import ContentStream

from backend.errors import ExtractionError, InputError

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
PDF_SIGNATURE = b"%PDF"
NO_READABLE_TEXT = "No readable text found in PDF"
OCR_REQUIRED_MESSAGE = (
    "No readable text found in the PDF. This might be a scanned document "
    "or image-based PDF that requires OCR."
)

TIER_SIMPLE = "simple"
TIER_ADVANCED = "advanced"
TIER_PLAIN = "plain"

_TEXT_SHOW_OPERATORS = {b"Tj", b"TJ", b"'", b'"'}
_MAX_XOBJECT_DEPTH = 8


@dataclass(frozen=True)
class DocumentBytes:
    content: bytes
    media_type: str
    file_name: str | None = None

    @property
    def is_pdf(self) -> bool:
        return self.media_type == PDF_MIME_TYPE


@dataclass(frozen=True)
class ExtractedText:
    text: str
    tier: str
    page_count: int = 0


def decode_document(
    file_content: str,
    *,
    media_type: str | None = None,
    file_name: str | None = None,
    default_media_type: str = PDF_MIME_TYPE,
) -> DocumentBytes:
    """Decode a base64 transport payload and settle its media type."""

    payload = (file_content or "").strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]

    try:
        content = base64.b64decode(payload)
    except (binascii.Error, ValueError) as exc:
        raise InputError(f"File content is not valid base64: {exc}") from exc

    resolved = (media_type or "").strip().lower()
    if not resolved and file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        resolved = guessed or ""

    return DocumentBytes(content=content, media_type=resolved or default_media_type, file_name=file_name)


def _open_reader(content: bytes) -> PdfReader:
    if not content:
        raise ExtractionError("Empty PDF file received")
    if not content[:5].startswith(PDF_SIGNATURE):
        raise ExtractionError("File is not a valid PDF document")

    try:
        reader = PdfReader(io.BytesIO(content))
        len(reader.pages)
    except Exception as exc:  # noqa: BLE001
        raise ExtractionError(f"Failed to parse PDF file: {exc}") from exc
    return reader


def _extract_simple(reader: PdfReader) -> ExtractedText:
    page_texts: list[str] = []
    for page_number, page in enumerate(reader.pages, start=1):
        runs: list[str] = []

        def _collect_run(text, _cm, _tm, _font_dict, _font_size):
            cleaned = " ".join((text or "").split())
            if cleaned:
                runs.append(cleaned)

        try:
            page.extract_text(visitor_text=_collect_run)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Simple extraction skipped page %s: %s", page_number, exc)
        page_texts.append(" ".join(runs))

    text = "\n".join(page_texts).strip()
    return ExtractedText(text=text or NO_READABLE_TEXT, tier=TIER_SIMPLE, page_count=len(page_texts))


def _decode_operand(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("latin-1", errors="replace")
    return ""


def _walk_operations(operations: list, resources: Any, reader: PdfReader, runs: list[str], depth: int) -> None:
    for operands, operator in operations:
        if operator in _TEXT_SHOW_OPERATORS and operands:
            if operator == b"TJ":
                text = "".join(_decode_operand(item) for item in operands[0])
            else:
                text = _decode_operand(operands[-1])
            cleaned = " ".join(text.split())
            if cleaned:
                runs.append(cleaned)
        elif operator == b"Do" and operands and depth < _MAX_XOBJECT_DEPTH:
            _walk_form_xobject(operands[0], resources, reader, runs, depth + 1)


def _walk_form_xobject(name: Any, resources: Any, reader: PdfReader, runs: list[str], depth: int) -> None:
    if not resources:
        return
    xobjects = resources.get_object().get("/XObject")
    if not xobjects:
        return
    xobjects = xobjects.get_object()
    if name not in xobjects:
        return

    xobject = xobjects[name].get_object()
    if xobject.get("/Subtype") != "/Form":
        return

    content = ContentStream(xobject, reader)
    _walk_operations(content.operations, xobject.get("/Resources") or resources, reader, runs, depth)


def _looks_like_unreadable_text(text: str) -> bool:
    normalized = (text or "").strip()
    if not normalized:
        return True

    printable = sum(1 for char in normalized if char in string.printable or char.isalpha())
    printable_ratio = printable / max(1, len(normalized))
    replacement_char_ratio = normalized.count("�") / max(1, len(normalized))

    return printable_ratio < 0.75 or replacement_char_ratio > 0.05


def _extract_advanced(reader: PdfReader) -> ExtractedText:
    page_texts: list[str] = []
    for page in reader.pages:
        runs: list[str] = []
        contents = page.get_contents()
        if contents is not None:
            _walk_operations(contents.operations, page.get("/Resources"), reader, runs, depth=0)

        page_text = " ".join(runs)
        if not page_text:
            page_text = (page.extract_text(extraction_mode="layout") or "").strip()
        page_texts.append(page_text)

    text = "\n".join(page_texts).strip()
    if _looks_like_unreadable_text(text):
        raise ExtractionError("Advanced extraction returned unreadable or empty content.")
    return ExtractedText(text=text, tier=TIER_ADVANCED, page_count=len(page_texts))


def extract(content: bytes, tier: str = TIER_SIMPLE) -> ExtractedText:
    """Run a single extraction tier over raw PDF bytes."""

    reader = _open_reader(content)
    if tier == TIER_SIMPLE:
        return _extract_simple(reader)
    if tier == TIER_ADVANCED:
        return _extract_advanced(reader)
    raise ValueError(f"Unknown extraction tier '{tier}'.")


def _needs_advanced(extracted: ExtractedText, trigger_chars: int) -> bool:
    return len(extracted.text) < trigger_chars or NO_READABLE_TEXT in extracted.text


def extract_pdf_text(content: bytes, *, minimum_chars: int, advanced_trigger_chars: int = 50) -> ExtractedText:
    """Extract text with the simple tier, falling back to the advanced tier.

    The advanced tier runs only when the simple result is short or carries the
    no-readable-text sentinel. Its failures are logged and the simple result is
    kept; the sufficiency check against ``minimum_chars`` happens once, after
    both tiers.
    """

    reader = _open_reader(content)
    logger.info("PDF size: %s bytes, %s pages", len(content), len(reader.pages))

    extracted = _extract_simple(reader)
    if _needs_advanced(extracted, advanced_trigger_chars):
        logger.info("Simple extraction yielded %s characters, trying advanced extraction", len(extracted.text))
        try:
            extracted = _extract_advanced(reader)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Advanced extraction also failed: %s", exc)

    text = extracted.text.replace(NO_READABLE_TEXT, "").strip()
    logger.info("Final extracted text length: %s (%s tier)", len(text), extracted.tier)
    logger.debug("Text preview: %s", text[:300])

    if len(text) < minimum_chars:
        raise ExtractionError(OCR_REQUIRED_MESSAGE)

    return ExtractedText(text=text, tier=extracted.tier, page_count=extracted.page_count)


def extract_document_text(
    document: DocumentBytes,
    *,
    minimum_chars: int,
    advanced_trigger_chars: int = 50,
) -> ExtractedText:
    if document.is_pdf:
        return extract_pdf_text(
            document.content,
            minimum_chars=minimum_chars,
            advanced_trigger_chars=advanced_trigger_chars,
        )

    text = document.content.decode("utf-8", errors="replace").strip()
    if len(text) < minimum_chars:
        raise ExtractionError("Document does not contain enough readable text.")
    return ExtractedText(text=text, tier=TIER_PLAIN, page_count=0)
