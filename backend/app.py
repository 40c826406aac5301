from __future__ import annotations

import base64
import logging
import os

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from fastapi import FastAPI, File, Form, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend import handlers
from backend.errors import LegalAssistantError
from backend.handlers import build_backend
from backend.settings import load_settings

logger = logging.getLogger(__name__)
logging.getLogger("backend").setLevel(
    getattr(logging, os.getenv("LEGAL_AI_LOG_LEVEL", "INFO").strip().upper(), logging.INFO)
)

app = FastAPI(title="Legal Document Assistant API")


@app.middleware("http")
async def api_prefix_alias(request, call_next):
    """Accept both `/path` and `/api/path` for frontend compatibility."""
    if request.scope.get("path", "").startswith("/api/"):
        request.scope["path"] = request.scope["path"][4:]
    return await call_next(request)


CORS_ALLOWED_ORIGINS = load_settings().cors_allowed_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_request_body(_request, exc: RequestValidationError):
    logger.info("Rejected request body: %s", exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request body."})


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    message: str | None = None
    legal_context: str | None = None
    api_key: str | None = None


class AnalyzeRequest(CamelModel):
    file_content: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    api_key: str | None = None


class GenerateRequest(CamelModel):
    type: str | None = None
    title: str | None = None
    description: str | None = None
    api_key: str | None = None


class TranslateRequest(CamelModel):
    file_content: str | None = None
    file_name: str | None = None
    target_language: str | None = None
    mime_type: str | None = None
    api_key: str | None = None


class LlmConnectionCheckRequest(CamelModel):
    api_key: str | None = None


def _error_response(exc: LegalAssistantError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.post("/chat")
def chat(request: ChatRequest):
    try:
        return handlers.handle_chat(
            request.message,
            request.legal_context,
            request.api_key,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.post("/documents/analyze")
def analyze_document(request: AnalyzeRequest):
    try:
        return handlers.handle_analyze(
            request.file_content,
            request.file_name,
            request.api_key,
            mime_type=request.mime_type,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.post("/documents/analyze/upload")
async def analyze_uploaded_document(
    file: UploadFile = File(...),
    api_key: str | None = Form(None),
):
    content = await file.read()
    try:
        return await run_in_threadpool(
            handlers.handle_analyze,
            base64.b64encode(content).decode("ascii"),
            file.filename or "upload.pdf",
            api_key,
            mime_type=file.content_type if file.content_type != "application/octet-stream" else None,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.post("/documents/generate")
def generate_document(request: GenerateRequest):
    try:
        return handlers.handle_generate(
            request.type,
            request.title,
            request.description,
            request.api_key,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.post("/documents/translate")
def translate_document(request: TranslateRequest):
    try:
        return handlers.handle_translate(
            request.file_content,
            request.file_name,
            request.target_language,
            request.mime_type,
            request.api_key,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.post("/llm/check-connection")
def check_llm_connection(request: LlmConnectionCheckRequest):
    try:
        return handlers.handle_connection_check(
            request.api_key,
            settings=load_settings(),
            backend_factory=build_backend,
        )
    except LegalAssistantError as exc:
        return _error_response(exc)


@app.get("/llm/models")
def list_llm_models():
    try:
        return handlers.handle_list_models(settings=load_settings(), backend_factory=build_backend)
    except LegalAssistantError as exc:
        return _error_response(exc)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting Legal Document Assistant API on port %s", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
