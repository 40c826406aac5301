"""Failure types shared by the document pipeline and the HTTP layer."""

from __future__ import annotations

from typing import Sequence


class LegalAssistantError(Exception):
    """Base class for failures that end a request with a user-facing message."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputError(LegalAssistantError):
    """A required request field is missing or malformed."""

    status_code = 400


class ExtractionError(LegalAssistantError):
    """The uploaded document is unreadable or holds too little text."""

    status_code = 400


class InvocationError(LegalAssistantError):
    """The generative backend call failed or returned an unusable shape."""

    status_code = 500


class EmptyResponseError(InvocationError):
    """The backend call succeeded but produced no usable text."""


class NoModelAvailable(LegalAssistantError):
    """Every candidate model failed to produce a result."""

    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        attempts: Sequence[object] = (),
        last_error: Exception | None = None,
    ):
        super().__init__(message)
        self.attempts = list(attempts)
        self.last_error = last_error
