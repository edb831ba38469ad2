"""Remote API failures and their user-facing messages."""

from __future__ import annotations

import json
from enum import Enum

import httpx


class ErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    BAD_REQUEST = "bad_request"
    SERVER = "server"
    TIMEOUT = "timeout"
    NETWORK = "network"
    UNKNOWN = "unknown"


class SeedreamApiError(RuntimeError):
    """Failure raised by the stream consumer, the download stage or the transport helpers."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.body = body


def kind_for_status(status_code: int) -> ErrorKind:
    if status_code == 400:
        return ErrorKind.BAD_REQUEST
    if status_code in {401, 403}:
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.RATE_LIMIT
    if status_code >= 500:
        return ErrorKind.SERVER
    return ErrorKind.UNKNOWN


def extract_error_message(body: str) -> str | None:
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    return None


def http_status_error(status_code: int, body: str) -> SeedreamApiError:
    message = extract_error_message(body)
    if message is not None:
        text = f"API Error ({status_code}): {message}"
    else:
        text = f"HTTP {status_code}: {body[:500]}"
    return SeedreamApiError(kind_for_status(status_code), text, status_code=status_code, body=body)


def transport_error(exc: httpx.TransportError, timeout_s: float | None = None) -> SeedreamApiError:
    if isinstance(exc, httpx.TimeoutException):
        if timeout_s is not None:
            return SeedreamApiError(ErrorKind.TIMEOUT, f"Request timed out after {timeout_s:g}s")
        return SeedreamApiError(ErrorKind.TIMEOUT, f"Request timed out: {exc}")
    return SeedreamApiError(ErrorKind.NETWORK, f"Network error: {exc}")


def classify_error(error: BaseException) -> str:
    if not isinstance(error, SeedreamApiError):
        return f"Unexpected error: {error}"
    status = error.status_code
    if status is not None:
        detail = extract_error_message(error.body or "") or error.message
        if status == 400:
            return f"Invalid request: {detail}. Check your prompt and parameters."
        if status == 401:
            return "Authentication failed. Please check your ARK_API_KEY."
        if status == 403:
            return "Access denied. Your API key may not have permission for this operation."
        if status == 429:
            return "Rate limit exceeded. Please wait a moment before trying again."
        if status == 500:
            return f"Server error: {detail}. The image may have been flagged by content filters."
        return f"API error ({status}): {detail}"
    if error.kind is ErrorKind.TIMEOUT:
        return "Request timed out. Image generation can take up to 2 minutes for complex prompts."
    if error.kind is ErrorKind.NETWORK:
        return "Could not connect to the Seedream API. Please check your network connection."
    if error.kind is ErrorKind.AUTH:
        return "Authentication failed. Please check your ARK_API_KEY."
    if error.kind is ErrorKind.RATE_LIMIT:
        return "Rate limit exceeded. Please wait a moment before trying again."
    if error.kind is ErrorKind.BAD_REQUEST:
        return f"Invalid request: {error.message}. Check your prompt and parameters."
    if error.kind is ErrorKind.SERVER:
        return f"Image generation failed: {error.message}"
    return f"Unexpected error: {error.message}"
