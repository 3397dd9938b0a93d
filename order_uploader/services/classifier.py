"""
Error Classifier - maps failed transport calls and error bodies to an ErrorKind.

Order of precedence:
1. structured ``code`` / ``errorCode`` field in a JSON error body
2. case-insensitive phrase matching on the message (legacy endpoints)
3. HTTP status (429, 413)
4. ``UNKNOWN`` with the raw message kept verbatim
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from ..errors import (
    ErrorKind,
    QuotaError,
    RemoteError,
    TransportError,
    UploaderError,
)

logger = logging.getLogger(__name__)

MAX_RAW_MESSAGE = 200

_STRUCTURED_CODES: Dict[str, ErrorKind] = {
    "QUOTA_EXCEEDED": ErrorKind.QUOTA_EXCEEDED,
    "RATE_LIMITED": ErrorKind.QUOTA_EXCEEDED,
    "FILE_TOO_LARGE": ErrorKind.FILE_TOO_LARGE,
    "PAYLOAD_TOO_LARGE": ErrorKind.FILE_TOO_LARGE,
    "CORS_BLOCKED": ErrorKind.CORS_BLOCKED,
}

# Checked in this order; first match wins.
_PHRASES: Tuple[Tuple[ErrorKind, Tuple[str, ...]], ...] = (
    (ErrorKind.QUOTA_EXCEEDED, (
        "quotaexceeded",
        "quota exceeded",
        "service invoked too many times",
        "too many requests",
        "rate limit",
    )),
    (ErrorKind.FILE_TOO_LARGE, (
        "file too large",
        "too large",
        "payload too large",
        "request entity too large",
        "exceeds maximum",
    )),
    (ErrorKind.CORS_BLOCKED, (
        "cors",
        "cross-origin",
        "access-control-allow-origin",
        "blocked by",
    )),
    (ErrorKind.NETWORK_UNREACHABLE, (
        "failed to fetch",
        "networkerror",
        "network error",
        "connection refused",
        "connection reset",
        "name or service not known",
        "nodename nor servname",
        "timed out",
    )),
)

_ACTIONABLE: Dict[ErrorKind, str] = {
    ErrorKind.QUOTA_EXCEEDED: (
        "Remote service quota exceeded. Please try again later or reduce the number of files."
    ),
    ErrorKind.FILE_TOO_LARGE: (
        "File size exceeds the remote service limit. "
        "Please compress files or split them into smaller batches."
    ),
    ErrorKind.CORS_BLOCKED: (
        "Request was blocked (CORS). Make sure the ingestion endpoint is deployed "
        "with \"Anyone\" access."
    ),
    ErrorKind.NETWORK_UNREACHABLE: (
        "Ingestion endpoint is unreachable. Check the endpoint URL and your connection, then retry."
    ),
    ErrorKind.MALFORMED_RESPONSE: (
        "Ingestion endpoint returned an unexpected response."
    ),
}


@dataclass(frozen=True)
class Classification:
    """Result of classifying one failure."""
    kind: ErrorKind
    message: str
    raw: str = ""


class ErrorClassifier:
    """
    Best-effort failure classifier.

    Usage:
        classifier = ErrorClassifier()
        raise classifier.from_exception(exc)
        raise classifier.from_response(status, body_text)
    """

    def classify(
        self,
        raw_message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
    ) -> Classification:
        raw_message = raw_message or ""

        kind = self._kind_from_code(code)
        if kind is None:
            kind = self._kind_from_text(raw_message)
        if kind is None:
            kind = self._kind_from_status(status_code)
        if kind is None:
            return Classification(ErrorKind.UNKNOWN, raw_message, raw_message)

        message = _ACTIONABLE[kind]
        if raw_message and kind is not ErrorKind.QUOTA_EXCEEDED:
            message = f"{message} Error: {_truncate(raw_message)}"
        return Classification(kind, message, raw_message)

    def from_exception(self, exc: BaseException) -> UploaderError:
        """Classify a request that raised before a response arrived."""
        raw = str(exc) or type(exc).__name__
        classification = self.classify(raw)

        if isinstance(exc, (httpx.TransportError, OSError)) and classification.kind is ErrorKind.UNKNOWN:
            classification = Classification(
                ErrorKind.NETWORK_UNREACHABLE,
                f"{_ACTIONABLE[ErrorKind.NETWORK_UNREACHABLE]} Error: {_truncate(raw)}",
                raw,
            )

        logger.debug(f"Classified {type(exc).__name__} as {classification.kind.value}")
        if classification.kind is ErrorKind.QUOTA_EXCEEDED:
            return QuotaError(classification.message)
        if classification.kind is ErrorKind.UNKNOWN:
            return TransportError(classification.message, kind=ErrorKind.UNKNOWN)
        return TransportError(classification.message, kind=classification.kind)

    def from_response(
        self,
        status_code: int,
        body: str,
        reason: str = "",
    ) -> UploaderError:
        """Classify a non-2xx response or a ``success: false`` body."""
        message, code = extract_error_message(body)
        if not message:
            message = f"Upload failed ({status_code}): {reason}".rstrip(": ")

        classification = self.classify(message, status_code=status_code, code=code)
        logger.debug(f"Classified HTTP {status_code} as {classification.kind.value}")
        if classification.kind is ErrorKind.QUOTA_EXCEEDED:
            return QuotaError(classification.message, status_code=status_code)
        return RemoteError(
            classification.message,
            kind=classification.kind,
            status_code=status_code,
            body=body,
        )

    def malformed(self, detail: str, status_code: Optional[int] = None, body: str = "") -> RemoteError:
        """A 2xx response whose body does not have the expected shape."""
        return RemoteError(
            f"{_ACTIONABLE[ErrorKind.MALFORMED_RESPONSE]} {detail}",
            kind=ErrorKind.MALFORMED_RESPONSE,
            status_code=status_code,
            body=body,
        )

    @staticmethod
    def _kind_from_code(code: Optional[str]) -> Optional[ErrorKind]:
        if not code:
            return None
        return _STRUCTURED_CODES.get(str(code).upper())

    @staticmethod
    def _kind_from_text(text: str) -> Optional[ErrorKind]:
        lowered = text.lower()
        for kind, phrases in _PHRASES:
            if any(p in lowered for p in phrases):
                return kind
        return None

    @staticmethod
    def _kind_from_status(status_code: Optional[int]) -> Optional[ErrorKind]:
        if status_code == 429:
            return ErrorKind.QUOTA_EXCEEDED
        if status_code == 413:
            return ErrorKind.FILE_TOO_LARGE
        return None


def extract_error_message(body: str) -> Tuple[str, Optional[str]]:
    """
    Pull a human message and a structured code out of an error body.

    JSON bodies use ``error`` / ``message`` with ``details`` appended; any
    other text is returned verbatim.
    """
    if not body:
        return "", None
    try:
        data: Any = json.loads(body)
    except ValueError:
        return body, None

    if not isinstance(data, dict):
        return body, None

    code = data.get("code") or data.get("errorCode")
    message = data.get("error") or data.get("message") or ""
    if not isinstance(message, str):
        message = json.dumps(message)

    details = data.get("details")
    if details and details != message:
        message = f"{message} - {details}" if message else str(details)

    errors = data.get("errors")
    if not message and isinstance(errors, list) and errors:
        message = ", ".join(_describe_entry(e) for e in errors)

    return message, code


def _describe_entry(entry: Any) -> str:
    if isinstance(entry, dict):
        label = entry.get("name") or f"File {entry.get('index', '?')}"
        return f"{label}: {entry.get('error', 'unknown error')}"
    return str(entry)


def _truncate(text: str) -> str:
    if len(text) > MAX_RAW_MESSAGE:
        return text[:MAX_RAW_MESSAGE] + "..."
    return text
