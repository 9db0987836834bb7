"""Error taxonomy and sanitization utilities."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from kubernetes.client.exceptions import ApiException


class ErrorKind(str, Enum):
    """How the caller should react to a failed operation."""

    RETRYABLE = "Retryable"
    FATAL = "Fatal"
    NOT_YET_READY = "NotYetReady"


class IRSAError(Exception):
    """Error raised by the orchestration layer.

    Callers branch on ``kind``, never on the exception type.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.FATAL,
        operation: str | None = None,
        cluster: str | None = None,
        requeue_after: float | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.operation = operation
        self.cluster = cluster
        self.requeue_after = requeue_after
        # Kubernetes event reason reported by the handlers
        self.reason = reason

    def __str__(self) -> str:
        parts = []
        if self.operation:
            parts.append(self.operation)
        if self.cluster:
            parts.append(f"cluster {self.cluster}")
        prefix = " for ".join(parts)
        return f"{prefix}: {self.message}" if prefix else self.message

    @property
    def retryable(self) -> bool:
        return self.kind is not ErrorKind.FATAL


def not_yet_ready(
    message: str,
    requeue_after: float | None = None,
    reason: str | None = None,
    **context: Any,
) -> IRSAError:
    """Build a NotYetReady error."""
    return IRSAError(
        message,
        kind=ErrorKind.NOT_YET_READY,
        requeue_after=requeue_after,
        reason=reason,
        **context,
    )


def invalid_input(message: str, **context: Any) -> IRSAError:
    """Build a fatal input validation error."""
    return IRSAError(message, kind=ErrorKind.FATAL, **context)


# AWS error codes that mean "try again later"
RETRYABLE_AWS_CODES = {
    "Throttling",
    "ThrottlingException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "SlowDown",
    "ServiceUnavailable",
    "InternalError",
    "InternalFailure",
    "RequestTimeout",
    "ConcurrentModification",
    "ConcurrentModificationException",
    "OperationAborted",
    "PreconditionFailed",
}


def aws_error_code(error: Exception) -> str | None:
    """Return the AWS error code of a botocore ClientError, or None."""
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


def classify_error(error: Exception) -> ErrorKind:
    """Classify an arbitrary exception into an ErrorKind.

    Args:
        error: Exception raised by AWS, Kubernetes or this package

    Returns:
        The ErrorKind the error should be handled as
    """
    if isinstance(error, IRSAError):
        return error.kind
    if isinstance(error, ClientError):
        code = aws_error_code(error)
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in RETRYABLE_AWS_CODES or status >= 500:
            return ErrorKind.RETRYABLE
        return ErrorKind.FATAL
    if isinstance(error, BotoCoreError):
        # Connection and endpoint errors
        return ErrorKind.RETRYABLE
    if isinstance(error, ApiException):
        if error.status == 429 or (error.status or 0) >= 500:
            return ErrorKind.RETRYABLE
        return ErrorKind.FATAL
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorKind.RETRYABLE
    return ErrorKind.FATAL


def wrap_error(error: Exception, operation: str, cluster: str | None = None) -> IRSAError:
    """Wrap an exception with operation and cluster context, keeping its kind.

    Args:
        error: Original exception
        operation: Operation that failed (e.g. "create bucket")
        cluster: Cluster name

    Returns:
        IRSAError chained to the original error
    """
    if isinstance(error, IRSAError):
        if error.operation is None:
            error.operation = operation
        if error.cluster is None:
            error.cluster = cluster
        return error
    wrapped = IRSAError(
        sanitize_exception(error),
        kind=classify_error(error),
        operation=operation,
        cluster=cluster,
    )
    wrapped.__cause__ = error
    return wrapped


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"access[_\s]?key[_\s]?id[:\s]+([A-Z0-9]{20})",
    r"secret[_\s]?access[_\s]?key[:\s]+([A-Za-z0-9/+=]{40})",
    r"session[_\s]?token[:\s]+([A-Za-z0-9/+=]+)",
]

PEM_BLOCK_PATTERN = re.compile(
    r"-----BEGIN ([A-Z ]*PRIVATE KEY)-----.*?-----END \1-----",
    flags=re.DOTALL,
)

# Fields to redact completely
SENSITIVE_FIELDS = {
    "access_key_id",
    "secret_access_key",
    "session_token",
    "private_key",
    "tls.key",
    "credentials",
    "token",
    "key",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = PEM_BLOCK_PATTERN.sub("[REDACTED PRIVATE KEY]", message)

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, "[REDACTED]", sanitized, flags=re.IGNORECASE)

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in all_sensitive:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
