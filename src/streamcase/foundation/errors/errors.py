"""Standardized error handling for stream pipelines.

Provides error codes and structured error records for pipeline failures.
Uses Pydantic for validation and serialization.
"""

from __future__ import annotations

import traceback
from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


class ErrorCode(StrEnum):
    """Standard error codes for stream failures.

    Used for programmatic error handling and for tagging resilient envelopes.
    """
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"
    UNBOUNDED_STREAM = "UNBOUNDED_STREAM"
    EMPTY_MERGE = "EMPTY_MERGE"
    CONCURRENT_PULL = "CONCURRENT_PULL"
    TRANSFORM_FAILED = "TRANSFORM_FAILED"
    SOURCE_FAILED = "SOURCE_FAILED"
    INVALID_CONFIG = "INVALID_CONFIG"
    UNKNOWN = "UNKNOWN"


# Flattened pattern -> code mapping, checked in insertion order
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "cancel": ErrorCode.CANCELLED,
    "connection": ErrorCode.SOURCE_FAILED,
    "network": ErrorCode.SOURCE_FAILED,
    "ioerror": ErrorCode.SOURCE_FAILED,
    "oserror": ErrorCode.SOURCE_FAILED,
    "value": ErrorCode.TRANSFORM_FAILED,
    "type": ErrorCode.TRANSFORM_FAILED,
    "key": ErrorCode.TRANSFORM_FAILED,
    "attribute": ErrorCode.TRANSFORM_FAILED,
}
_PATTERN_KEYS = tuple(_PATTERN_CODES.keys())


@lru_cache(maxsize=256)
def _classify_cached(exc_key: str) -> ErrorCode:
    """Cached classification by exception signature."""
    haystack = exc_key.lower()
    for pattern in _PATTERN_KEYS:
        if pattern in haystack:
            return _PATTERN_CODES[pattern]
    return ErrorCode.UNKNOWN


def classify_exception(exc: BaseException) -> ErrorCode:
    """Map exception to error code via pattern matching on name/message."""
    if isinstance(exc, StreamException):
        return exc.error.code
    return _classify_cached(f"{type(exc).__name__} {exc}")


class StreamError(BaseModel):
    """Structured error record for stream failures.

    Attributes:
        stream_name: Name of the stream that failed (``"<anonymous>"`` if unnamed)
        message: Human-readable error message
        code: Machine-readable error code
        recoverable: Whether a fresh pipeline might succeed
        details: Optional detailed information (e.g., stack trace)
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
    )

    stream_name: Annotated[str, Field(
        min_length=1,
        description="Name of the stream that produced the error",
    )] = "<anonymous>"
    message: Annotated[str, Field(
        min_length=1,
        description="Human-readable error message",
    )]
    code: ErrorCode = Field(
        default=ErrorCode.UNKNOWN,
        description="Machine-readable error classification",
    )
    recoverable: bool = Field(
        default=False,
        description="Whether rebuilding the pipeline might succeed",
    )
    details: str | None = Field(
        default=None,
        description="Optional detailed error info (e.g., stack trace)",
    )

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: str | BaseException) -> str:
        """Accept exception objects and extract a non-empty message."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def severity(self) -> str:
        """Error severity level for logging/display."""
        if self.code in (ErrorCode.TIMEOUT, ErrorCode.CANCELLED):
            return "warning"
        if self.code in (ErrorCode.UNBOUNDED_STREAM, ErrorCode.EMPTY_MERGE, ErrorCode.INVALID_CONFIG):
            return "critical"
        return "error"

    @classmethod
    def create(
        cls,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        stream_name: str | None = None,
        recoverable: bool = False,
        details: str | None = None,
    ) -> Self:
        """Factory method for construction."""
        return cls(
            stream_name=stream_name or "<anonymous>",
            message=message,
            code=code,
            recoverable=recoverable,
            details=details,
        )

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        context: str = "",
        *,
        stream_name: str | None = None,
        include_trace: bool = False,
    ) -> Self:
        """Create from exception with auto-classification."""
        text = str(exc) or type(exc).__name__
        return cls(
            stream_name=stream_name or "<anonymous>",
            message=f"{context}: {text}" if context else text,
            code=classify_exception(exc),
            details="".join(traceback.format_exception(exc)) if include_trace else None,
        )

    def render(self) -> str:
        """Format error for display."""
        parts = [f"Stream error ({self.stream_name}) [{self.code}]: {self.message}"]
        if self.details:
            parts.append(f"\n{self.details}")
        return "".join(parts)

    __str__ = render


class StreamException(Exception):
    """Exception wrapping a StreamError for raising."""

    default_code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, error: StreamError | str) -> None:
        if isinstance(error, str):
            error = StreamError.create(error, self.default_code)
        self.error = error
        super().__init__(error.message)

    @property
    def code(self) -> ErrorCode:
        return self.error.code

    @classmethod
    def create(cls, message: str, code: ErrorCode | None = None, *, stream_name: str | None = None) -> Self:
        """Create stream exception."""
        return cls(StreamError.create(message, code or cls.default_code, stream_name=stream_name))


class PipelineError(StreamException):
    """A transform, predicate or producer failed in propagating mode.

    The original exception is chained as ``__cause__``.
    """

    default_code = ErrorCode.SOURCE_FAILED

    @classmethod
    def wrap(cls, exc: BaseException, *, stream_name: str | None = None) -> PipelineError:
        """Wrap an arbitrary exception, passing existing pipeline errors through."""
        if isinstance(exc, PipelineError):
            return exc
        err = cls(StreamError.from_exception(exc, stream_name=stream_name))
        err.__cause__ = exc
        return err


class UnboundedStreamError(StreamException):
    """A terminal operation was asked to drain a stream that never ends."""

    default_code = ErrorCode.UNBOUNDED_STREAM


class EmptyMergeError(StreamException, ValueError):
    """merge_streams() was called without any source."""

    default_code = ErrorCode.EMPTY_MERGE


class ConcurrentPullError(StreamException, RuntimeError):
    """A second pull was issued while one is still outstanding."""

    default_code = ErrorCode.CONCURRENT_PULL


class StreamCancelled(StreamException):
    """A cancel token fired while a pull was suspended."""

    default_code = ErrorCode.CANCELLED
