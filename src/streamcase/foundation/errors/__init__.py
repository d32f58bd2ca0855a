"""Unified error handling for streamcase.

- ErrorCode: Standard error codes for stream failures
- StreamError/StreamException: Structured errors and exceptions
- PipelineError, UnboundedStreamError, EmptyMergeError, ConcurrentPullError,
  StreamCancelled: concrete failure classes raised by the engine
- JSON aliases: JsonValue, JsonDict, JsonMapping
"""

from .errors import (
    ConcurrentPullError,
    EmptyMergeError,
    ErrorCode,
    PipelineError,
    StreamCancelled,
    StreamError,
    StreamException,
    UnboundedStreamError,
    classify_exception,
)
from .types import JsonDict, JsonMapping, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    # Engine failures
    "PipelineError", "UnboundedStreamError", "EmptyMergeError", "ConcurrentPullError", "StreamCancelled",
    # JSON aliases
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue",
]
