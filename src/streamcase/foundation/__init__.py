"""Foundation - Core building blocks for streamcase.

Contains: error handling and configuration.
"""

from __future__ import annotations

from .config import (
    LoggingSettings,
    StreamcaseSettings,
    StreamSettings,
    clear_settings_cache,
    get_settings,
)
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

__all__ = [
    # Errors
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    "PipelineError", "UnboundedStreamError", "EmptyMergeError", "ConcurrentPullError", "StreamCancelled",
    # Config
    "StreamcaseSettings", "LoggingSettings", "StreamSettings", "get_settings", "clear_settings_cache",
]
