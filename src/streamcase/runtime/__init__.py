"""Runtime - Execution flow, control, and monitoring.

Contains: concurrency (cancellation, stream engine) and observability (logging).
"""

from __future__ import annotations

from .concurrency import (
    CancelToken,
    ControllableStream,
    ErrorMode,
    MergePolicy,
    MergeScheduler,
    StateObserver,
    Stream,
    TimeoutGuard,
    collect,
    encode_stream,
    filter_stream,
    from_array,
    map_stream,
    merge_streams,
    take_stream,
    with_timeout,
)
from .observability import configure_from_settings, configure_logging, get_logger, log_context

__all__ = [
    # Concurrency
    "CancelToken", "Stream", "ErrorMode",
    "from_array", "map_stream", "filter_stream", "take_stream", "collect", "encode_stream",
    "with_timeout", "TimeoutGuard",
    "merge_streams", "MergeScheduler", "MergePolicy",
    "ControllableStream", "StateObserver",
    # Observability
    "configure_logging", "configure_from_settings", "get_logger", "log_context",
]
