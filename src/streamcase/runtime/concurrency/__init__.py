"""Concurrency primitives for stream pipelines.

Key Components:
    - CancelToken: One-shot cancellation shared by every stage of a pipeline
    - Stream engine: pull-based streams, combinators, timeout guard,
      merge scheduler and controllable stream

Design Philosophy:
    - Every suspension point is cancellable through the pipeline's token
    - Cancellation always unblocks the consumer; producers are cancelled best-effort
    - Pure asyncio (Python 3.11+)

Example:
    >>> from streamcase.runtime.concurrency import CancelToken, from_array, merge_streams
    >>> token = CancelToken()
    >>> merged = merge_streams(from_array([1, 2], token=token), from_array("ab", token=token))
    >>> token.cancel()  # every pending pull returns promptly
"""

from __future__ import annotations

from .cancel import CancelToken, abandon
from .streams import (
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

__all__ = [
    # Cancellation
    "CancelToken", "abandon",
    # Streams
    "Stream", "ErrorMode",
    "from_array", "map_stream", "filter_stream", "take_stream", "collect", "encode_stream",
    "with_timeout", "TimeoutGuard",
    "merge_streams", "MergeScheduler", "MergePolicy",
    "ControllableStream", "StateObserver",
]
