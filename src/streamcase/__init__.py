"""streamcase - Composable async streams with fan-in, deadlines and flow control.

A small engine of operators over lazily-produced asynchronous sequences,
plus a controllable stream with an explicit pause/resume/stop/restart
state machine and cooperative cancellation.

Quick Start:
    >>> from streamcase import from_array, merge_streams, with_timeout
    >>>
    >>> numbers = from_array(range(1, 11), delay=0.2).filter(lambda n: n % 2 == 0)
    >>> letters = from_array("abcde", delay=0.3).map(str.upper)
    >>>
    >>> async for tagged in with_timeout(merge_streams(numbers, letters), timeout=5.0):
    ...     print(tagged)

Resilient Mode:
    >>> results = from_array(["apple", None, "cherry"]).map(str.upper, may_fail=True)
    >>> [r.success for r in await results.collect()]
    [True, False, True]

Flow Control:
    >>> from streamcase import ControllableStream
    >>> ctl = ControllableStream([f"Item {i}" for i in range(20)], chunk_size=2, delay=0.5)
    >>> async for item in ctl:
    ...     if item.index == 5:
    ...         ctl.pause()   # a later resume() continues from index 6
"""

from __future__ import annotations

__version__ = "0.1.0"

# Errors
from .foundation.errors import (
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

# Config
from .foundation.config import StreamcaseSettings, clear_settings_cache, get_settings

# Envelopes
from .io.streaming import (
    ControlledItem,
    ControlState,
    Failure,
    PullResult,
    Signal,
    StreamSnapshot,
    Success,
    Tagged,
    TimeoutEvent,
)

# Engine
from .runtime.concurrency import (
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

# Logging
from .runtime.observability import configure_from_settings, configure_logging, get_logger

__all__ = [
    "__version__",
    # Engine
    "Stream", "ErrorMode", "CancelToken",
    "from_array", "map_stream", "filter_stream", "take_stream", "collect", "encode_stream",
    "with_timeout", "TimeoutGuard",
    "merge_streams", "MergeScheduler", "MergePolicy",
    "ControllableStream", "StateObserver",
    # Envelopes
    "PullResult", "Signal", "ControlState", "Success", "Failure", "TimeoutEvent", "Tagged",
    "ControlledItem", "StreamSnapshot",
    # Errors
    "ErrorCode", "StreamError", "StreamException", "classify_exception",
    "PipelineError", "UnboundedStreamError", "EmptyMergeError", "ConcurrentPullError", "StreamCancelled",
    # Config & logging
    "StreamcaseSettings", "get_settings", "clear_settings_cache",
    "configure_logging", "configure_from_settings", "get_logger",
]
