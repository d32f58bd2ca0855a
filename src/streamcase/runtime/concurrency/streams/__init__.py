"""Async stream engine.

- Base: Stream (pull-based handle), ErrorMode
- Sources and transforms: from_array, map_stream, filter_stream, take_stream
- Terminal: collect
- Deadlines: with_timeout, TimeoutGuard
- Fan-in: merge_streams, MergeScheduler, MergePolicy
- Control: ControllableStream, StateObserver
"""

from .base import ErrorMode, Stream
from .combinators import collect, encode_stream, filter_stream, from_array, map_stream, take_stream
from .controllable import ControllableStream, StateObserver
from .merge import MergePolicy, MergeScheduler, merge_streams
from .timeout import TimeoutGuard, with_timeout

__all__ = [
    "Stream",
    "ErrorMode",
    "from_array",
    "map_stream",
    "filter_stream",
    "take_stream",
    "collect",
    "encode_stream",
    "with_timeout",
    "TimeoutGuard",
    "merge_streams",
    "MergeScheduler",
    "MergePolicy",
    "ControllableStream",
    "StateObserver",
]
