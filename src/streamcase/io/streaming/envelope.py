"""Core envelope types exchanged by stream pulls.

Provides typed results for pulls, resilient per-item envelopes, timeout
events, merge tags and controllable-stream items, each with a to_dict()
for transport serialization.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeAlias, TypeVar

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, computed_field

from streamcase.foundation.errors import ErrorCode, JsonDict, classify_exception

from .codec import encode_str

if TYPE_CHECKING:
    from typing import Self

T = TypeVar("T")


class Signal(StrEnum):
    """Why a stream ended."""
    COMPLETED = "completed"  # Producer exhausted
    STOPPED = "stopped"      # stop() on a controllable stream
    CANCELLED = "cancelled"  # Cancel token fired
    ERROR = "error"          # Internal fault


class ControlState(StrEnum):
    """ControllableStream lifecycle states."""
    READY = "ready"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class PullResult(Generic[T]):
    """Outcome of exactly one pull.

    Either an item (``done=False``) or the end of the stream (``done=True``)
    with the signal that ended it. A controllable stream that faulted ends
    with ``signal=Signal.ERROR`` and the fault in ``error``.
    """
    done: bool
    value: T | None = None
    signal: Signal | None = None
    error: BaseException | None = None

    @classmethod
    def item(cls, value: T) -> PullResult[T]:
        return cls(done=False, value=value)

    @classmethod
    def end(cls, signal: Signal = Signal.COMPLETED, error: BaseException | None = None) -> PullResult[T]:
        return cls(done=True, signal=signal, error=error)

    def unwrap(self) -> T:
        """Get the item or raise LookupError on a terminal result."""
        if self.done:
            raise LookupError(f"stream ended ({self.signal})")
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> JsonDict:
        if not self.done:
            return {"done": False, "value": _plain(self.value)}
        result: JsonDict = {"done": True, "signal": self.signal}
        if self.error is not None:
            result["error"] = str(self.error)
        return result


# ─────────────────────────────────────────────────────────────────────────────
# Resilient-mode envelopes
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(slots=True, frozen=True)
class Success(Generic[T]):
    """An item that was produced without error."""
    data: T
    index: int

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> JsonDict:
        return {"success": True, "data": _plain(self.data), "index": self.index}

    def to_json(self) -> str:
        return encode_str(self)


@dataclass(slots=True, frozen=True)
class Failure:
    """An item whose production failed; the stream carried on."""
    error: str
    index: int
    code: ErrorCode = ErrorCode.UNKNOWN

    @classmethod
    def from_exception(cls, exc: BaseException, index: int) -> Self:
        return cls(error=str(exc) or type(exc).__name__, index=index, code=classify_exception(exc))

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> JsonDict:
        return {"success": False, "error": self.error, "index": self.index, "code": self.code}

    def to_json(self) -> str:
        return encode_str(self)


Envelope: TypeAlias = "Success[T] | Failure"


@dataclass(slots=True, frozen=True)
class TimeoutEvent:
    """Terminal event yielded once by a timeout guard.

    Attributes:
        timeout: Configured per-pull deadline in seconds
        elapsed: Seconds the pull had been waiting when the deadline fired
    """
    timeout: float
    elapsed: float
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    @property
    def error(self) -> str:
        return "timeout"

    @property
    def message(self) -> str:
        return f"Timeout after {round(self.timeout * 1000)}ms"

    def to_dict(self) -> JsonDict:
        return {"error": self.error, "message": self.message, "elapsed": self.elapsed, "timestamp": self.timestamp}

    def to_json(self) -> str:
        return encode_str(self)


@dataclass(slots=True, frozen=True)
class Tagged(Generic[T]):
    """A merged item labelled with the index (and optional name) of its source."""
    source: int
    value: T
    name: str | None = None

    def to_dict(self) -> JsonDict:
        result: JsonDict = {"source": self.source, "value": _plain(self.value)}
        if self.name is not None:
            result["name"] = self.name
        return result


@dataclass(slots=True, frozen=True)
class ControlledItem(Generic[T]):
    """An item emitted by a ControllableStream.

    Attributes:
        data: The source element
        index: Cursor position of the element
        state: Stream state when the element was emitted
        timestamp: Emission time (epoch ms)
    """
    data: T
    index: int
    state: ControlState = ControlState.RUNNING
    timestamp: float = field(default_factory=lambda: time.time() * 1000)

    def to_dict(self) -> JsonDict:
        return {"data": _plain(self.data), "index": self.index, "state": self.state, "timestamp": self.timestamp}


class StreamSnapshot(BaseModel):
    """Point-in-time view of a ControllableStream, returned by get_state()."""

    model_config = ConfigDict(frozen=True)

    state: ControlState
    cursor: NonNegativeInt
    total: NonNegativeInt = Field(description="Number of elements in the source")

    @computed_field
    @property
    def progress_percent(self) -> float:
        """Share of the source already emitted, one decimal place."""
        if self.total == 0:
            return 0.0
        return round(self.cursor / self.total * 100, 1)

    def to_dict(self) -> JsonDict:
        return self.model_dump(mode="json")


def _plain(value: object) -> object:
    """Nested envelopes serialize through their own to_dict()."""
    to_dict = getattr(value, "to_dict", None)
    return to_dict() if callable(to_dict) else value
