"""Wire codecs for stream envelopes.

Pull results, resilient envelopes, timeout events, merge tags, controlled
items and snapshots are encoded directly: the codecs fall back to each
object's ``to_dict()`` so callers never flatten envelopes by hand.
JSON goes through orjson, binary frames through msgpack.

Usage:
    >>> from streamcase.io.streaming import encode, decode, pack, unpack
    >>> decode(encode(Success("ok", 0)))
    {'success': True, 'data': 'ok', 'index': 0}
    >>> unpack(pack(Tagged(1, Failure("bad row", 3))))["value"]["error"]
    'bad row'
"""

from __future__ import annotations

from dataclasses import asdict, is_dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import msgpack
import orjson

if TYPE_CHECKING:
    from streamcase.foundation.errors import JsonValue

# Envelopes are slotted dataclasses; passthrough routes them to _to_wire
_ORJSON_OPTS = orjson.OPT_NON_STR_KEYS | orjson.OPT_PASSTHROUGH_DATACLASS


class CodecType(StrEnum):
    """Wire formats a stream can be framed in."""
    JSON = "json"
    MSGPACK = "msgpack"


def _to_wire(obj: object) -> JsonValue:
    """Fallback for values the encoders do not know natively."""
    if callable(to_dict := getattr(obj, "to_dict", None)):
        return to_dict()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, BaseException):
        return str(obj) or type(obj).__name__
    raise TypeError(f"{type(obj).__name__} is not serializable")


@runtime_checkable
class Codec(Protocol):
    """Encodes one stream item into one transport frame."""

    name: str
    content_type: str

    def encode(self, data: object) -> bytes: ...
    def decode(self, data: bytes) -> JsonValue: ...


class JsonCodec:
    __slots__ = ()
    name = "json"
    content_type = "application/json"

    def encode(self, data: object) -> bytes:
        return encode(data)

    def decode(self, data: bytes) -> JsonValue:
        return decode(data)


class MsgpackCodec:
    """Compact binary frames for high-throughput merges."""

    __slots__ = ()
    name = "msgpack"
    content_type = "application/msgpack"

    def encode(self, data: object) -> bytes:
        return pack(data)

    def decode(self, data: bytes) -> JsonValue:
        return unpack(data)


_CODECS: dict[CodecType, Codec] = {CodecType.JSON: JsonCodec(), CodecType.MSGPACK: MsgpackCodec()}


def get_codec(name: str | CodecType = CodecType.JSON) -> Codec:
    """Look up a codec by wire format.

    Raises:
        KeyError: Unknown format
    """
    try:
        return _CODECS[CodecType(name)]
    except ValueError:
        raise KeyError(f"Unknown codec: {name}. Available: {[c.value for c in CodecType]}") from None


def encode(data: object) -> bytes:
    return orjson.dumps(data, default=_to_wire, option=_ORJSON_OPTS)


def decode(data: bytes | str) -> JsonValue:
    return orjson.loads(data)


def encode_str(data: object) -> str:
    return encode(data).decode()


def pack(data: object) -> bytes:
    return msgpack.packb(data, default=_to_wire, use_bin_type=True)


def unpack(data: bytes) -> JsonValue:
    return msgpack.unpackb(data, raw=False, strict_map_key=False)
