"""Envelope types and transport codecs for stream pulls."""

from .codec import (
    Codec,
    CodecType,
    JsonCodec,
    MsgpackCodec,
    decode,
    encode,
    encode_str,
    get_codec,
    pack,
    unpack,
)
from .envelope import (
    ControlledItem,
    ControlState,
    Envelope,
    Failure,
    PullResult,
    Signal,
    StreamSnapshot,
    Success,
    Tagged,
    TimeoutEvent,
)

__all__ = [
    # Envelopes
    "PullResult", "Signal", "ControlState", "Success", "Failure", "Envelope",
    "TimeoutEvent", "Tagged", "ControlledItem", "StreamSnapshot",
    # Codecs
    "Codec", "CodecType", "JsonCodec", "MsgpackCodec", "get_codec",
    "encode", "decode", "encode_str", "pack", "unpack",
]
