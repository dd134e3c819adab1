from __future__ import annotations

import logging
from typing import Iterable

from ..enums import SkipMode
from ..models import CanvasEntry, CanvasResponse
from .exceptions import MalformedResponse

logger = logging.getLogger(__name__)

# field 1, length-delimited: repeated Track in the request, track_uri inside
# Track, and repeated Canvas in the response
TRACK_TAG = 0x0A
TRACK_URI_TAG = 0x0A
CANVAS_TAG = 0x0A
# field 2, length-delimited: canvas_url inside Canvas
CANVAS_URL_TAG = 0x12

WIRE_TYPE_VARINT = 0
WIRE_TYPE_FIXED64 = 1
WIRE_TYPE_LENGTH_DELIMITED = 2
WIRE_TYPE_FIXED32 = 5


def encode_varint(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"Cannot encode negative varint: {value}")
    result = bytearray()
    while value > 0x7F:
        result.append((value & 0x7F) | 0x80)
        value >>= 7
    result.append(value)
    return bytes(result)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Read a varint at ``offset`` and return it with the offset after it.

    A truncated varint yields whatever was read up to the end of ``data``.
    """
    result = 0
    shift = 0
    position = offset
    while position < len(data):
        byte = data[position]
        position += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            break
        shift += 7
    return result, position


def read_tag(data: bytes, offset: int, skip_mode: SkipMode) -> tuple[int, int]:
    if skip_mode == SkipMode.NAIVE:
        return data[offset], offset + 1
    return decode_varint(data, offset)


def _length_delimited(tag: int, payload: bytes) -> bytes:
    return bytes([tag]) + encode_varint(len(payload)) + payload


class CanvasCodec:
    """Encoder and decoder for the two canvaz-cache messages.

    Only the fields that are actually used are understood: the track URIs of
    the request and the canvas URL of each response entry. Everything else in
    a response is skipped.

    The default ``SkipMode.NAIVE`` assumes every unknown field is
    length-delimited and skips a varint length plus that many bytes. An
    unknown varint or fixed-width field desyncs the parser in that mode.
    ``SkipMode.WIRE_TYPE`` skips by the wire type carried in the tag instead.

    Tags are read as a single byte in ``SkipMode.NAIVE``. ``SkipMode.WIRE_TYPE``
    reads them as varints, so fields numbered 16 and up are skipped whole.
    """

    @staticmethod
    def encode_track(track_uri: str) -> bytes:
        return _length_delimited(TRACK_URI_TAG, track_uri.encode("utf-8"))

    @classmethod
    def encode_request(cls, track_uris: Iterable[str]) -> bytes:
        return b"".join(
            _length_delimited(TRACK_TAG, cls.encode_track(track_uri))
            for track_uri in track_uris
        )

    @classmethod
    def decode_response(
        cls,
        data: bytes,
        skip_mode: SkipMode = SkipMode.NAIVE,
    ) -> CanvasResponse:
        data = bytes(data)
        canvases = []
        offset = 0
        while offset < len(data):
            tag, offset = read_tag(data, offset, skip_mode)
            if tag == CANVAS_TAG:
                length, offset = decode_varint(data, offset)
                end = min(offset + length, len(data))
                canvases.append(cls.decode_canvas(data[offset:end], skip_mode))
                offset = end
            else:
                offset = cls.skip_field(data, offset, tag, skip_mode)

        logger.debug(f"Decoded {len(canvases)} canvas(es)")

        return CanvasResponse(canvases=canvases)

    @classmethod
    def decode_canvas(
        cls,
        data: bytes,
        skip_mode: SkipMode = SkipMode.NAIVE,
    ) -> CanvasEntry:
        canvas = CanvasEntry()
        offset = 0
        while offset < len(data):
            tag, offset = read_tag(data, offset, skip_mode)
            if tag == CANVAS_URL_TAG:
                length, offset = decode_varint(data, offset)
                end = min(offset + length, len(data))
                canvas.canvas_url = data[offset:end].decode("utf-8", errors="replace")
                offset = end
            else:
                offset = cls.skip_field(data, offset, tag, skip_mode)
        return canvas

    @staticmethod
    def skip_field(
        data: bytes,
        offset: int,
        tag: int,
        skip_mode: SkipMode = SkipMode.NAIVE,
    ) -> int:
        if skip_mode == SkipMode.NAIVE:
            length, offset = decode_varint(data, offset)
            return min(offset + length, len(data))

        wire_type = tag & 0x07
        if wire_type == WIRE_TYPE_VARINT:
            _, offset = decode_varint(data, offset)
            return offset
        if wire_type == WIRE_TYPE_FIXED64:
            return min(offset + 8, len(data))
        if wire_type == WIRE_TYPE_LENGTH_DELIMITED:
            length, offset = decode_varint(data, offset)
            return min(offset + length, len(data))
        if wire_type == WIRE_TYPE_FIXED32:
            return min(offset + 4, len(data))
        raise MalformedResponse(f"Unsupported wire type {wire_type} in tag {tag}")
