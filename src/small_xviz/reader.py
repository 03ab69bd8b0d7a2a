import json
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from small_xviz.exceptions import FormatError, UnknownEnvelopeTypeError
from small_xviz.records import (
    GLB_CHUNK_HEADER_SIZE,
    GLB_FILE_HEADER_SIZE,
    GLB_MIN_BYTE_LENGTH,
    GLB_VERSION,
    GlbChunk,
    GlbContainer,
    GlbHeader,
    unpack_pbe1,
)
from small_xviz.schema import ENVELOPE, SCHEMA_BY_TYPE, SchemaRegistry
from small_xviz.sniffer import FrameFormat, classify
from small_xviz.well_known import APPLICATION_DATA_KEY, GLTF_EXTENSION, XvizMessageType

logger = logging.getLogger(__name__)

_METADATA_KEYS = frozenset({"version", "log_info", "streams"})
_BUFFER_VIEW_REF = re.compile(r"^#/bufferViews/(\d+)$")


@dataclass(slots=True)
class DecodedMessage:
    type: XvizMessageType
    data: dict[str, Any]


def get_envelope_type(data: bytes | memoryview, registry: SchemaRegistry) -> str:
    """Return the tag of a PBE1 frame's envelope without decoding its payload."""
    return registry.lookup_type(ENVELOPE).decode(unpack_pbe1(data)).type


def parse_pbe1_xviz(data: bytes | memoryview, registry: SchemaRegistry) -> DecodedMessage:
    """Decode a protobuf envelope frame and its payload."""
    envelope = registry.lookup_type(ENVELOPE).decode(unpack_pbe1(data))
    message_type = XvizMessageType.from_tag(envelope.type)
    payload_type = registry.lookup_type(SCHEMA_BY_TYPE[message_type])
    return DecodedMessage(message_type, payload_type.decode_object(envelope.data))


def _message_type_of(payload: Any) -> XvizMessageType:
    if not isinstance(payload, Mapping):
        raise FormatError(f"expected a JSON object, got {type(payload).__name__}")
    if "type" in payload and "data" in payload:
        return XvizMessageType.from_tag(payload["type"])
    if "updates" in payload:
        return XvizMessageType.STATE_UPDATE
    if _METADATA_KEYS & payload.keys():
        return XvizMessageType.METADATA
    raise UnknownEnvelopeTypeError(str(payload.get("type", "")))


def _from_json_payload(payload: Any) -> DecodedMessage:
    message_type = _message_type_of(payload)
    if "type" in payload and "data" in payload:
        return DecodedMessage(message_type, payload["data"])
    return DecodedMessage(message_type, dict(payload))


def _load_json(data: bytes | memoryview) -> Any:
    try:
        return json.loads(bytes(data))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormatError(f"invalid JSON frame: {exc}") from exc


def _payload_from_gltf(gltf: Any) -> Any:
    if not isinstance(gltf, Mapping):
        raise FormatError("JSON chunk is not an object")
    payload = gltf.get(APPLICATION_DATA_KEY)
    if payload is None:
        logger.debug(f"No '{APPLICATION_DATA_KEY}' application data, trying extension")
        payload = (gltf.get("extensions") or {}).get(GLTF_EXTENSION)
    if payload is None:
        raise FormatError("container holds no XVIZ payload")
    return payload


def _resolve_buffer_views(
    value: Any, buffer_views: Sequence[Mapping[str, int]], binary: memoryview
) -> Any:
    """Replace "#/bufferViews/<i>" references with the bytes they point to."""
    if isinstance(value, str):
        match = _BUFFER_VIEW_REF.match(value)
        if match is None:
            return value
        index = int(match.group(1))
        if index >= len(buffer_views):
            raise FormatError(f"reference to missing buffer view {index}")
        view = buffer_views[index]
        offset = view.get("byteOffset", 0)
        length = view["byteLength"]
        if offset + length > len(binary):
            raise FormatError(f"buffer view {index} exceeds the binary chunk")
        return bytes(binary[offset : offset + length])
    if isinstance(value, Mapping):
        return {
            key: _resolve_buffer_views(item, buffer_views, binary) for key, item in value.items()
        }
    if isinstance(value, list):
        return [_resolve_buffer_views(item, buffer_views, binary) for item in value]
    return value


def parse_glb_xviz(data: bytes | memoryview) -> DecodedMessage:
    """Decode a chunked binary frame whose JSON chunk embeds the message."""
    container = GlbContainer.read(data)
    gltf = _load_json(container.json_chunk.data)
    payload = _payload_from_gltf(gltf)
    if container.binary_chunk is not None:
        payload = _resolve_buffer_views(
            payload, gltf.get("bufferViews", []), memoryview(container.binary_chunk.data)
        )
    return _from_json_payload(payload)


def parse_json_xviz(data: bytes | memoryview | str) -> DecodedMessage:
    """Decode a plain JSON frame, either an envelope or a bare message."""
    if isinstance(data, str):
        data = data.encode()
    return _from_json_payload(_load_json(data))


def decode_frame(data: bytes | memoryview, registry: SchemaRegistry) -> DecodedMessage:
    """Decode a frame buffer of any supported format."""
    frame_format = classify(data)
    if frame_format is FrameFormat.CHUNKED_ENVELOPE:
        return parse_pbe1_xviz(data, registry)
    if frame_format is FrameFormat.CHUNKED_EXTENSION:
        return parse_glb_xviz(data)
    if frame_format is FrameFormat.TEXT:
        return parse_json_xviz(data)
    raise FormatError(f"frame of {len(data)} bytes is too short to identify")


def extract_json_chunk(data: bytes | memoryview, byte_offset: int = 0) -> memoryview | None:
    """Return a view of the JSON chunk of a chunked container, or None.

    Only the headers are read; the binary chunk is never touched. None is returned
    when the header does not describe a version 2, JSON-first container.
    """
    if len(data) - byte_offset < GLB_MIN_BYTE_LENGTH:
        return None
    header = GlbHeader.read(data, byte_offset)
    if header.version != GLB_VERSION or header.byte_length < GLB_MIN_BYTE_LENGTH:
        return None

    json_length, json_format = GlbChunk.read_header(data, byte_offset + GLB_FILE_HEADER_SIZE)
    if not GlbChunk(json_format, b"").is_json:
        return None

    start = byte_offset + GLB_FILE_HEADER_SIZE + GLB_CHUNK_HEADER_SIZE
    if start + json_length > len(data):
        return None
    return memoryview(data)[start : start + json_length]


class XvizData:
    """A frame buffer that is identified cheaply and decoded on demand."""

    def __init__(self, data: bytes | memoryview, registry: SchemaRegistry) -> None:
        self._data = data
        self.registry = registry
        self._message: DecodedMessage | None = None

    @property
    def buffer(self) -> bytes | memoryview:
        return self._data

    @cached_property
    def format(self) -> FrameFormat:
        return classify(self._data)

    @cached_property
    def type(self) -> XvizMessageType:
        """Message kind, read without decoding the payload where the format allows it."""
        if self.format is FrameFormat.CHUNKED_ENVELOPE:
            return XvizMessageType.from_tag(get_envelope_type(self._data, self.registry))
        if self.format is FrameFormat.CHUNKED_EXTENSION:
            json_chunk = extract_json_chunk(self._data)
            if json_chunk is None:
                raise FormatError("chunked frame has no readable JSON chunk")
            return _message_type_of(_payload_from_gltf(_load_json(json_chunk)))
        return self.message().type

    def message(self) -> DecodedMessage:
        if self._message is None:
            self._message = decode_frame(self._data, self.registry)
        return self._message
