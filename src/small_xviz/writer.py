import array
import base64
import io
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from types import TracebackType
from typing import Any, ClassVar

import numpy as np

from small_xviz.exceptions import MissingTimestampError, MissingUpdatesError, WriterClosedError
from small_xviz.index import IndexManifest, TimingEntry
from small_xviz.normalize import normalize
from small_xviz.records import GlbChunk, GlbContainer, pack_pbe1
from small_xviz.schema import ENVELOPE, SCHEMA_BY_TYPE, SchemaRegistry, load_protos
from small_xviz.sinks import Sink
from small_xviz.well_known import (
    APPLICATION_DATA_KEY,
    CHUNK_TYPE_BIN,
    CHUNK_TYPE_JSON,
    FIRST_MESSAGE_FRAME,
    INDEX_FILENAME,
    MAGIC_XVIZ,
    METADATA_FRAME,
    FileExtension,
    XvizMessageType,
    frame_base_name,
    frame_name,
)

logger = logging.getLogger(__name__)

GENERATOR = "small-xviz"


class BinaryFormat(Enum):
    """Container written by XvizBinaryWriter."""

    PBE1 = "pbe1"
    GLB = "glb"


def _plain(value: Any) -> Any:
    """Unwrap numpy scalars so index values stay JSON serializable."""
    return value.item() if isinstance(value, np.generic) else value


def message_time_span(message: Mapping[str, Any]) -> tuple[float, float]:
    """Return (start, end) timestamps of a state update.

    Raises:
        MissingUpdatesError: if the message has no updates
        MissingTimestampError: if the first update carries no timestamp
    """
    updates = message.get("updates") if isinstance(message, Mapping) else None
    if not updates:
        raise MissingUpdatesError()

    first = updates[0]
    start = first.get("timestamp") if isinstance(first, Mapping) else None
    if start is None:
        raise MissingTimestampError()

    last = updates[-1]
    end = last.get("timestamp") if isinstance(last, Mapping) else None
    start = _plain(start)
    return start, start if end is None else _plain(end)


class XvizWriterBase(ABC):
    """Writes metadata and state update frames to a sink and keeps the frame index.

    Metadata goes to frame 1, message ``i`` to frame ``i + 2`` and the index to
    frame 0 when the writer is closed. A closed writer rejects all writes.
    """

    extension: ClassVar[str]

    def __init__(self, sink: Sink, *, registry: SchemaRegistry | None = None) -> None:
        self.sink = sink
        self.registry = registry if registry is not None else load_protos()
        self.manifest = IndexManifest()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise WriterClosedError()

    def write_metadata(self, metadata: Mapping[str, Any]) -> None:
        self._check_open()

        log_info = metadata.get("log_info") or {}
        self.manifest.set_bounds(
            _plain(log_info.get("start_time")), _plain(log_info.get("end_time"))
        )

        self._write_frame(METADATA_FRAME, XvizMessageType.METADATA, metadata)

    def write_message(self, frame_index: int, message: Mapping[str, Any]) -> None:
        self._check_open()
        start, end = message_time_span(message)
        if self.manifest.timing and start < self.manifest.timing[-1].start_timestamp:
            logger.warning(
                f"Message {frame_index} starts at {start}, before the previous message "
                f"({self.manifest.timing[-1].start_timestamp}); time range lookups assume "
                "ascending order"
            )

        frame = frame_index + FIRST_MESSAGE_FRAME
        self._write_frame(frame, XvizMessageType.STATE_UPDATE, message)
        self.manifest.append(TimingEntry(start, end, frame_index, frame_base_name(frame)))

    def _write_frame(
        self, frame: int, message_type: XvizMessageType, message: Mapping[str, Any]
    ) -> None:
        data = self.encode(message_type, normalize(message))
        name = frame_name(frame, self.extension)
        self.sink.write(name, data)
        logger.debug(f"Wrote {message_type.value} frame {name} ({len(data)} bytes)")

    @abstractmethod
    def encode(self, message_type: XvizMessageType, message: Mapping[str, Any]) -> bytes:
        """Serialize an already normalized message into frame bytes."""
        ...

    def close(self) -> None:
        """Write the frame index and close the sink. Calling close() again does nothing."""
        if self._closed:
            return

        self.sink.write(INDEX_FILENAME, self.manifest.dumps())
        self.sink.close()
        self._closed = True
        logger.debug(f"Closed writer, index holds {len(self.manifest)} frames")

    def __enter__(self) -> "XvizWriterBase":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, array.array):
        return value.tolist()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class XvizJsonWriter(XvizWriterBase):
    """Writes frames as JSON envelopes; binary payloads become base64 strings."""

    extension = FileExtension.JSON

    def encode(self, message_type: XvizMessageType, message: Mapping[str, Any]) -> bytes:
        envelope = {"type": message_type.tag, "data": message}
        return json.dumps(envelope, default=_json_default).encode()


class _BinaryChunkBuilder:
    """Moves binary payloads into the binary chunk, leaving buffer view references."""

    def __init__(self) -> None:
        self.buffer = io.BytesIO()
        self.buffer_views: list[dict[str, int]] = []

    def add(self, data: bytes) -> str:
        offset = self.buffer.tell()
        self.buffer.write(data)
        # Keep every view 4-byte aligned
        self.buffer.write(b"\x00" * ((4 - len(data) % 4) % 4))
        self.buffer_views.append({"buffer": 0, "byteOffset": offset, "byteLength": len(data)})
        return f"#/bufferViews/{len(self.buffer_views) - 1}"

    def extract(self, value: Any) -> Any:
        if isinstance(value, bytes | bytearray | memoryview):
            return self.add(bytes(value))
        if isinstance(value, np.ndarray | array.array):
            return self.add(value.tobytes())
        if isinstance(value, np.generic):
            return value.item()
        if isinstance(value, Mapping):
            return {key: self.extract(item) for key, item in value.items()}
        if isinstance(value, list | tuple):
            return [self.extract(item) for item in value]
        return value


class XvizBinaryWriter(XvizWriterBase):
    """Writes ``.glb`` frames, as protobuf envelopes (PBE1) or chunked containers (GLB)."""

    extension = FileExtension.GLB

    def __init__(
        self,
        sink: Sink,
        *,
        registry: SchemaRegistry | None = None,
        binary_format: BinaryFormat = BinaryFormat.PBE1,
    ) -> None:
        super().__init__(sink, registry=registry)
        self.binary_format = binary_format

    def encode(self, message_type: XvizMessageType, message: Mapping[str, Any]) -> bytes:
        if self.binary_format is BinaryFormat.GLB:
            return self._encode_glb(message_type, message)
        return self._encode_pbe1(message_type, message)

    def _encode_pbe1(self, message_type: XvizMessageType, message: Mapping[str, Any]) -> bytes:
        payload = self.registry.lookup_type(SCHEMA_BY_TYPE[message_type]).encode(message)
        envelope = self.registry.lookup_type(ENVELOPE).encode(
            {"type": message_type.tag, "data": payload}
        )
        return pack_pbe1(envelope)

    def _encode_glb(self, message_type: XvizMessageType, message: Mapping[str, Any]) -> bytes:
        binary = _BinaryChunkBuilder()
        gltf: dict[str, Any] = {
            "asset": {"version": "2.0", "generator": GENERATOR},
            APPLICATION_DATA_KEY: {"type": message_type.tag, "data": binary.extract(message)},
        }

        binary_chunk = None
        if binary.buffer_views:
            data = binary.buffer.getvalue()
            gltf["buffers"] = [{"byteLength": len(data)}]
            gltf["bufferViews"] = binary.buffer_views
            binary_chunk = GlbChunk(CHUNK_TYPE_BIN, data)

        json_chunk = GlbChunk(CHUNK_TYPE_JSON, json.dumps(gltf, separators=(",", ":")).encode())
        return GlbContainer(json_chunk, binary_chunk, MAGIC_XVIZ).to_bytes()
