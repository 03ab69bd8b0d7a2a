import io
import struct
from dataclasses import dataclass, field
from typing import ClassVar, Protocol

from small_xviz.exceptions import (
    FormatError,
    InvalidLengthError,
    InvalidMagicError,
    InvalidVersionError,
    TruncatedContainerError,
)
from small_xviz.well_known import (
    CHUNK_TYPE_BIN,
    CHUNK_TYPE_JSON,
    MAGIC_PBE1,
    MAGIC_SIZE,
    MAGIC_XVIZ,
)


class WritableBuffer(Protocol):
    """Protocol for objects that can receive binary data."""

    def write(self, data: bytes | bytearray | memoryview, /) -> int:
        """Write data to the buffer and return bytes written."""
        ...


MAGIC_STRUCT = struct.Struct(">I")

GLB_VERSION = 2
GLB_FILE_HEADER_SIZE = 12
GLB_CHUNK_HEADER_SIZE = 8
# File header plus the header of the mandatory JSON chunk
GLB_MIN_BYTE_LENGTH = GLB_FILE_HEADER_SIZE + GLB_CHUNK_HEADER_SIZE


def _padding(length: int) -> int:
    return (4 - length % 4) % 4


@dataclass(slots=True)
class GlbHeader:
    """Fixed 12-byte header of a chunked binary container.

    Attributes:
        magic: [4 bytes, big-endian] Container magic ("XVIZ" or "glTF")
        version: [4 bytes] Container version, always 2
        byte_length: [4 bytes] Total length of the container including this header
    """

    _REST_STRUCT: ClassVar[struct.Struct] = struct.Struct("<II")

    magic: int
    version: int
    byte_length: int

    def write_record_to(self, out: WritableBuffer) -> int:
        record = MAGIC_STRUCT.pack(self.magic) + self._REST_STRUCT.pack(
            self.version, self.byte_length
        )
        out.write(record)
        return len(record)

    @classmethod
    def read(cls, data: bytes | memoryview, offset: int = 0) -> "GlbHeader":
        if len(data) - offset < GLB_FILE_HEADER_SIZE:
            raise TruncatedContainerError(GLB_FILE_HEADER_SIZE, len(data) - offset)
        (magic,) = MAGIC_STRUCT.unpack_from(data, offset)
        version, byte_length = cls._REST_STRUCT.unpack_from(data, offset + MAGIC_SIZE)
        return cls(magic, version, byte_length)

    def validate(self, available: int) -> None:
        """Reject headers that cannot describe a JSON-first container of ``available`` bytes."""
        if self.version != GLB_VERSION:
            raise InvalidVersionError(self.version)
        if self.byte_length < GLB_MIN_BYTE_LENGTH:
            raise InvalidLengthError(self.byte_length, GLB_MIN_BYTE_LENGTH)
        if self.byte_length > available:
            raise TruncatedContainerError(self.byte_length, available)


@dataclass(slots=True)
class GlbChunk:
    """Length-prefixed chunk: <length (4 bytes)><type (4 bytes)><data, 4-byte aligned>."""

    _HEADER_STRUCT: ClassVar[struct.Struct] = struct.Struct("<II")

    chunk_type: int
    data: bytes | memoryview = field(repr=False)

    @property
    def is_json(self) -> bool:
        # Zero is accepted as the legacy JSON marker
        return self.chunk_type in (CHUNK_TYPE_JSON, 0)

    @property
    def padded_length(self) -> int:
        return len(self.data) + _padding(len(self.data))

    def write_record_to(self, out: WritableBuffer) -> int:
        pad = b" " if self.chunk_type == CHUNK_TYPE_JSON else b"\x00"
        payload = bytes(self.data) + pad * _padding(len(self.data))
        record = self._HEADER_STRUCT.pack(len(payload), self.chunk_type) + payload
        out.write(record)
        return len(record)

    @classmethod
    def read_header(cls, data: bytes | memoryview, offset: int) -> tuple[int, int]:
        """Return (chunk_length, chunk_type) of the chunk header at ``offset``."""
        return cls._HEADER_STRUCT.unpack_from(data, offset)

    @classmethod
    def read(cls, data: bytes | memoryview, offset: int) -> tuple["GlbChunk", int]:
        """Read the chunk at ``offset`` and return it with the offset of the next chunk."""
        if len(data) - offset < GLB_CHUNK_HEADER_SIZE:
            raise TruncatedContainerError(offset + GLB_CHUNK_HEADER_SIZE, len(data))
        length, chunk_type = cls.read_header(data, offset)
        start = offset + GLB_CHUNK_HEADER_SIZE
        end = start + length
        if end > len(data):
            raise TruncatedContainerError(end, len(data))
        return cls(chunk_type, memoryview(data)[start:end]), end


@dataclass(slots=True)
class GlbContainer:
    """A complete chunked binary container: header, JSON chunk and optional binary chunk."""

    json_chunk: GlbChunk
    binary_chunk: GlbChunk | None = None
    magic: int = MAGIC_XVIZ

    def to_bytes(self) -> bytes:
        chunks = [self.json_chunk]
        if self.binary_chunk is not None:
            chunks.append(self.binary_chunk)
        byte_length = GLB_FILE_HEADER_SIZE + sum(
            GLB_CHUNK_HEADER_SIZE + chunk.padded_length for chunk in chunks
        )
        buffer = io.BytesIO()
        GlbHeader(self.magic, GLB_VERSION, byte_length).write_record_to(buffer)
        for chunk in chunks:
            chunk.write_record_to(buffer)
        return buffer.getvalue()

    @classmethod
    def read(cls, data: bytes | memoryview) -> "GlbContainer":
        header = GlbHeader.read(data)
        header.validate(len(data))
        view = memoryview(data)[: header.byte_length]

        json_chunk, offset = GlbChunk.read(view, GLB_FILE_HEADER_SIZE)
        if not json_chunk.is_json:
            raise FormatError(
                f"first chunk must be JSON, found chunk type 0x{json_chunk.chunk_type:08x}"
            )

        binary_chunk = None
        if offset + GLB_CHUNK_HEADER_SIZE <= header.byte_length:
            binary_chunk, _ = GlbChunk.read(view, offset)
            if binary_chunk.chunk_type != CHUNK_TYPE_BIN:
                raise FormatError(
                    f"second chunk must be BIN, found chunk type 0x{binary_chunk.chunk_type:08x}"
                )
        return cls(json_chunk, binary_chunk, header.magic)


def pack_pbe1(envelope: bytes) -> bytes:
    """Prefix protobuf envelope bytes with the PBE1 magic."""
    return MAGIC_STRUCT.pack(MAGIC_PBE1) + envelope


def unpack_pbe1(data: bytes | memoryview) -> memoryview:
    """Return the envelope bytes that follow the PBE1 magic."""
    if len(data) < MAGIC_SIZE:
        raise TruncatedContainerError(MAGIC_SIZE, len(data))
    (magic,) = MAGIC_STRUCT.unpack_from(data, 0)
    if magic != MAGIC_PBE1:
        raise InvalidMagicError(bytes(data[:MAGIC_SIZE]))
    return memoryview(data)[MAGIC_SIZE:]
