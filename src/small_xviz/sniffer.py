"""Frame format detection from the leading magic word."""

from enum import Enum

from small_xviz.records import MAGIC_STRUCT
from small_xviz.well_known import MAGIC_GLTF, MAGIC_PBE1, MAGIC_SIZE, MAGIC_XVIZ


class FrameFormat(Enum):
    TEXT = "text"
    CHUNKED_EXTENSION = "chunked_extension"
    CHUNKED_ENVELOPE = "chunked_envelope"
    UNRECOGNIZED = "unrecognized"


_MAGIC_TO_FORMAT: dict[int, FrameFormat] = {
    MAGIC_XVIZ: FrameFormat.CHUNKED_EXTENSION,
    MAGIC_GLTF: FrameFormat.CHUNKED_EXTENSION,
    MAGIC_PBE1: FrameFormat.CHUNKED_ENVELOPE,
}


def read_magic(data: bytes | bytearray | memoryview) -> int | None:
    """Return the big-endian magic word at offset 0, or None if the buffer is too short."""
    if len(data) < MAGIC_SIZE:
        return None
    return MAGIC_STRUCT.unpack_from(data, 0)[0]


def classify(data: bytes | bytearray | memoryview) -> FrameFormat:
    """Classify a frame buffer by its first four bytes.

    Only the magic word is inspected. Anything that is not a known binary magic is
    treated as text; whether it is valid JSON is left to the decoder.
    """
    magic = read_magic(data)
    if magic is None:
        return FrameFormat.UNRECOGNIZED
    return _MAGIC_TO_FORMAT.get(magic, FrameFormat.TEXT)


def is_glb_xviz(data: bytes | bytearray | memoryview) -> bool:
    return classify(data) is FrameFormat.CHUNKED_EXTENSION


def is_pbe1_xviz(data: bytes | bytearray | memoryview) -> bool:
    return classify(data) is FrameFormat.CHUNKED_ENVELOPE


def is_binary_xviz(data: bytes | bytearray | memoryview) -> bool:
    return classify(data) in (FrameFormat.CHUNKED_EXTENSION, FrameFormat.CHUNKED_ENVELOPE)
