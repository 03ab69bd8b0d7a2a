from enum import Enum

from small_xviz.exceptions import UnknownEnvelopeTypeError

# Magic words, read as big-endian uint32 at offset 0
MAGIC_XVIZ = 0x5856495A  # "XVIZ"
MAGIC_GLTF = 0x676C5446  # "glTF"
MAGIC_PBE1 = 0x50424531  # "PBE1"
MAGIC_SIZE = 4

# Chunk format tags, little-endian uint32
CHUNK_TYPE_JSON = 0x4E4F534A  # "JSON"
CHUNK_TYPE_BIN = 0x004E4942  # "BIN\0"

# Key holding the message envelope inside the JSON chunk
APPLICATION_DATA_KEY = "xviz"
GLTF_EXTENSION = "AVS_xviz"

ENVELOPE_NAMESPACE = "xviz/"

INDEX_FRAME = 0
METADATA_FRAME = 1
FIRST_MESSAGE_FRAME = 2
FRAME_SUFFIX = "-frame"


class XvizMessageType(str, Enum):
    """Closed set of message kinds a frame may hold."""

    METADATA = "metadata"
    STATE_UPDATE = "state_update"

    @property
    def tag(self) -> str:
        """Namespaced envelope tag written on the wire."""
        return f"{ENVELOPE_NAMESPACE}{self.value}"

    @classmethod
    def from_tag(cls, tag: str) -> "XvizMessageType":
        """Resolve an envelope tag, with or without the namespace prefix."""
        name = tag.removeprefix(ENVELOPE_NAMESPACE) if isinstance(tag, str) else tag
        try:
            return cls(name)
        except ValueError:
            raise UnknownEnvelopeTypeError(tag) from None


class FileExtension:
    """Well-known frame file extensions."""

    JSON = "json"
    GLB = "glb"


def frame_base_name(frame: int) -> str:
    return f"{frame}{FRAME_SUFFIX}"


def frame_name(frame: int, extension: str) -> str:
    """Filename of frame ``frame``; frame 0 is always the JSON index."""
    if frame == INDEX_FRAME:
        return f"{frame_base_name(INDEX_FRAME)}.{FileExtension.JSON}"
    return f"{frame_base_name(frame)}.{extension}"


INDEX_FILENAME = frame_name(INDEX_FRAME, FileExtension.JSON)
