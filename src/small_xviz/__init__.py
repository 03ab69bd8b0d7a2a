"""Small-xviz: A lightweight Python library for reading and writing XVIZ frame logs.

A log is a directory of individually addressable frames (metadata and state
updates), each stored as JSON, as a chunked binary container or as a protobuf
envelope, plus a JSON index mapping time spans to frames.
"""

from small_xviz.builders import PoseBuilder
from small_xviz.exceptions import (
    FormatError,
    InvalidLengthError,
    InvalidMagicError,
    InvalidVersionError,
    ManifestError,
    MissingTimestampError,
    MissingUpdatesError,
    SchemaError,
    TruncatedContainerError,
    UnknownEnvelopeTypeError,
    ValidationError,
    WriterClosedError,
    XvizError,
)
from small_xviz.index import (
    DEFAULT_START_FRAME_INDEX,
    DEFAULT_WINDOW,
    FrameRange,
    IndexManifest,
    TimingEntry,
    resolve_range,
)
from small_xviz.normalize import normalize, unflatten
from small_xviz.reader import (
    DecodedMessage,
    XvizData,
    decode_frame,
    extract_json_chunk,
    get_envelope_type,
    parse_glb_xviz,
    parse_json_xviz,
    parse_pbe1_xviz,
)
from small_xviz.records import GlbChunk, GlbContainer, GlbHeader, pack_pbe1, unpack_pbe1
from small_xviz.schema import MessageType, SchemaRegistry, load_protos
from small_xviz.sinks import FileSink, MemorySink, Sink
from small_xviz.sniffer import FrameFormat, classify, is_binary_xviz, is_glb_xviz, is_pbe1_xviz
from small_xviz.source import XvizBinaryDataSource, make_binary_data_source
from small_xviz.well_known import (
    INDEX_FILENAME,
    MAGIC_GLTF,
    MAGIC_PBE1,
    MAGIC_XVIZ,
    FileExtension,
    XvizMessageType,
    frame_name,
)
from small_xviz.writer import BinaryFormat, XvizBinaryWriter, XvizJsonWriter, XvizWriterBase

__all__ = [
    "DEFAULT_START_FRAME_INDEX",
    "DEFAULT_WINDOW",
    "INDEX_FILENAME",
    "MAGIC_GLTF",
    "MAGIC_PBE1",
    "MAGIC_XVIZ",
    "BinaryFormat",
    "DecodedMessage",
    "FileExtension",
    "FileSink",
    "FormatError",
    "FrameFormat",
    "FrameRange",
    "GlbChunk",
    "GlbContainer",
    "GlbHeader",
    "IndexManifest",
    "InvalidLengthError",
    "InvalidMagicError",
    "InvalidVersionError",
    "ManifestError",
    "MemorySink",
    "MessageType",
    "MissingTimestampError",
    "MissingUpdatesError",
    "PoseBuilder",
    "SchemaError",
    "SchemaRegistry",
    "Sink",
    "TimingEntry",
    "TruncatedContainerError",
    "UnknownEnvelopeTypeError",
    "ValidationError",
    "WriterClosedError",
    "XvizBinaryDataSource",
    "XvizBinaryWriter",
    "XvizData",
    "XvizError",
    "XvizJsonWriter",
    "XvizMessageType",
    "XvizWriterBase",
    "classify",
    "decode_frame",
    "extract_json_chunk",
    "frame_name",
    "get_envelope_type",
    "is_binary_xviz",
    "is_glb_xviz",
    "is_pbe1_xviz",
    "load_protos",
    "make_binary_data_source",
    "normalize",
    "pack_pbe1",
    "parse_glb_xviz",
    "parse_json_xviz",
    "parse_pbe1_xviz",
    "resolve_range",
    "unflatten",
    "unpack_pbe1",
]
