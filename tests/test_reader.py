"""Tests for frame decoding and cheap type detection."""

import json
import struct

import pytest
from small_xviz import (
    FormatError,
    FrameFormat,
    GlbChunk,
    GlbContainer,
    UnknownEnvelopeTypeError,
    XvizData,
    XvizMessageType,
    decode_frame,
    extract_json_chunk,
    get_envelope_type,
    pack_pbe1,
    parse_glb_xviz,
    parse_json_xviz,
    parse_pbe1_xviz,
)
from small_xviz.schema import ENVELOPE, STATE_UPDATE
from small_xviz.well_known import CHUNK_TYPE_BIN, CHUNK_TYPE_JSON, MAGIC_GLTF


def _header(version: int, byte_length: int, chunk_length: int, chunk_type: int) -> bytes:
    return b"XVIZ" + struct.pack("<IIII", version, byte_length, chunk_length, chunk_type)


def _glb(gltf: dict, binary: bytes | None = None, magic: int | None = None) -> bytes:
    json_chunk = GlbChunk(CHUNK_TYPE_JSON, json.dumps(gltf).encode())
    binary_chunk = GlbChunk(CHUNK_TYPE_BIN, binary) if binary is not None else None
    if magic is None:
        return GlbContainer(json_chunk, binary_chunk).to_bytes()
    return GlbContainer(json_chunk, binary_chunk, magic).to_bytes()


def _pbe1(registry, tag: str, payload: bytes = b"") -> bytes:
    return pack_pbe1(registry.lookup_type(ENVELOPE).encode({"type": tag, "data": payload}))


STATE_UPDATE_MESSAGE = {"update_type": "snapshot", "updates": [{"timestamp": 1.0}]}


class TestPbe1:
    def test_parse(self, registry):
        payload = registry.lookup_type(STATE_UPDATE).encode(STATE_UPDATE_MESSAGE)
        message = parse_pbe1_xviz(_pbe1(registry, "xviz/state_update", payload), registry)

        assert message.type is XvizMessageType.STATE_UPDATE
        assert message.data == STATE_UPDATE_MESSAGE

    def test_envelope_type(self, registry):
        assert get_envelope_type(_pbe1(registry, "xviz/metadata"), registry) == "xviz/metadata"

    def test_bare_tag_is_accepted(self, registry):
        message = parse_pbe1_xviz(_pbe1(registry, "metadata"), registry)
        assert message.type is XvizMessageType.METADATA
        assert message.data == {}

    def test_unknown_type(self, registry):
        with pytest.raises(UnknownEnvelopeTypeError) as exc_info:
            parse_pbe1_xviz(_pbe1(registry, "xviz/transform_log_done"), registry)
        assert exc_info.value.tag == "xviz/transform_log_done"


class TestGlb:
    def test_application_data(self):
        data = _glb(
            {
                "asset": {"version": "2.0"},
                "xviz": {"type": "xviz/state_update", "data": STATE_UPDATE_MESSAGE},
            }
        )
        message = parse_glb_xviz(data)

        assert message.type is XvizMessageType.STATE_UPDATE
        assert message.data == STATE_UPDATE_MESSAGE

    def test_extension_fallback(self):
        """The payload is also found under the AVS_xviz extension."""
        data = _glb(
            {"extensions": {"AVS_xviz": {"type": "xviz/metadata", "data": {"version": "2.0"}}}},
            magic=MAGIC_GLTF,
        )
        message = parse_glb_xviz(data)

        assert message.type is XvizMessageType.METADATA
        assert message.data == {"version": "2.0"}

    def test_bare_message_payload(self):
        message = parse_glb_xviz(_glb({"xviz": STATE_UPDATE_MESSAGE}))
        assert message.type is XvizMessageType.STATE_UPDATE

    def test_no_payload(self):
        with pytest.raises(FormatError, match="no XVIZ payload"):
            parse_glb_xviz(_glb({"asset": {"version": "2.0"}}))

    def test_buffer_views_resolved(self):
        gltf = {
            "bufferViews": [{"buffer": 0, "byteOffset": 0, "byteLength": 3}],
            "xviz": {
                "type": "xviz/state_update",
                "data": {
                    "updates": [
                        {
                            "timestamp": 1,
                            "primitives": {"/cam": {"images": [{"data": "#/bufferViews/0"}]}},
                        }
                    ]
                },
            },
        }
        message = parse_glb_xviz(_glb(gltf, b"abc"))
        image = message.data["updates"][0]["primitives"]["/cam"]["images"][0]
        assert image["data"] == b"abc"

    def test_missing_buffer_view(self):
        gltf = {
            "bufferViews": [],
            "xviz": {"updates": [{"timestamp": 1, "data": "#/bufferViews/3"}]},
        }
        with pytest.raises(FormatError, match="missing buffer view"):
            parse_glb_xviz(_glb(gltf, b"abcd"))


class TestJson:
    def test_envelope(self):
        message = parse_json_xviz('{"type": "xviz/metadata", "data": {"version": "2.0"}}')
        assert message.type is XvizMessageType.METADATA
        assert message.data == {"version": "2.0"}

    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ({"updates": [{"timestamp": 1}]}, XvizMessageType.STATE_UPDATE),
            ({"version": "2.0"}, XvizMessageType.METADATA),
            ({"log_info": {"start_time": 0}}, XvizMessageType.METADATA),
        ],
    )
    def test_bare_message(self, payload, expected):
        message = parse_json_xviz(json.dumps(payload).encode())
        assert message.type is expected
        assert message.data == payload

    def test_unrecognized_object(self):
        with pytest.raises(UnknownEnvelopeTypeError):
            parse_json_xviz(b'{"foo": 1}')

    def test_invalid_json(self):
        with pytest.raises(FormatError, match="invalid JSON"):
            parse_json_xviz(b"{not json")

    def test_not_an_object(self):
        with pytest.raises(FormatError, match="expected a JSON object"):
            parse_json_xviz(b"[1, 2, 3]")


class TestDecodeFrame:
    def test_dispatches_by_format(self, registry):
        glb = _glb({"xviz": {"type": "xviz/metadata", "data": {}}})
        pbe1 = _pbe1(registry, "xviz/metadata")
        text = b'{"type": "xviz/metadata", "data": {}}'

        for data in (glb, pbe1, text):
            assert decode_frame(data, registry).type is XvizMessageType.METADATA

    def test_too_short(self, registry):
        with pytest.raises(FormatError, match="too short"):
            decode_frame(b"{}", registry)


class TestExtractJsonChunk:
    def test_returns_json_view(self):
        gltf = {"xviz": {"type": "xviz/metadata", "data": {}}}
        chunk = extract_json_chunk(_glb(gltf, b"\x00" * 16))

        assert chunk is not None
        assert json.loads(bytes(chunk)) == gltf

    def test_byte_offset(self):
        gltf = {"xviz": {}}
        chunk = extract_json_chunk(b"\xaa" * 8 + _glb(gltf), byte_offset=8)
        assert chunk is not None
        assert json.loads(bytes(chunk)) == gltf

    def test_too_short(self):
        assert extract_json_chunk(b"XVIZ\x02\x00\x00\x00") is None

    def test_wrong_version(self):
        data = _header(1, 28, 8, CHUNK_TYPE_JSON) + b"{}      "
        assert extract_json_chunk(data) is None

    def test_first_chunk_not_json(self):
        data = _header(2, 28, 8, CHUNK_TYPE_BIN) + b"\x00" * 8
        assert extract_json_chunk(data) is None

    def test_json_chunk_overruns_buffer(self):
        data = _header(2, 28, 80, CHUNK_TYPE_JSON) + b"{}      "
        assert extract_json_chunk(data) is None


class TestXvizData:
    def test_type_pbe1_without_payload_decode(self, registry, mocker):
        data = XvizData(_pbe1(registry, "xviz/state_update", b"\xff\xff"), registry)
        spy = mocker.spy(registry.lookup_type(STATE_UPDATE), "decode")

        assert data.format is FrameFormat.CHUNKED_ENVELOPE
        assert data.type is XvizMessageType.STATE_UPDATE
        spy.assert_not_called()

    def test_type_glb(self, registry):
        data = XvizData(_glb({"xviz": {"type": "xviz/metadata", "data": {}}}), registry)
        assert data.format is FrameFormat.CHUNKED_EXTENSION
        assert data.type is XvizMessageType.METADATA

    def test_type_text(self, registry):
        data = XvizData(b'{"updates": [{"timestamp": 2}]}', registry)
        assert data.format is FrameFormat.TEXT
        assert data.type is XvizMessageType.STATE_UPDATE

    def test_message_is_cached(self, registry):
        data = XvizData(b'{"version": "2.0"}', registry)
        assert data.message() is data.message()
        assert data.buffer == b'{"version": "2.0"}'
