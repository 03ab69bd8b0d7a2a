"""Protocol buffer schema registry for XVIZ frames.

The message descriptors are declared in code and loaded into a private descriptor
pool, so no generated ``_pb2`` modules are needed. ``load_protos()`` builds a new
``SchemaRegistry`` each time it is called; create one at startup and hand it to the
readers and writers that need it.
"""

from collections.abc import Mapping
from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.descriptor import Descriptor, FieldDescriptor
from google.protobuf.message import DecodeError, Message

from small_xviz.exceptions import FormatError, SchemaError
from small_xviz.well_known import XvizMessageType

PACKAGE = "xviz.v2"

ENVELOPE = f"{PACKAGE}.Envelope"
METADATA = f"{PACKAGE}.Metadata"
STATE_UPDATE = f"{PACKAGE}.StateUpdate"

SCHEMA_BY_TYPE = {
    XvizMessageType.METADATA: METADATA,
    XvizMessageType.STATE_UPDATE: STATE_UPDATE,
}

_F = descriptor_pb2.FieldDescriptorProto

_SCALAR_TYPES = {
    "double": _F.TYPE_DOUBLE,
    "float": _F.TYPE_FLOAT,
    "uint32": _F.TYPE_UINT32,
    "int32": _F.TYPE_INT32,
    "bool": _F.TYPE_BOOL,
    "string": _F.TYPE_STRING,
    "bytes": _F.TYPE_BYTES,
}

# (message name, [(field name, number, type, repeated)]); a type that is not a scalar
# name refers to a message, "map:<Message>" declares a string-keyed map and
# "enum:<Enum>" refers to an enum of the package.
_MESSAGES: list[tuple[str, list[tuple[str, int, str, bool]]]] = [
    ("Envelope", [("type", 1, "string", False), ("data", 2, "bytes", False)]),
    ("LogInfo", [("start_time", 1, "double", False), ("end_time", 2, "double", False)]),
    (
        "StreamMetadata",
        [
            ("source", 1, "string", False),
            ("category", 2, "string", False),
            ("coordinate", 3, "string", False),
            ("type", 4, "string", False),
            ("units", 5, "string", False),
        ],
    ),
    (
        "Metadata",
        [
            ("version", 1, "string", False),
            ("streams", 2, "map:StreamMetadata", False),
            ("log_info", 3, "LogInfo", False),
        ],
    ),
    (
        "MapOrigin",
        [
            ("longitude", 1, "double", False),
            ("latitude", 2, "double", False),
            ("altitude", 3, "double", False),
        ],
    ),
    (
        "Pose",
        [
            ("timestamp", 1, "double", False),
            ("map_origin", 2, "MapOrigin", False),
            ("position", 3, "double", True),
            ("orientation", 4, "double", True),
        ],
    ),
    ("PrimitiveBase", [("object_id", 1, "string", False)]),
    (
        "Point",
        [
            ("base", 1, "PrimitiveBase", False),
            ("points", 2, "double", True),
            ("colors", 3, "uint32", True),
        ],
    ),
    ("Polygon", [("base", 1, "PrimitiveBase", False), ("vertices", 2, "double", True)]),
    ("Polyline", [("base", 1, "PrimitiveBase", False), ("vertices", 2, "double", True)]),
    (
        "Circle",
        [
            ("base", 1, "PrimitiveBase", False),
            ("center", 2, "double", True),
            ("radius", 3, "double", False),
        ],
    ),
    (
        "Image",
        [
            ("base", 1, "PrimitiveBase", False),
            ("position", 2, "double", True),
            ("data", 3, "bytes", False),
            ("width_px", 4, "uint32", False),
            ("height_px", 5, "uint32", False),
        ],
    ),
    (
        "PrimitiveState",
        [
            ("polygons", 1, "Polygon", True),
            ("polylines", 2, "Polyline", True),
            ("circles", 3, "Circle", True),
            ("images", 4, "Image", True),
            ("points", 5, "Point", True),
        ],
    ),
    (
        "StreamSet",
        [
            ("timestamp", 1, "double", False),
            ("poses", 2, "map:Pose", False),
            ("primitives", 3, "map:PrimitiveState", False),
        ],
    ),
    (
        "StateUpdate",
        [
            ("update_type", 1, "enum:UpdateType", False),
            ("updates", 2, "StreamSet", True),
        ],
    ),
]

_ENUMS: dict[str, list[tuple[str, int]]] = {
    "UpdateType": [
        ("UPDATE_TYPE_INVALID", 0),
        ("SNAPSHOT", 1),
        ("INCREMENTAL", 2),
        ("COMPLETE_STATE", 3),
    ],
}


def _field(name: str, number: int, type_name: str, repeated: bool) -> _F:
    field = _F(
        name=name,
        number=number,
        label=_F.LABEL_REPEATED if repeated else _F.LABEL_OPTIONAL,
    )
    if type_name in _SCALAR_TYPES:
        field.type = _SCALAR_TYPES[type_name]
    elif type_name.startswith("enum:"):
        field.type = _F.TYPE_ENUM
        field.type_name = f".{PACKAGE}.{type_name.removeprefix('enum:')}"
    else:
        field.type = _F.TYPE_MESSAGE
        field.type_name = f".{PACKAGE}.{type_name}"
    return field


def _map_entry_name(field_name: str) -> str:
    return "".join(part.capitalize() for part in field_name.split("_")) + "Entry"


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(
        name="xviz/v2/frame.proto", package=PACKAGE, syntax="proto2"
    )

    for enum_name, values in _ENUMS.items():
        enum_proto = file_proto.enum_type.add(name=enum_name)
        for value_name, number in values:
            enum_proto.value.add(name=value_name, number=number)

    for message_name, fields in _MESSAGES:
        message_proto = file_proto.message_type.add(name=message_name)
        for name, number, type_name, repeated in fields:
            if not type_name.startswith("map:"):
                message_proto.field.append(_field(name, number, type_name, repeated))
                continue

            entry_name = _map_entry_name(name)
            entry = message_proto.nested_type.add(name=entry_name)
            entry.options.map_entry = True
            entry.field.append(_field("key", 1, "string", False))
            entry.field.append(_field("value", 2, type_name.removeprefix("map:"), False))

            map_field = _F(
                name=name,
                number=number,
                label=_F.LABEL_REPEATED,
                type=_F.TYPE_MESSAGE,
                type_name=f".{PACKAGE}.{message_name}.{entry_name}",
            )
            message_proto.field.append(map_field)

    return file_proto


def _is_map(field: FieldDescriptor) -> bool:
    return field.message_type is not None and field.message_type.GetOptions().map_entry


def _is_repeated(field: FieldDescriptor) -> bool:
    return field.label == FieldDescriptor.LABEL_REPEATED


def _to_scalar(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_ENUM:
        if isinstance(value, str):
            enum_value = field.enum_type.values_by_name.get(value.upper())
            if enum_value is None:
                raise SchemaError(f"{field.full_name}: unknown enum value {value!r}")
            return enum_value.number
        return int(value)
    if field.type in (FieldDescriptor.TYPE_DOUBLE, FieldDescriptor.TYPE_FLOAT):
        return float(value)
    if field.type == FieldDescriptor.TYPE_BOOL:
        return bool(value)
    if field.type == FieldDescriptor.TYPE_STRING:
        return str(value)
    if field.type == FieldDescriptor.TYPE_BYTES:
        return bytes(value)
    return int(value)


def _from_scalar(field: FieldDescriptor, value: Any) -> Any:
    if field.type == FieldDescriptor.TYPE_ENUM:
        enum_value = field.enum_type.values_by_number.get(value)
        return enum_value.name.lower() if enum_value is not None else value
    return value


def _fill(message: Message, obj: Mapping[str, Any]) -> None:
    descriptor = message.DESCRIPTOR
    if not isinstance(obj, Mapping):
        raise SchemaError(f"{descriptor.full_name}: expected an object, got {type(obj).__name__}")

    for key, value in obj.items():
        if value is None:
            continue
        field = descriptor.fields_by_name.get(key)
        if field is None:
            raise SchemaError(f"{descriptor.full_name} has no field {key!r}")

        if _is_map(field):
            target = getattr(message, key)
            value_field = field.message_type.fields_by_name["value"]
            for map_key, map_value in value.items():
                if value_field.type == FieldDescriptor.TYPE_MESSAGE:
                    _fill(target[map_key], map_value)
                else:
                    target[map_key] = _to_scalar(value_field, map_value)
        elif _is_repeated(field):
            target = getattr(message, key)
            if field.type == FieldDescriptor.TYPE_MESSAGE:
                for item in value:
                    _fill(target.add(), item)
            else:
                target.extend(_to_scalar(field, item) for item in value)
        elif field.type == FieldDescriptor.TYPE_MESSAGE:
            child = getattr(message, key)
            child.SetInParent()
            _fill(child, value)
        else:
            setattr(message, key, _to_scalar(field, value))


def _to_object(message: Message) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for field, value in message.ListFields():
        if _is_map(field):
            value_field = field.message_type.fields_by_name["value"]
            if value_field.type == FieldDescriptor.TYPE_MESSAGE:
                result[field.name] = {key: _to_object(item) for key, item in value.items()}
            else:
                result[field.name] = {
                    key: _from_scalar(value_field, item) for key, item in value.items()
                }
        elif _is_repeated(field):
            if field.type == FieldDescriptor.TYPE_MESSAGE:
                result[field.name] = [_to_object(item) for item in value]
            else:
                result[field.name] = [_from_scalar(field, item) for item in value]
        elif field.type == FieldDescriptor.TYPE_MESSAGE:
            result[field.name] = _to_object(value)
        else:
            result[field.name] = _from_scalar(field, value)
    return result


class MessageType:
    """Encoder/decoder pair for one message of the schema."""

    def __init__(self, descriptor: Descriptor) -> None:
        self.descriptor = descriptor
        self._message_class = message_factory.GetMessageClass(descriptor)

    @property
    def name(self) -> str:
        return self.descriptor.full_name

    def from_object(self, obj: Mapping[str, Any]) -> Message:
        """Build a protobuf message from a plain object."""
        message = self._message_class()
        try:
            _fill(message, obj)
        except (TypeError, ValueError, AttributeError) as exc:
            raise SchemaError(f"{self.name}: {exc}") from exc
        return message

    def to_object(self, message: Message) -> dict[str, Any]:
        """Convert a decoded message into a plain object, omitting unset fields."""
        return _to_object(message)

    def verify(self, obj: Mapping[str, Any]) -> str | None:
        """Return None if ``obj`` fits the schema, otherwise a description of the problem."""
        try:
            self.from_object(obj)
        except SchemaError as exc:
            return str(exc)
        return None

    def encode(self, obj: Mapping[str, Any]) -> bytes:
        return self.from_object(obj).SerializeToString()

    def decode(self, data: bytes | memoryview) -> Message:
        message = self._message_class()
        try:
            message.ParseFromString(bytes(data))
        except DecodeError as exc:
            raise FormatError(f"failed to decode {self.name}: {exc}") from exc
        return message

    def decode_object(self, data: bytes | memoryview) -> dict[str, Any]:
        return self.to_object(self.decode(data))

    def __repr__(self) -> str:
        return f"MessageType({self.name!r})"


class SchemaRegistry:
    """Named message types of one descriptor pool."""

    def __init__(self, pool: descriptor_pool.DescriptorPool) -> None:
        self._pool = pool
        self._types: dict[str, MessageType] = {}

    def lookup_type(self, name: str) -> MessageType:
        message_type = self._types.get(name)
        if message_type is None:
            try:
                descriptor = self._pool.FindMessageTypeByName(name)
            except KeyError:
                raise SchemaError(f"unknown message type {name!r}") from None
            message_type = MessageType(descriptor)
            self._types[name] = message_type
        return message_type


def load_protos() -> SchemaRegistry:
    """Build a registry holding the XVIZ frame messages."""
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(_build_file().SerializeToString())
    return SchemaRegistry(pool)
