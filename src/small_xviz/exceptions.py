class XvizError(Exception):
    pass


class FormatError(XvizError):
    pass


class InvalidMagicError(FormatError):
    def __init__(self, bad_magic: bytes | memoryview) -> None:
        super().__init__(
            f"not a valid XVIZ frame, invalid magic: {bytes(bad_magic).decode('utf-8', 'replace')}"
        )


class InvalidVersionError(FormatError):
    def __init__(self, version: int) -> None:
        super().__init__(f"unsupported container version {version}, expected 2")


class InvalidLengthError(FormatError):
    def __init__(self, byte_length: int, minimum: int) -> None:
        super().__init__(f"container declares {byte_length} bytes, minimum is {minimum}")


class TruncatedContainerError(FormatError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"container declares {expected} bytes but only {actual} are available")


class UnknownEnvelopeTypeError(XvizError):
    def __init__(self, tag: str) -> None:
        self.tag = tag
        super().__init__(f"unknown message type {tag!r}")


class ValidationError(XvizError):
    pass


class MissingUpdatesError(ValidationError):
    def __init__(self) -> None:
        super().__init__("Cannot find timestamp: message has no updates")


class MissingTimestampError(ValidationError):
    def __init__(self) -> None:
        super().__init__("XVIZ updates did not contain a valid timestamp")


class WriterClosedError(XvizError):
    def __init__(self) -> None:
        super().__init__("Cannot use this Writer after .close()")


class SchemaError(XvizError):
    pass


class ManifestError(XvizError):
    pass
