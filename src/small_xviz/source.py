"""Read access to a finalized frame log: index, metadata and frames by time."""

import logging
from collections.abc import Iterator
from pathlib import Path

from small_xviz.index import FrameRange, IndexManifest, resolve_range
from small_xviz.reader import DecodedMessage, XvizData
from small_xviz.schema import SchemaRegistry
from small_xviz.sinks import FileSink, Sink
from small_xviz.well_known import (
    INDEX_FILENAME,
    METADATA_FRAME,
    FileExtension,
    frame_name,
)

logger = logging.getLogger(__name__)

_EXTENSIONS = (FileExtension.GLB, FileExtension.JSON)


class XvizBinaryDataSource:
    """Serves frames of a closed log stored in ``sink``.

    The index and metadata frames are loaded once; data frames are read on request.
    Instances hold no mutable state after construction and can be shared.
    """

    def __init__(self, sink: Sink, registry: SchemaRegistry) -> None:
        self.sink = sink
        self.registry = registry
        self.extension = next(
            (ext for ext in _EXTENSIONS if sink.has(frame_name(METADATA_FRAME, ext))),
            FileExtension.GLB,
        )
        self.index = IndexManifest.loads(sink.read_sync(INDEX_FILENAME))
        self.metadata = self.frame_by_index(METADATA_FRAME)
        logger.info(
            f"Loaded index with {len(self.index)} frames ({self.extension}) from {sink!r}"
        )

    def frame_range(
        self, start_time: float | None = None, end_time: float | None = None
    ) -> FrameRange:
        return resolve_range(self.index, start_time, end_time)

    def frame_by_index(self, frame: int) -> XvizData | None:
        """Return frame file ``frame`` (0 is the index, 1 the metadata), or None if absent."""
        name = frame_name(frame, self.extension)
        if not self.sink.has(name):
            return None
        return XvizData(self.sink.read_sync(name), self.registry)

    def frames(
        self, start_time: float | None = None, end_time: float | None = None
    ) -> Iterator[DecodedMessage]:
        """Decode the state updates covering a time window, in time order."""
        frame_range = self.frame_range(start_time, end_time)
        for entry in self.index.timing[frame_range.start : frame_range.end]:
            name = f"{entry.base_filename}.{self.extension}"
            yield XvizData(self.sink.read_sync(name), self.registry).message()


def make_binary_data_source(
    root: str | Path, registry: SchemaRegistry
) -> XvizBinaryDataSource | None:
    """Open the log stored in directory ``root`` if it holds a metadata frame."""
    sink = FileSink(root)
    for extension in _EXTENSIONS:
        name = frame_name(METADATA_FRAME, extension)
        logger.debug(f"Looking for {sink.root / name}")
        if sink.has(name):
            return XvizBinaryDataSource(sink, registry)
    return None
