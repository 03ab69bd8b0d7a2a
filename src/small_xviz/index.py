"""Frame index manifest and time-range lookup.

The manifest (``0-frame.json``) lists one timing entry per message frame::

    {"start_timestamp": 0, "end_timestamp": 100,
     "timing": [[start, end, frame_index, "<n>-frame"], ...]}

Entries are appended in write order, which is also ascending time order.
"""

import bisect
import json
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from small_xviz.exceptions import ManifestError

# Start index used when no entry begins at or after the requested start.
# Frames 0 and 1 hold the index and the metadata, so 2 is the first data frame.
DEFAULT_START_FRAME_INDEX = 2
# Window length used when the requested end time is outside the log bounds
DEFAULT_WINDOW = 30


@dataclass(frozen=True, slots=True)
class TimingEntry:
    """One manifest row mapping a time span to a frame."""

    start_timestamp: float
    end_timestamp: float
    frame_index: int
    base_filename: str

    def to_list(self) -> list[Any]:
        return [self.start_timestamp, self.end_timestamp, self.frame_index, self.base_filename]

    @classmethod
    def from_list(cls, row: Any) -> "TimingEntry":
        if not isinstance(row, list | tuple) or len(row) != 4:
            raise ManifestError(f"timing entry must have 4 fields, got {row!r}")
        start, end, frame_index, base_filename = row
        return cls(start, end, frame_index, base_filename)


@dataclass(frozen=True, slots=True)
class FrameRange:
    """Half-open span ``[start, end)`` of timing entry indices."""

    start: int
    end: int


@dataclass(slots=True)
class IndexManifest:
    start_timestamp: float | None = None
    end_timestamp: float | None = None
    timing: list[TimingEntry] = field(default_factory=list)

    def append(self, entry: TimingEntry) -> None:
        self.timing.append(entry)
        self._widen(entry)

    def set_bounds(self, start: float | None, end: float | None) -> None:
        """Declare log bounds; they are widened to enclose entries already appended."""
        if start is not None:
            self.start_timestamp = start
        if end is not None:
            self.end_timestamp = end
        for entry in self.timing:
            self._widen(entry)

    def _widen(self, entry: TimingEntry) -> None:
        # Undeclared bounds stay undeclared and are derived on read
        if self.start_timestamp is not None:
            self.start_timestamp = min(self.start_timestamp, entry.start_timestamp)
        if self.end_timestamp is not None:
            self.end_timestamp = max(self.end_timestamp, entry.end_timestamp)

    def __len__(self) -> int:
        return len(self.timing)

    def __iter__(self) -> Iterator[TimingEntry]:
        return iter(self.timing)

    @property
    def bounds(self) -> tuple[float, float] | None:
        """Log time bounds, falling back to the first and last entries when not declared."""
        start = self.start_timestamp
        end = self.end_timestamp
        if self.timing:
            if start is None:
                start = self.timing[0].start_timestamp
            if end is None:
                end = self.timing[-1].end_timestamp
        if start is None or end is None:
            return None
        return start, end

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.start_timestamp is not None:
            result["start_timestamp"] = self.start_timestamp
        if self.end_timestamp is not None:
            result["end_timestamp"] = self.end_timestamp
        result["timing"] = [entry.to_list() for entry in self.timing]
        return result

    def dumps(self) -> bytes:
        return json.dumps(self.to_dict()).encode()

    @classmethod
    def from_dict(cls, data: Any) -> "IndexManifest":
        if not isinstance(data, Mapping):
            raise ManifestError(f"manifest must be a JSON object, got {type(data).__name__}")
        timing = data.get("timing", [])
        if not isinstance(timing, list):
            raise ManifestError("manifest 'timing' must be a list")
        return cls(
            start_timestamp=data.get("start_timestamp"),
            end_timestamp=data.get("end_timestamp"),
            timing=[TimingEntry.from_list(row) for row in timing],
        )

    @classmethod
    def loads(cls, data: bytes | str) -> "IndexManifest":
        try:
            return cls.from_dict(json.loads(data))
        except json.JSONDecodeError as exc:
            raise ManifestError(f"manifest is not valid JSON: {exc}") from exc


def resolve_range(
    manifest: IndexManifest,
    start_time: float | None = None,
    end_time: float | None = None,
) -> FrameRange:
    """Resolve a time window to the span of timing entries covering it.

    Args:
        manifest: Loaded frame index
        start_time: Requested start, ignored when outside the log bounds
        end_time: Requested end; when outside the bounds the window is
            ``DEFAULT_WINDOW`` long from the effective start. When omitted the
            range extends to the last frame.

    Returns:
        FrameRange whose ``start`` is the first entry starting at or after the
        effective start (``DEFAULT_START_FRAME_INDEX`` if none) and whose ``end`` is
        the first entry ending at or after the effective end (the entry count if none).
    """
    timing = manifest.timing
    bounds = manifest.bounds
    if bounds is None:
        return FrameRange(DEFAULT_START_FRAME_INDEX, len(timing))
    log_start, log_end = bounds

    start = log_start
    if start_time is not None and log_start <= start_time <= log_end:
        start = start_time

    start_index = bisect.bisect_left(timing, start, key=lambda entry: entry.start_timestamp)
    if start_index == len(timing):
        start_index = DEFAULT_START_FRAME_INDEX

    if end_time is None:
        return FrameRange(start_index, len(timing))

    end = end_time if log_start <= end_time <= log_end else start + DEFAULT_WINDOW
    end_index = bisect.bisect_left(timing, end, key=lambda entry: entry.end_timestamp)
    return FrameRange(start_index, end_index)
