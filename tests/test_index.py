"""Tests for the frame index manifest and time-range resolution."""

import json

import pytest
from small_xviz import (
    DEFAULT_START_FRAME_INDEX,
    DEFAULT_WINDOW,
    FrameRange,
    IndexManifest,
    ManifestError,
    TimingEntry,
    resolve_range,
)


@pytest.fixture
def manifest() -> IndexManifest:
    """Bounds [0, 100] and ten 10-unit frames back to back."""
    return IndexManifest(
        start_timestamp=0,
        end_timestamp=100,
        timing=[TimingEntry(i * 10, i * 10 + 10, i, f"{i + 2}-frame") for i in range(10)],
    )


class TestResolveRange:
    def test_no_arguments_spans_everything(self, manifest):
        assert resolve_range(manifest) == FrameRange(0, 10)

    def test_window_inside_bounds(self, manifest):
        assert resolve_range(manifest, 20, 50) == FrameRange(2, 4)

    def test_end_outside_bounds_uses_default_window(self, manifest):
        """An out-of-bounds end falls back to start + DEFAULT_WINDOW."""
        assert DEFAULT_WINDOW == 30
        assert resolve_range(manifest, 20, 200) == FrameRange(2, 4)

    def test_start_outside_bounds_uses_log_start(self, manifest):
        assert resolve_range(manifest, -5, 30) == FrameRange(0, 2)

    def test_start_only(self, manifest):
        assert resolve_range(manifest, 40) == FrameRange(4, 10)

    def test_start_after_last_entry(self, manifest):
        result = resolve_range(manifest, 95)
        assert result.start == DEFAULT_START_FRAME_INDEX

    def test_start_on_entry_boundary(self, manifest):
        assert resolve_range(manifest, 30, 30).start == 3

    def test_end_index_is_first_entry_ending_at_or_after(self, manifest):
        assert resolve_range(manifest, 0, 35) == FrameRange(0, 3)

    def test_ranges_are_monotonic(self, manifest):
        ends = [resolve_range(manifest, 0, end).end for end in range(0, 101, 5)]
        assert ends == sorted(ends)

    def test_bounds_from_entries(self):
        """Without declared bounds the first and last entries are used."""
        manifest = IndexManifest(timing=[TimingEntry(100, 100, 0, "2-frame")])
        assert manifest.bounds == (100, 100)
        assert resolve_range(manifest) == FrameRange(0, 1)

    def test_empty_manifest(self):
        manifest = IndexManifest()
        assert manifest.bounds is None
        assert resolve_range(manifest, 1, 2) == FrameRange(DEFAULT_START_FRAME_INDEX, 0)


class TestManifest:
    def test_dumps_omits_missing_bounds(self):
        manifest = IndexManifest()
        manifest.append(TimingEntry(100, 100, 0, "2-frame"))
        assert json.loads(manifest.dumps()) == {"timing": [[100, 100, 0, "2-frame"]]}

    def test_append_widens_declared_bounds(self):
        manifest = IndexManifest(start_timestamp=1, end_timestamp=2)
        manifest.append(TimingEntry(0.5, 100, 0, "2-frame"))
        assert (manifest.start_timestamp, manifest.end_timestamp) == (0.5, 100)

    def test_append_keeps_undeclared_bounds_absent(self):
        manifest = IndexManifest(start_timestamp=1)
        manifest.append(TimingEntry(5, 9, 0, "2-frame"))
        assert manifest.start_timestamp == 1
        assert manifest.end_timestamp is None
        assert manifest.bounds == (1, 9)

    def test_set_bounds_encloses_existing_entries(self):
        manifest = IndexManifest()
        manifest.append(TimingEntry(10, 20, 0, "2-frame"))
        manifest.set_bounds(12, 15)
        assert manifest.bounds == (10, 20)

    def test_set_bounds_ignores_missing_values(self):
        manifest = IndexManifest()
        manifest.set_bounds(None, 5)
        assert manifest.start_timestamp is None
        assert manifest.end_timestamp == 5

    def test_dumps_with_bounds(self, manifest):
        data = json.loads(manifest.dumps())
        assert data["start_timestamp"] == 0
        assert data["end_timestamp"] == 100
        assert data["timing"][2] == [20, 30, 2, "4-frame"]

    def test_loads(self, manifest):
        loaded = IndexManifest.loads(manifest.dumps())
        assert loaded == manifest
        assert len(loaded) == 10
        assert [entry.frame_index for entry in loaded] == list(range(10))

    def test_loads_accepts_str(self):
        loaded = IndexManifest.loads('{"timing": [[1.5, 2.5, 0, "2-frame"]]}')
        assert loaded.timing == [TimingEntry(1.5, 2.5, 0, "2-frame")]
        assert loaded.start_timestamp is None

    @pytest.mark.parametrize(
        ("data", "match"),
        [
            ("{broken", "not valid JSON"),
            ("[1, 2]", "must be a JSON object"),
            ('{"timing": {}}', "must be a list"),
            ('{"timing": [[1, 2, 0]]}', "4 fields"),
        ],
    )
    def test_loads_rejects(self, data, match):
        with pytest.raises(ManifestError, match=match):
            IndexManifest.loads(data)
