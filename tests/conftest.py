"""Shared pytest fixtures for small-xviz tests."""

from typing import Any

import pytest
from small_xviz import MemorySink, SchemaRegistry, load_protos


@pytest.fixture(scope="session")
def registry() -> SchemaRegistry:
    """Schema registry shared by the whole session."""
    return load_protos()


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def sample_metadata() -> dict[str, Any]:
    """Metadata declaring log bounds [0, 100] and two streams."""
    return {
        "version": "2.0.0",
        "log_info": {"start_time": 0.0, "end_time": 100.0},
        "streams": {
            "/vehicle_pose": {"category": "pose"},
            "/lidar": {"category": "primitive", "type": "point", "coordinate": "vehicle_relative"},
        },
    }


def make_state_update(timestamp: float, points: Any = None) -> dict[str, Any]:
    """Build a snapshot state update with one pose and optionally one point primitive."""
    update: dict[str, Any] = {
        "timestamp": timestamp,
        "poses": {"/vehicle_pose": {"timestamp": timestamp, "position": [1.0, 2.0, 3.0]}},
    }
    if points is not None:
        update["primitives"] = {"/lidar": {"points": [{"points": points}]}}
    return {"update_type": "snapshot", "updates": [update]}


@pytest.fixture
def state_update_factory():
    return make_state_update


@pytest.fixture
def sample_state_update() -> dict[str, Any]:
    return make_state_update(100.0, [[1, 1, 1], [2, 2, 2]])
