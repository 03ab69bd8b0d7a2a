from typing import Any


class PoseBuilder:
    """Assembles the pose of one stream for a state update.

    Setters return the builder so calls can be chained; fields that are never set
    are left out of the result::

        PoseBuilder("/vehicle_pose").timestamp(1.0).position(11, 22, 33).get_data()
    """

    def __init__(self, stream_id: str) -> None:
        self.stream_id = stream_id
        self.reset()

    def reset(self) -> None:
        self._timestamp: float | None = None
        self._map_origin: dict[str, float] | None = None
        self._position: list[float] | None = None
        self._orientation: list[float] | None = None

    def timestamp(self, timestamp: float) -> "PoseBuilder":
        self._timestamp = timestamp
        return self

    def map_origin(self, longitude: float, latitude: float, altitude: float) -> "PoseBuilder":
        self._map_origin = {"longitude": longitude, "latitude": latitude, "altitude": altitude}
        return self

    def position(self, x: float, y: float, z: float) -> "PoseBuilder":
        self._position = [x, y, z]
        return self

    def orientation(self, roll: float, pitch: float, yaw: float) -> "PoseBuilder":
        self._orientation = [roll, pitch, yaw]
        return self

    def get_pose(self) -> dict[str, Any]:
        pose: dict[str, Any] = {}
        if self._timestamp is not None:
            pose["timestamp"] = self._timestamp
        if self._map_origin is not None:
            pose["map_origin"] = dict(self._map_origin)
        if self._position is not None:
            pose["position"] = list(self._position)
        if self._orientation is not None:
            pose["orientation"] = list(self._orientation)
        return pose

    def get_data(self) -> dict[str, Any]:
        return {"poses": {self.stream_id: self.get_pose()}}
