"""Storage sinks that frames are written to and read from."""

from pathlib import Path
from typing import Protocol


class Sink(Protocol):
    def has(self, name: str) -> bool: ...

    def read_sync(self, name: str) -> bytes: ...

    def write(self, name: str, data: bytes) -> None: ...

    def close(self) -> None: ...


class MemorySink:
    """Keeps frames in a dict; contents stay readable after close()."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}

    def has(self, name: str) -> bool:
        return name in self.data

    def read_sync(self, name: str) -> bytes:
        return self.data[name]

    def write(self, name: str, data: bytes) -> None:
        self.data[name] = bytes(data)

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"MemorySink({sorted(self.data)})"


class FileSink:
    """Stores each frame as a file inside ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        return self.root / name

    def has(self, name: str) -> bool:
        return self._path(name).is_file()

    def read_sync(self, name: str) -> bytes:
        return self._path(name).read_bytes()

    def write(self, name: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(name).write_bytes(data)

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"FileSink({str(self.root)!r})"
