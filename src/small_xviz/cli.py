"""Command line entry point for small-xviz using Cyclopts."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

from cyclopts import App, Parameter
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from small_xviz.exceptions import XvizError
from small_xviz.reader import decode_frame
from small_xviz.schema import load_protos
from small_xviz.source import XvizBinaryDataSource, make_binary_data_source

logger = logging.getLogger(__name__)

console_err = Console(stderr=True)
console_out = Console()

app = App(
    name="small-xviz",
    help="Inspect XVIZ frame logs.",
    help_format="rich",
)

VerboseFlag = Annotated[bool, Parameter(name=["-v", "--verbose"])]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _open_source(directory: str) -> XvizBinaryDataSource:
    try:
        source = make_binary_data_source(directory, load_protos())
    except (XvizError, OSError) as exc:
        console_err.print(f"[red]Error:[/red] cannot read log in {directory}: {exc}")
        sys.exit(1)
    if source is None:
        console_err.print(f"[red]Error:[/red] no metadata frame found in {directory}")
        sys.exit(1)
    return source


def _format_time(value: Any) -> str:
    return "-" if value is None else f"{value:.3f}"


@app.command
def info(directory: str, *, verbose: VerboseFlag = False) -> None:
    """Summarize a frame log: bounds, frame count and declared streams.

    Parameters
    ----------
    directory : str
        Directory holding ``0-frame.json`` and the frame files.
    """
    _configure_logging(verbose)
    source = _open_source(directory)
    bounds = source.index.bounds

    table = Table(show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value", style="white")
    table.add_row("Format", source.extension)
    table.add_row("Frames", str(len(source.index)))
    table.add_row("Start", _format_time(bounds[0] if bounds else None))
    table.add_row("End", _format_time(bounds[1] if bounds else None))

    if source.metadata is not None:
        metadata = source.metadata.message().data
        table.add_row("Version", str(metadata.get("version", "-")))
        streams = metadata.get("streams") or {}
        table.add_row("Streams", "\n".join(sorted(streams)) or "-")

    console_out.print(table)


@app.command
def frames(
    directory: str,
    *,
    start: Annotated[float | None, Parameter(name=["-s", "--start"])] = None,
    end: Annotated[float | None, Parameter(name=["-e", "--end"])] = None,
    verbose: VerboseFlag = False,
) -> None:
    """List the frames covering a time window.

    Parameters
    ----------
    directory : str
        Directory holding ``0-frame.json`` and the frame files.
    start : float, optional
        Window start; ignored when outside the log bounds.
    end : float, optional
        Window end; defaults to the end of the log.
    """
    _configure_logging(verbose)
    source = _open_source(directory)
    frame_range = source.frame_range(start, end)
    entries = source.index.timing[frame_range.start : frame_range.end]

    if not entries:
        console_out.print(
            f"[yellow]No frames in range [{frame_range.start}, {frame_range.end})[/yellow]"
        )
        return

    table = Table(title=f"Frames [{frame_range.start}, {frame_range.end})")
    table.add_column("Index", style="green", justify="right")
    table.add_column("Start", style="blue", justify="right")
    table.add_column("End", style="blue", justify="right")
    table.add_column("File", style="bold white")
    for entry in entries:
        table.add_row(
            str(entry.frame_index),
            _format_time(entry.start_timestamp),
            _format_time(entry.end_timestamp),
            f"{entry.base_filename}.{source.extension}",
        )
    console_out.print(table)


def _json_safe(value: Any) -> Any:
    if isinstance(value, bytes | bytearray | memoryview):
        return f"<{len(value)} bytes>"
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_json_safe(item) for item in value]
    return value


@app.command
def cat(file: str, *, verbose: VerboseFlag = False) -> None:
    """Decode one frame file and print it as JSON.

    Pretty prints on a terminal and writes one JSON line when piped.

    Parameters
    ----------
    file : str
        Path to a frame file (``.json`` or ``.glb``).
    """
    _configure_logging(verbose)
    try:
        message = decode_frame(Path(file).read_bytes(), load_protos())
    except (XvizError, OSError) as exc:
        console_err.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)
    logger.debug(f"Decoded {message.type.value} frame from {file}")

    output = json.dumps({"type": message.type.value, "data": _json_safe(message.data)})
    if sys.stdout.isatty():
        console_out.print(JSON(output))
    else:
        print(output)  # noqa: T201


if __name__ == "__main__":
    app()
