"""
Event sinks and CSV logging for the kite simulation.

Messages from the physics core go to an injected ``EventSink`` instead of a
process-wide logger, so a host can route them to its own UI or telemetry.
State is written to CSV with a buffered logger that implements the context
manager protocol for safe resource handling.
"""
from __future__ import annotations

import csv
import warnings
from pathlib import Path
from typing import Any, Protocol, TextIO


class EventSink(Protocol):
    """Receiver of diagnostic messages. ``source`` is a short component tag."""

    def info(self, source: str, message: str) -> None: ...

    def warn(self, source: str, message: str) -> None: ...

    def error(self, source: str, message: str) -> None: ...


class ConsoleSink:
    """
    Default sink.

    Info lines are printed as ``[Source] message``; warnings and errors are
    emitted as ``RuntimeWarning`` so callers can filter or escalate them.
    """

    def __init__(self, verbose: bool = True) -> None:
        self.verbose = verbose

    def info(self, source: str, message: str) -> None:
        if self.verbose:
            print(f"[{source}] {message}")

    def warn(self, source: str, message: str) -> None:
        warnings.warn(f"[{source}] {message}", RuntimeWarning, stacklevel=3)

    def error(self, source: str, message: str) -> None:
        warnings.warn(f"[{source}] ERROR: {message}", RuntimeWarning, stacklevel=3)


class RecordingSink:
    """Keeps every event as a ``(level, source, message)`` tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, str]] = []

    def info(self, source: str, message: str) -> None:
        self.events.append(("info", source, message))

    def warn(self, source: str, message: str) -> None:
        self.events.append(("warn", source, message))

    def error(self, source: str, message: str) -> None:
        self.events.append(("error", source, message))

    def of_level(self, level: str) -> list[tuple[str, str, str]]:
        return [e for e in self.events if e[0] == level]

    def clear(self) -> None:
        self.events.clear()


class CSVLogger:
    """
    Buffered CSV logger for kite simulation data.

    Parameters
    ----------
    filepath : str | Path
        Output CSV file path
    buffer_size : int
        Number of rows to buffer before writing.
    fields : list[str] | None
        Columns to log. Default: ["p", "q", "v", "w", "T"]
        Options: "p" (position), "q" (quaternion), "v" (velocity),
                 "w" (angular velocity), "T" (line tensions and asymmetry)

    Notes
    -----
    The logged object must expose ``t`` (simulation time), ``state``
    (a ``KiteState``) and, for "T", ``tensions`` (a ``TensionReport``).

    Examples
    --------
    >>> with CSVLogger("output.csv") as logger:
    ...     for _ in range(num_steps):
    ...         sim.step(force, torque, handles, dt)
    ...         logger.log(sim)
    """

    FIELD_COLUMNS = {
        "p": ["kite.p_x", "kite.p_y", "kite.p_z"],
        "q": ["kite.q_x", "kite.q_y", "kite.q_z", "kite.q_w"],
        "v": ["kite.v_x", "kite.v_y", "kite.v_z"],
        "w": ["kite.w_x", "kite.w_y", "kite.w_z"],
        "T": ["T_left", "T_right", "asym"],
    }

    def __init__(
        self,
        filepath: str | Path,
        buffer_size: int = 1000,
        fields: list[str] | None = None
    ) -> None:
        self.filepath = Path(filepath)
        self.buffer_size = buffer_size
        self.fields = fields if fields is not None else ["p", "q", "v", "w", "T"]

        invalid = set(self.fields) - set(self.FIELD_COLUMNS)
        if invalid:
            raise ValueError(
                f"Invalid fields: {invalid}. Valid options: {set(self.FIELD_COLUMNS)}"
            )

        self._buffer: list[list[str]] = []
        self._file: TextIO | None = None
        self._writer: Any = None
        self._header_written = False

        self.filepath.parent.mkdir(parents=True, exist_ok=True)

    def __enter__(self) -> CSVLogger:
        self._file = open(self.filepath, "w", newline="", encoding="utf-8")
        self._writer = csv.writer(self._file)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def header(self) -> list[str]:
        hdr = ["t"]
        for field in self.fields:
            hdr.extend(self.FIELD_COLUMNS[field])
        return hdr

    def _values(self, sim: Any, field: str) -> list[float]:
        state = sim.state
        if field == "p":
            return list(state.position)
        if field == "q":
            return list(state.orientation)
        if field == "v":
            return list(state.velocity)
        if field == "w":
            return list(state.angular_velocity)
        report = sim.tensions
        return [report.left_total, report.right_total, report.asymmetry]

    def log(self, sim: Any) -> None:
        """
        Append one row for the current simulation state.

        Opens the file on first call when not used as a context manager and
        writes to disk whenever the buffer is full.
        """
        if self._file is None:
            self.__enter__()

        if not self._header_written:
            self._writer.writerow(self.header)
            self._file.flush()
            self._header_written = True

        row = [f"{sim.t:.10f}"]
        for field in self.fields:
            row.extend(f"{v:.10e}" for v in self._values(sim, field))
        self._buffer.append(row)

        if len(self._buffer) >= self.buffer_size:
            self.flush()

    def flush(self) -> None:
        """Write buffered rows to disk and clear the buffer."""
        if self._writer and self._buffer:
            self._writer.writerows(self._buffer)
            if self._file:
                self._file.flush()
            self._buffer.clear()

    def close(self) -> None:
        """Flush remaining rows and close the file."""
        self.flush()
        if self._file:
            self._file.close()
            self._file = None
            self._writer = None
