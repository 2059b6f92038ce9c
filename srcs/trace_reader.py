"""
trace_reader.py

Pull-based reader of decoded malloc trace events.

The trace is a JSON-lines file. The first record must be
``{"type": "start"}``; every following record describes one event:

    {"type": "object", "f": "0x4011a6", "path": "/lib/libc.so", "offset": "0x11a6"}
    {"type": "object_failure", "f": "0x4011a6", "message": "..."}
    {"type": "malloc", "p": "0x1000", "size": 64, "frames": ["0x4011a6"]}
    {"type": "realloc", "p": "0x2000", "old": "0x1000", "size": 128, "frame": "0x4011a6"}
    {"type": "free", "p": "0x2000", "frame": "0x4011a6"}

Addresses are JSON integers or hexadecimal strings. Any record may carry
the ``pid`` of the traced process.

Each request to the reader has three outcomes: an event, END_OF_STREAM,
or NOT_READY when following a file that is still being written.
"""

import json
import time
from typing import Callable, Iterator, Optional, TextIO, Union

from ledger import MAX_STACK_DEPTH, StackTooDeepError
from type_defs import TraceEvent

END_OF_STREAM = "end_of_stream"
NOT_READY = "not_ready"

DEFAULT_POLL_INTERVAL = 1.0


class TraceFormatError(Exception):
    """Raised when the trace file is not a valid malloc trace."""

    pass


def _parse_address(value, what: str) -> int:
    """Parse an address given as an integer or a hexadecimal string."""
    if isinstance(value, bool):
        raise ValueError(f"invalid {what}: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        number = int(value, 16)
    else:
        raise ValueError(f"invalid {what}: {value!r}")

    if number < 0:
        raise ValueError(f"negative {what}: {value!r}")
    return number


def _parse_size(value) -> int:
    """Parse a byte count given as an integer or a numeric string."""
    if isinstance(value, bool):
        raise ValueError(f"invalid size: {value!r}")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        number = int(value, 0)
    else:
        raise ValueError(f"invalid size: {value!r}")

    if number < 0:
        raise ValueError(f"negative size: {value!r}")
    return number


class TraceReader:

    def __init__(self, stream: TextIO, name: str = "<trace>",
                 follow: bool = False, pid: Optional[int] = None):
        self.stream = stream
        self.name = name
        self.follow = follow
        self.pid = pid
        self.line_number = 0
        self._pending = ""
        self._started = False
        self._seen_pid: Optional[int] = None

    def next_event(self) -> Union[TraceEvent, str]:
        """
        Pull the next event from the trace.

        Returns:
            The decoded event, END_OF_STREAM, or NOT_READY when following
            a trace that has no complete record available yet.

        Raises:
            TraceFormatError: If the trace or one of its records is malformed.
            StackTooDeepError: If a malloc record has too many frames.
        """
        while True:
            line = self._read_line()

            if line is None:
                if self.follow:
                    return NOT_READY
                if not self._started:
                    raise TraceFormatError(f"{self.name}: not a trace")
                return END_OF_STREAM

            self.line_number += 1
            line = line.strip()
            if not line:
                continue

            event = self._decode(line)
            if event is not None:
                return event

    def _read_line(self) -> Optional[str]:
        """Return the next complete line, or None if none is available."""
        try:
            chunk = self.stream.readline()
        except UnicodeDecodeError as e:
            raise TraceFormatError(
                f"{self.name}:{self.line_number + 1}: malformed record: {e}"
            )

        if chunk.endswith("\n"):
            line = self._pending + chunk
            self._pending = ""
            return line

        # Partial line: the writer has not finished it yet
        self._pending += chunk
        if self.follow or not self._pending:
            return None

        line = self._pending
        self._pending = ""
        return line

    # =========================================================================
    # RECORD DECODING
    # =========================================================================

    def _error(self, message: str) -> TraceFormatError:
        return TraceFormatError(f"{self.name}:{self.line_number}: {message}")

    def _decode(self, line: str) -> Optional[TraceEvent]:
        """Decode one record. Returns None for records that are skipped."""
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise self._error(f"malformed record: {e}")

        if not isinstance(record, dict):
            raise self._error("record is not an object")

        record_type = record.get("type")
        if not isinstance(record_type, str):
            raise self._error(f"invalid record type: {record_type!r}")

        if not self._started:
            if record_type != "start":
                raise TraceFormatError(f"{self.name}: not a trace")
            self._started = True
            return None

        if not self._select_pid(record):
            return None

        decoders = {
            "object": self._decode_object,
            "object_failure": self._decode_object_failure,
            "malloc": self._decode_malloc,
            "realloc": self._decode_realloc,
            "free": self._decode_free,
        }

        decoder = decoders.get(record_type)
        if decoder is None:
            return None

        try:
            return decoder(record)
        except KeyError as e:
            raise self._error(f"{record_type} record misses field {e}")
        except ValueError as e:
            raise self._error(f"{record_type} record: {e}")

    def _select_pid(self, record: dict) -> bool:
        """Apply the pid filter. Returns False if the record is skipped."""
        pid = record.get("pid")
        if pid is None:
            return True

        try:
            pid = _parse_size(pid)
        except ValueError:
            raise self._error(f"invalid pid: {pid!r}")

        if self.pid is not None and pid != self.pid:
            return False

        if self._seen_pid is None:
            self._seen_pid = pid
        elif self._seen_pid != pid:
            raise TraceFormatError("multiple pids seen, select one using -p")

        return True

    def _decode_object(self, record: dict) -> TraceEvent:
        path = record.get("path") or ""
        if not isinstance(path, str):
            raise ValueError(f"invalid path: {path!r}")

        return {
            'kind': "object",
            'frame_key': _parse_address(record["f"], "frame"),
            'source_path': path,
            'offset': _parse_address(record["offset"], "offset"),
        }

    def _decode_object_failure(self, record: dict) -> TraceEvent:
        return {
            'kind': "object_failure",
            'frame_key': _parse_address(record["f"], "frame"),
            'message': str(record.get("message", "")),
        }

    def _decode_malloc(self, record: dict) -> TraceEvent:
        frames = record["frames"]
        if not isinstance(frames, list):
            raise ValueError(f"invalid frames: {frames!r}")

        if len(frames) > MAX_STACK_DEPTH:
            raise StackTooDeepError(
                f"{self.name}:{self.line_number}: stack trace has "
                f"{len(frames)} frames, at most {MAX_STACK_DEPTH} are supported"
            )

        return {
            'kind': "malloc",
            'pointer': _parse_address(record["p"], "pointer"),
            'size': _parse_size(record["size"]),
            'frames': [_parse_address(frame, "frame") for frame in frames],
        }

    def _decode_realloc(self, record: dict) -> TraceEvent:
        old = record["old"]

        return {
            'kind': "realloc",
            'pointer': _parse_address(record["p"], "pointer"),
            'old_pointer': 0 if old is None else _parse_address(old, "pointer"),
            'size': _parse_size(record["size"]),
            'frame': _parse_address(record["frame"], "frame"),
        }

    def _decode_free(self, record: dict) -> TraceEvent:
        return {
            'kind': "free",
            'pointer': _parse_address(record["p"], "pointer"),
            'frame': _parse_address(record["frame"], "frame"),
        }


def read_events(
    reader: TraceReader,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> Iterator[TraceEvent]:
    """
    Yield events until the end of the trace.

    While the reader reports NOT_READY, waits poll_interval seconds and
    asks again, so a trace still being written is followed forever.
    """
    while True:
        event = reader.next_event()

        if event == END_OF_STREAM:
            return

        if event == NOT_READY:
            sleep(poll_interval)
            continue

        yield event
