"""
Type definitions for Mex

Central repository for all TypedDict structures used across the project.
Ensures type consistency and provides IDE autocompletion support.
"""

from typing import TypedDict, Optional, Union


# =============================================================================
# LEDGER TYPES
# =============================================================================

class ResolvedObject(TypedDict):
    """Symbol resolution result for one stack frame."""
    key: int
    source_path: str
    display: str


class AllocationRecord(TypedDict):
    """Live allocation with its resolved stack trace (outermost frame first)."""
    pointer: int
    size: int
    trace: list[ResolvedObject]


# =============================================================================
# DECODED TRACE EVENTS
# =============================================================================

class ObjectEvent(TypedDict):
    """Registration of a stack frame with its binary image and offset."""
    kind: str
    frame_key: int
    source_path: str
    offset: int


class ObjectFailureEvent(TypedDict):
    """Upstream failure to locate the image of a stack frame."""
    kind: str
    frame_key: int
    message: str


class MallocEvent(TypedDict):
    """malloc() call with its full stack trace."""
    kind: str
    pointer: int
    size: int
    frames: list[int]


class ReallocEvent(TypedDict):
    """realloc() call. ``old_pointer`` is 0 for realloc(NULL, size)."""
    kind: str
    pointer: int
    old_pointer: int
    size: int
    frame: int


class FreeEvent(TypedDict):
    """free() call with the caller frame."""
    kind: str
    pointer: int
    frame: int


TraceEvent = Union[ObjectEvent, ObjectFailureEvent, MallocEvent,
                   ReallocEvent, FreeEvent]


# =============================================================================
# CONFIGURATION
# =============================================================================

class MexConfig(TypedDict):
    """Run configuration built from the command line and environment."""
    trace_file: str
    executable: str
    addr2line: str
    follow: bool
    poll_interval: float
    pid: Optional[int]
    trace_pointer: int
    verbose: bool
    trigger_bytes: Optional[int]
    report_with_trace: bool
