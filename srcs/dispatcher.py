"""
dispatcher.py

Routes decoded trace events to the allocation ledger.

One EventDispatcher owns the whole analysis state: the object cache,
the ledger and the usage accountant. Events are processed one at a time,
each one completely (ledger, cache, accountant and diagnostics) before
the next is looked at.
"""

from typing import Iterable, Optional

import display
from accountant import UsageAccountant
from ledger import AllocationLedger, DuplicateKeyError, PointerNotFoundError
from object_cache import ObjectCache, Symbolize
from symbolizer import DEFAULT_IMAGE
from type_defs import (
    TraceEvent, ObjectEvent, ObjectFailureEvent, MallocEvent,
    ReallocEvent, FreeEvent, ResolvedObject,
)

# Run outcomes
EXHAUSTED = "exhausted"
TRIGGERED = "triggered"


class EventDispatcher:

    def __init__(
        self,
        symbolize: Symbolize,
        default_image: str = DEFAULT_IMAGE,
        trace_pointer: int = 0,
        verbose: bool = False,
        trigger_bytes: Optional[int] = None,
        report_with_trace: bool = False,
    ):
        self.cache = ObjectCache(symbolize, default_image)
        self.accountant = UsageAccountant(trigger_bytes)
        self.ledger = AllocationLedger(self.accountant)
        self.trace_pointer = trace_pointer
        self.verbose = verbose
        self.report_with_trace = report_with_trace

    # =========================================================================
    # DRIVING LOOP
    # =========================================================================

    def run(self, events: Iterable[TraceEvent]) -> str:
        """
        Process events until the source is exhausted or the trigger fires.

        Args:
            events: Decoded events, in trace order

        Returns:
            EXHAUSTED or TRIGGERED
        """
        for event in events:
            self.dispatch(event)

            if self.accountant.should_stop():
                display.report_trigger(self.accountant)
                return TRIGGERED

        return EXHAUSTED

    def finish(self) -> None:
        """Print the leak report and the usage summary."""
        if len(self.ledger) and (self.trace_pointer == 0 or self.report_with_trace):
            display.report_leaks(self.ledger.records())

        display.report_usage(self.accountant)

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def dispatch(self, event: TraceEvent) -> None:
        """Apply a single event to the ledger."""
        kind = event['kind']

        if kind == "object":
            self._on_object(event)
        elif kind == "object_failure":
            self._on_object_failure(event)
        elif kind == "malloc":
            self._on_malloc(event)
        elif kind == "realloc":
            self._on_realloc(event)
        elif kind == "free":
            self._on_free(event)
        else:
            raise ValueError(f"Unknown event kind: {kind}")

    def _on_object(self, event: ObjectEvent) -> None:
        self.cache.resolve(event['frame_key'], event['source_path'], event['offset'])

    def _on_object_failure(self, event: ObjectFailureEvent) -> None:
        display.print_info(
            f"object {display.format_pointer(event['frame_key'])} "
            f"not resolved: {event['message']}"
        )

    def _on_malloc(self, event: MallocEvent) -> None:
        pointer = event['pointer']
        size = event['size']
        trace = self._resolve_frames(event['frames'])

        try:
            record = self.ledger.insert(pointer, size, trace)
        except DuplicateKeyError as e:
            display.warn_duplicate("malloc", e.existing, size, trace)
            return

        if self._should_echo(pointer):
            display.echo_operation(
                f"{display.format_pointer(pointer)} = malloc({size}): "
                f"{display.top_frame(record['trace'])}"
            )

    def _on_realloc(self, event: ReallocEvent) -> None:
        pointer = event['pointer']
        old_pointer = event['old_pointer']
        size = event['size']
        trace = self._resolve_frames([event['frame']])

        try:
            previous = self.ledger.replace_key(old_pointer, pointer, size, trace)
        except DuplicateKeyError as e:
            display.warn_duplicate("realloc", e.existing, size, trace)
            return

        if previous is None:
            display.print_warning(
                f"realloc ptr {display.format_pointer(old_pointer)} not found: "
                f"{display.top_frame(trace)}"
            )

        if self._should_echo(pointer, old_pointer):
            display.echo_operation(
                f"{display.format_pointer(pointer)} = "
                f"realloc({display.format_pointer(old_pointer)}, {size}): "
                f"{display.top_frame(trace)}"
            )

    def _on_free(self, event: FreeEvent) -> None:
        pointer = event['pointer']

        # Only used for diagnostics, an unknown frame is not registered
        obj = self.cache.get(event['frame'])

        try:
            self.ledger.remove(pointer)
        except PointerNotFoundError:
            message = f"free ptr {display.format_pointer(pointer)} not found"
            if obj is not None:
                message += f": {obj['display']}"
            display.print_warning(message)
            return

        if self._should_echo(pointer):
            frame = obj['display'] if obj is not None else "??"
            display.echo_operation(f"free({display.format_pointer(pointer)}): {frame}")

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _resolve_frames(self, frames: list[int]) -> list[ResolvedObject]:
        """Map frame keys to cached objects, synthesizing unregistered ones."""
        return [self.cache.resolve_unregistered(frame) for frame in frames]

    def _should_echo(self, *pointers: int) -> bool:
        if self.verbose:
            return True
        return self.trace_pointer != 0 and self.trace_pointer in pointers
