"""
Display Module for Mex

Formats and prints every user-visible line: per-operation echo,
anomaly warnings, the final leak report and the usage summary.

Echo lines and reports go to stdout, warnings and errors to stderr.
"""

from typing import Iterable

from rich.console import Console
from rich.text import Text

from accountant import UsageAccountant
from colors import (
    GREEN, DARK_GREEN, LIGHT_YELLOW, DARK_YELLOW, DARK_PINK, MAGENTA, RED, GRAY
)
from type_defs import AllocationRecord, ResolvedObject

PROGRAM_NAME = "mex"

# Trace content must never be interpreted as markup or wrapped
console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def format_pointer(pointer: int) -> str:
    """Format a pointer the way printf("%p") does."""
    return hex(pointer)


def top_frame(trace: list[ResolvedObject]) -> str:
    """Display string of the first frame of a trace."""
    if not trace:
        return "??"
    return trace[0]['display']


def _build_trace_lines(trace: list[ResolvedObject]) -> Text:
    """
    Build the indented frame list of a stack trace.

    Args:
        trace: Resolved frames, outermost first

    Returns:
        One line per frame, each ending with a newline
    """
    text = Text()
    for obj in trace:
        text.append(f"    {obj['display']}\n", style=LIGHT_YELLOW)
    return text


# =============================================================================
# DIAGNOSTICS
# =============================================================================

def print_error(message: str) -> None:
    """Print a fatal error on stderr."""
    err_console.print(Text(f"{PROGRAM_NAME}: {message}", style=RED))


def print_warning(message: str) -> None:
    """Print a recoverable anomaly on stderr."""
    err_console.print(Text(f"{PROGRAM_NAME}: {message}", style=DARK_PINK))


def print_info(message: str) -> None:
    """Print an informational message on stderr."""
    err_console.print(Text(f"{PROGRAM_NAME}: {message}", style=GRAY))


def echo_operation(line: str) -> None:
    """Print one traced operation on stdout."""
    console.print(Text(line, style=GREEN))


def warn_duplicate(
    operation: str,
    existing: AllocationRecord,
    size: int,
    trace: list[ResolvedObject]
) -> None:
    """
    Report an allocation at a pointer that is already live.

    Both stack traces are printed: the one of the live allocation,
    which is kept, and the one of the rejected allocation.

    Args:
        operation: "malloc" or "realloc"
        existing: Record already stored for the pointer
        size: Size of the rejected allocation
        trace: Stack trace of the rejected allocation
    """
    pointer = format_pointer(existing['pointer'])
    print_warning(f"Duplicate {operation} found: {pointer}")

    output = Text()
    output.append(f"  live allocation: {existing['size']} bytes at\n", style=DARK_YELLOW)
    output.append_text(_build_trace_lines(existing['trace']))
    output.append(f"  new allocation: {size} bytes at\n", style=DARK_YELLOW)
    output.append_text(_build_trace_lines(trace))
    output.rstrip()

    err_console.print(output)


# =============================================================================
# END OF RUN REPORTS
# =============================================================================

def report_leaks(records: Iterable[AllocationRecord]) -> int:
    """
    Print every allocation that was never freed.

    Args:
        records: Live records, in the order they must be listed

    Returns:
        Number of leaked allocations printed
    """
    output = Text()
    output.append("Leaks detected:\n", style=DARK_GREEN)

    count = 0
    for record in records:
        pointer = format_pointer(record['pointer'])
        output.append(f"{pointer}: {record['size']} bytes at\n", style=DARK_YELLOW)
        output.append_text(_build_trace_lines(record['trace']))
        count += 1

    if count:
        output.rstrip()
        console.print(output)

    return count


def report_usage(accountant: UsageAccountant) -> None:
    """Print the final live and peak byte counts."""
    console.print(Text(
        f"Current usage: {accountant.current_bytes} bytes, "
        f"peak usage: {accountant.peak_bytes} bytes",
        style=MAGENTA
    ))


def report_trigger(accountant: UsageAccountant) -> None:
    """Announce that the trigger threshold stopped the run."""
    print_info(
        f"Trigger of {accountant.trigger_bytes} bytes exceeded "
        f"({accountant.current_bytes} bytes live), stopping"
    )
