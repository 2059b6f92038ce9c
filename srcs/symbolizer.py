"""
Symbol resolution module.

Maps a (binary image, offset) pair to a human readable source location
by running addr2line on the image.

Features:
- Check addr2line installation
- Resolve one offset to "function at file:line"
- Fall back to the default image when no path was recorded
- Convert every failure into SymbolizerError
"""

import subprocess

# Image used for frames registered without a path
DEFAULT_IMAGE = "a.out"

DEFAULT_ADDR2LINE = "addr2line"

# Per-lookup timeout in seconds
ADDR2LINE_TIMEOUT = 10


class SymbolizerError(Exception):
    """Raised when an address cannot be resolved to a source location."""

    pass


def check_addr2line_installed(addr2line: str = DEFAULT_ADDR2LINE) -> bool:
    """
    Check if addr2line is installed on the system.

    Returns:
        True if addr2line answers --version, False otherwise.
    """
    try:
        result = subprocess.run(
            [addr2line, "--version"],
            capture_output=True,
            text=True,
            timeout=5
        )
        return result.returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def symbolize(source_path: str, offset: int, addr2line: str = DEFAULT_ADDR2LINE) -> str:
    """
    Resolve an offset inside a binary image with addr2line.

    Runs ``addr2line -f -C -e <image> <offset>``, which prints the
    demangled function name on the first line and ``file:line`` on the
    second one.

    Args:
        source_path: Path to the binary image. Empty means DEFAULT_IMAGE.
        offset: Offset of the return address inside the image.
        addr2line: addr2line executable to run.

    Returns:
        "function at file:line", or the part addr2line could resolve.

    Raises:
        SymbolizerError: If addr2line is missing, fails, times out or
                         knows neither the function nor the location.
    """
    image = source_path or DEFAULT_IMAGE

    command = [
        addr2line,
        "-f",               # Print function name
        "-C",               # Demangle C++ symbols
        "-e", image,
        hex(offset),
    ]

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=ADDR2LINE_TIMEOUT
        )
    except FileNotFoundError:
        raise SymbolizerError(f"'{addr2line}' is not installed.")
    except subprocess.TimeoutExpired:
        raise SymbolizerError(
            f"Resolution of {hex(offset)} in '{image}' exceeded "
            f"{ADDR2LINE_TIMEOUT} second timeout."
        )

    if result.returncode != 0:
        raise SymbolizerError(
            f"addr2line failed on '{image}': {result.stderr.strip()}"
        )

    return _format_addr2line_output(result.stdout, image, offset)


def _format_addr2line_output(output: str, image: str, offset: int) -> str:
    """
    Turn the two lines printed by addr2line into a display string.

    Example:
        "main\\n/src/leaky.c:12\\n" -> "main at /src/leaky.c:12"
    """
    lines = output.strip().splitlines()
    if len(lines) < 2:
        raise SymbolizerError(
            f"Unexpected addr2line output for {hex(offset)} in '{image}'"
        )

    function = lines[0].strip()
    location = lines[1].strip()

    function_known = function != "??"
    location_known = not location.startswith("??")

    if not function_known and not location_known:
        raise SymbolizerError(f"No symbol for {hex(offset)} in '{image}'")

    if not location_known:
        return function

    if not function_known:
        return location

    return f"{function} at {location}"
