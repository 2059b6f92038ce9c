#!/usr/bin/env python3
"""
Mex - Malloc Event eXplorer
Command-line tool for finding leaks and bad frees in malloc traces.

Usage: mex [-lrv] [-e file] [-f file] [-p pid] [-P ptr] [-t bytes]
"""

import argparse
import functools
import os
import sys
from typing import Optional

from dotenv import load_dotenv

import display
from accountant import AccountingError
from dispatcher import EventDispatcher
from ledger import StackTooDeepError
from symbolizer import DEFAULT_ADDR2LINE, DEFAULT_IMAGE, check_addr2line_installed, symbolize
from trace_reader import DEFAULT_POLL_INTERVAL, TraceFormatError, TraceReader, read_events
from type_defs import MexConfig

# Return codes
SUCCESS = 0
ERROR = 1

DEFAULT_TRACE_FILE = "malloc.trace"


def _parse_pointer(value: str) -> int:
    """Parse the -P option: a non-zero hexadecimal pointer."""
    try:
        pointer = int(value, 16)
    except ValueError:
        pointer = 0

    if pointer <= 0:
        raise argparse.ArgumentTypeError(f"-P {value}: invalid")
    return pointer


def _parse_positive(value: str) -> int:
    try:
        number = int(value, 0)
    except ValueError:
        number = 0

    if number <= 0:
        raise argparse.ArgumentTypeError(f"{value}: invalid")
    return number


def _build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=display.PROGRAM_NAME,
        description="Replay a malloc trace and report leaks and invalid frees."
    )
    parser.add_argument("-e", dest="executable", metavar="file",
                        default=os.environ.get("MEX_EXECUTABLE", DEFAULT_IMAGE),
                        help="binary used to resolve frames recorded without a path")
    parser.add_argument("-f", dest="trace_file", metavar="file",
                        default=os.environ.get("MEX_TRACE_FILE", DEFAULT_TRACE_FILE),
                        help="trace file to read, '-' for stdin")
    parser.add_argument("-l", dest="follow", action="store_true",
                        help="keep reading a trace that is still being written")
    parser.add_argument("-p", dest="pid", metavar="pid", type=_parse_positive,
                        help="only consider events of this process")
    parser.add_argument("-P", dest="trace_pointer", metavar="ptr", type=_parse_pointer,
                        default=0, help="echo every operation on this pointer (hex)")
    parser.add_argument("-r", dest="report_with_trace", action="store_true",
                        help="print the leak report even when -P is given")
    parser.add_argument("-t", dest="trigger_bytes", metavar="bytes", type=_parse_positive,
                        help="stop once more than this many bytes are live")
    parser.add_argument("-v", dest="verbose", action="store_true",
                        help="echo every operation")
    return parser


def _parse_command_line(argv: Optional[list[str]] = None) -> MexConfig:
    """
    Parse the command line, using environment variables as defaults.

    Variables from a .env file in the current directory are loaded first.

    Returns:
        MexConfig: Complete run configuration
    """
    load_dotenv()

    parser = _build_argument_parser()
    args = parser.parse_args(argv)

    poll_interval = os.environ.get("MEX_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL))
    try:
        interval = float(poll_interval)
    except ValueError:
        interval = 0.0

    if not interval > 0:
        parser.error(f"MEX_POLL_INTERVAL={poll_interval}: invalid")

    return {
        'trace_file': args.trace_file,
        'executable': args.executable,
        'addr2line': os.environ.get("MEX_ADDR2LINE", DEFAULT_ADDR2LINE),
        'follow': args.follow,
        'poll_interval': interval,
        'pid': args.pid,
        'trace_pointer': args.trace_pointer,
        'verbose': args.verbose,
        'trigger_bytes': args.trigger_bytes,
        'report_with_trace': args.report_with_trace,
    }


def run(config: MexConfig) -> None:
    """
    Replay the configured trace and print the reports.

    Raises:
        OSError: If the trace file cannot be opened.
        TraceFormatError: If the trace is malformed.
        StackTooDeepError: If a stack trace is too deep.
        AccountingError: If the live byte count would become negative.
    """
    if not check_addr2line_installed(config['addr2line']):
        display.print_info(
            f"'{config['addr2line']}' not found, frames will not be resolved"
        )

    dispatcher = EventDispatcher(
        functools.partial(symbolize, addr2line=config['addr2line']),
        default_image=config['executable'],
        trace_pointer=config['trace_pointer'],
        verbose=config['verbose'],
        trigger_bytes=config['trigger_bytes'],
        report_with_trace=config['report_with_trace'],
    )

    if config['trace_file'] == "-":
        reader = TraceReader(sys.stdin, "<stdin>", config['follow'], config['pid'])
        dispatcher.run(read_events(reader, config['poll_interval']))
    else:
        with open(config['trace_file'], "r", encoding="utf-8") as fd:
            reader = TraceReader(fd, config['trace_file'], config['follow'], config['pid'])
            dispatcher.run(read_events(reader, config['poll_interval']))

    dispatcher.finish()


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point of Mex.

    Returns:
        0 if success, 1 if error
    """
    # argparse exits by itself on invalid options
    config = _parse_command_line(argv)

    try:
        run(config)
        return SUCCESS

    except OSError as e:
        display.print_error(f"{config['trace_file']}: {e.strerror or e}")
        return ERROR

    except TraceFormatError as e:
        display.print_error(str(e))
        return ERROR

    except StackTooDeepError as e:
        display.print_error(str(e))
        return ERROR

    except AccountingError as e:
        display.print_error(f"Corrupted accounting: {e}")
        return ERROR

    except KeyboardInterrupt:
        display.print_error("interrupted")
        return ERROR


if __name__ == "__main__":
    sys.exit(main())
