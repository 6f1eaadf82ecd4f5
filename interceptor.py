#!/usr/bin/env python3
"""
QuickLink Interceptor

Runs a `go build` with tracing and caches its link step, so that executor.py
can relink the same program later without compiling it.

Usage:
    python interceptor.py -- go build -o foo .                         # Cache foo in ./link.db
    python interceptor.py -- go build --tags A -o foo .                # Cache the A variant of foo
    python interceptor.py --db /tmp/link.db -- go build -o foo ./cmd/foo
    python interceptor.py --log-level 2 -- go build -o foo .           # Show how the trace is parsed
"""
import argparse
import sys
from pathlib import Path
from typing import List

from quicklink import (BuildCommand, GoEnv, Interceptor, LinkCache, QuickLinkError, QuickLinkLogger,
                       __version__, report_error)


DEFAULT_DB = "link.db"


def main(args: List[str] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="QuickLink Interceptor", epilog=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument("--version",   action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db",        type=str, default=DEFAULT_DB, metavar="PATH",
                        help=f"Path to the link cache database (default: {DEFAULT_DB})")
    parser.add_argument("--log-level", type=int, default=0, metavar="N",
                        help="Log level (0 = warnings only, 1 = info, 2 = debug)")
    parser.add_argument("--log-file",  type=str, metavar="PATH", help="Also write the log to this file")
    parser.add_argument("command",     nargs=argparse.REMAINDER,
                        help="go build -o OUTPUT [build flags] [packages]")

    parsed = parser.parse_args(args)

    command_args = parsed.command
    if command_args and command_args[0] == "--":
        command_args = command_args[1:]

    logger = QuickLinkLogger(parsed.log_level, Path(parsed.log_file) if parsed.log_file else None)

    try:
        # Validated before anything runs
        command = BuildCommand(command_args)
        go_env = GoEnv.query(command.go_tool)
        interceptor = Interceptor(LinkCache(Path(parsed.db), logger), go_env, logger)
        interceptor.run(command)
    except QuickLinkError as e:
        return report_error(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())
