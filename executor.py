#!/usr/bin/env python3
"""
QuickLink Executor

Relinks a program cached by interceptor.py and runs it, passing along every
argument after the program name. Exits with status 3 when nothing is cached
for the program and tags.

Usage:
    python executor.py -- foo                                  # Relink and run foo
    python executor.py --tags A -- foo --verbose               # Run the A variant of foo with --verbose
    python executor.py --link "$(go env GOTOOLDIR)/link" -- foo
"""
import argparse
import sys
from pathlib import Path
from typing import List

from quicklink import (ConfigurationError, Executor, Fingerprint, GoEnv, LinkCache, QuickLinkError,
                       QuickLinkLogger, __version__, parse_tags, report_error)


DEFAULT_DB = "link.db"


def main(args: List[str] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="QuickLink Executor", epilog=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument("--version",   action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db",        type=str, default=DEFAULT_DB, metavar="PATH",
                        help=f"Path to the link cache database (default: {DEFAULT_DB})")
    parser.add_argument("--link",      type=str, metavar="PATH",
                        help="File path to the linker executable (default: \"$(go env GOTOOLDIR)/link\")")
    parser.add_argument("--tags",      type=str, default="", metavar="TAGS",
                        help="Comma-separated build tags the program was captured with")
    parser.add_argument("--log-level", type=int, default=0, metavar="N",
                        help="Log level (0 = warnings only, 1 = info, 2 = debug)")
    parser.add_argument("--log-file",  type=str, metavar="PATH", help="Also write the log to this file")
    parser.add_argument("program",     nargs=argparse.REMAINDER, help="PROGRAM [ARGS...]")

    parsed = parser.parse_args(args)

    program_args = parsed.program
    if program_args and program_args[0] == "--":
        program_args = program_args[1:]

    logger = QuickLinkLogger(parsed.log_level, Path(parsed.log_file) if parsed.log_file else None)

    try:
        if not program_args:
            raise ConfigurationError("need an executable name")
        fingerprint = Fingerprint(program_args[0], parse_tags(parsed.tags))

        linker = parsed.link or GoEnv.query().linker_path
        executor = Executor(LinkCache(Path(parsed.db), logger), linker, logger)
        return executor.run(fingerprint, program_args[1:])
    except QuickLinkError as e:
        return report_error(e)


if __name__ == "__main__":
    sys.exit(main())
