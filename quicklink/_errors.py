"""
Error kinds raised by QuickLink.

Every error carries the exit status the command-line tools terminate with, so
the entry points can turn any failure into a message and a distinguishing
status without knowing where it came from.
"""

import sys
from typing import Optional

EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_CACHE_MISS = 3


def tool_exit_status(returncode: int) -> int:
    """Exit status that mirrors a subprocess: its own code, or 128 + N if killed by signal N."""
    return returncode if returncode >= 0 else 128 - returncode


class QuickLinkError(Exception):
    """Base class for all QuickLink failures."""

    exit_status = EXIT_FATAL


class ConfigurationError(QuickLinkError):
    """Missing required flag or malformed command line. Raised before any subprocess runs."""

    exit_status = EXIT_CONFIG


class ToolchainError(QuickLinkError):
    """The build tool or the environment query failed."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        """Args:    message: What failed
                 returncode: Exit code of the tool, None if it never ran to completion
                 output: Diagnostics the tool printed"""
        self.returncode = returncode
        self.output = output
        if returncode is None:
            self.exit_status = EXIT_FATAL
            super().__init__(message)
        else:
            self.exit_status = tool_exit_status(returncode)
            super().__init__(f"{message} (exit code {returncode})")


class TraceFormatError(QuickLinkError):
    """The build trace contains a line that should be well-formed but is not."""


class CacheUnstableError(QuickLinkError):
    """The build kept referencing artifacts outside the build cache."""


class NothingToCacheError(QuickLinkError):
    """The build trace contains no link invocation."""


class CacheMissError(QuickLinkError):
    """No cached link invocation exists for a fingerprint. A normal outcome, not a failure of QuickLink."""

    exit_status = EXIT_CACHE_MISS


class LinkerLaunchError(QuickLinkError):
    """The linker executable could not be started."""


class LinkerError(QuickLinkError):
    """The linker ran and exited non-zero. Its exit code and stderr belong to the user."""

    def __init__(self, returncode: int, stderr: str):
        self.returncode = returncode
        self.stderr = stderr
        self.exit_status = tool_exit_status(returncode)
        super().__init__(f"linker failed with exit code {returncode}")


class CacheStorageError(QuickLinkError):
    """Opening, querying or committing the cache database failed."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"unable to {operation}: {cause}")


def report_error(error: QuickLinkError, stream=None) -> int:
    """Print an error the way the command-line tools do.
    Args:    error: The failure
             stream: Output stream (defaults to sys.stderr at call time)
    Returns: Exit status to terminate with"""
    stream = stream or sys.stderr
    if isinstance(error, LinkerError):
        # The user's own build failure, passed through untouched
        stream.write(error.stderr)
    elif isinstance(error, CacheMissError):
        print(error, file=stream)
    else:
        if isinstance(error, ToolchainError) and error.output:
            stream.write(error.output)
        print(f"Error: {error}", file=stream)
    return error.exit_status
