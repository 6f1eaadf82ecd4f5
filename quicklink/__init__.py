"""QuickLink - Cached linking for Go programs

QuickLink skips the compiler on repeated builds of the same program variant.
The interceptor runs `go build -x` once, extracts the link command and its
importcfg manifest from the trace, and stores them in a SQLite database keyed
by program name and build tags. The executor later replays the link command
with fresh temporary paths and execs the resulting binary.

Example usage:
    from quicklink import BuildCommand, Executor, Fingerprint, GoEnv, Interceptor, LinkCache

    cache = LinkCache(Path("link.db"))
    command = BuildCommand(["go", "build", "-tags", "netgo", "-o", "foo", "."])
    Interceptor(cache, GoEnv.query(command.go_tool), logger).run(command)

    executor = Executor(cache, GoEnv.query().linker_path, logger)
    executor.run(Fingerprint("foo", ["netgo"]), ["--flag"])
"""

from ._cache import CachedLink, CacheEntrySummary, LinkCache
from ._errors import (EXIT_CACHE_MISS, EXIT_CONFIG, EXIT_FATAL, CacheMissError, CacheStorageError,
                      CacheUnstableError, ConfigurationError, LinkerError, LinkerLaunchError,
                      NothingToCacheError, QuickLinkError, ToolchainError, TraceFormatError, report_error)
from ._executor import Executor, hand_off
from ._fingerprint import Fingerprint, parse_tags
from ._go_env import GoEnv
from ._interceptor import BuildCommand, Interceptor, MAX_CAPTURE_ATTEMPTS
from ._link_args import LinkArgument, Placeholder, resolve_link_arguments, split_link_command
from ._logger import QuickLinkLogger
from ._trace import BuildTrace, TraceParser, parse_build_trace

__version__ = "1.0.0"

__all__ = [
    'BuildCommand', 'BuildTrace', 'CachedLink', 'CacheEntrySummary', 'Executor', 'Fingerprint',
    'GoEnv', 'Interceptor', 'LinkArgument', 'LinkCache', 'Placeholder', 'QuickLinkLogger', 'TraceParser',
    'hand_off', 'parse_build_trace', 'parse_tags', 'report_error', 'resolve_link_arguments',
    'split_link_command', 'MAX_CAPTURE_ATTEMPTS',
    'EXIT_CACHE_MISS', 'EXIT_CONFIG', 'EXIT_FATAL',
    'QuickLinkError', 'ConfigurationError', 'ToolchainError', 'TraceFormatError', 'CacheUnstableError',
    'NothingToCacheError', 'CacheMissError', 'LinkerError', 'LinkerLaunchError', 'CacheStorageError',
]
