"""
Capture side of QuickLink.

Runs the user's `go build` with -x, extracts the link step from the trace and
stores it in the LinkCache under the program's fingerprint.
"""

import subprocess
from pathlib import Path
from typing import List

from ._cache import LinkCache
from ._errors import (CacheUnstableError, ConfigurationError, NothingToCacheError, QuickLinkError,
                      ToolchainError)
from ._fingerprint import Fingerprint, parse_tags
from ._go_env import GoEnv
from ._trace import BuildTrace, TraceParser
from ._type_check import typecheck_methods


MAX_CAPTURE_ATTEMPTS = 3

BUILD_ACTION = "build"
TRACE_FLAG = "-x"
OUTPUT_FLAGS = ("-o", "--o")
TAGS_FLAGS = ("-tags", "--tags")


@typecheck_methods
class BuildCommand:
    """A `go build` command line as given to the interceptor.

    Must start with the go executable followed by `build`, and must name the
    output with -o: the output name is the program name the link step is
    cached under.
    """

    def __init__(self, args: List[str]):
        """Args:    args: Full command line, e.g. ["go", "build", "-tags", "a,b", "-o", "foo", "."]
        Raises:  ConfigurationError if the command is not a go build with -o"""
        if len(args) < 2 or args[1] != BUILD_ACTION:
            raise ConfigurationError(f"expected `go build -o OUTPUT [build flags] [packages]`, "
                                     f"got: {' '.join(args) or 'nothing'}")
        self.args = args
        self.output = None
        self.tags = []

        i = 2
        while i < len(args):
            arg = args[i]
            if arg == "--":
                break
            name, sep, value = arg.partition("=")
            if name in OUTPUT_FLAGS + TAGS_FLAGS:
                if not sep:
                    if i + 1 >= len(args):
                        raise ConfigurationError(f"flag {arg} needs a value")
                    value = args[i + 1]
                    i += 1
                if name in OUTPUT_FLAGS:
                    self.output = value
                else:
                    self.tags = parse_tags(value)
            i += 1

        if not self.output:
            raise ConfigurationError("the -o flag is required")

    @property
    def go_tool(self) -> str:
        return self.args[0]

    @property
    def fingerprint(self) -> Fingerprint:
        return Fingerprint(self.output, self.tags)

    def traced_args(self) -> List[str]:
        """Command line with -x right after the build action."""
        return [self.args[0], BUILD_ACTION, TRACE_FLAG] + self.args[2:]


@typecheck_methods
class Interceptor:
    """Captures link commands of go builds into a LinkCache."""

    def __init__(self, cache: LinkCache, go_env: GoEnv, logger, max_attempts: int = MAX_CAPTURE_ATTEMPTS):
        """Args:    cache: Cache the link command is stored in
                 go_env: Toolchain environment (linker path and GOCACHE)
                 logger: Logger
                 max_attempts: Number of builds tried before giving up on a stable cache"""
        self.cache = cache
        self.go_env = go_env
        self.logger = logger
        self.max_attempts = max_attempts
        self.parser = TraceParser(go_env.linker_path, logger)

    def _remove_output(self, output: Path):
        """Delete the previous binary so that go build relinks."""
        try:
            output.unlink(missing_ok=True)
        except OSError as e:
            raise QuickLinkError(f"unable to remove output file {output}: {e}") from e

    def _run_traced_build(self, command: BuildCommand) -> str:
        """Run the build with -x and return its combined stdout and stderr."""
        cmd = command.traced_args()
        self.logger.info(f"Build command: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as e:
            raise ToolchainError(f"unable to run {cmd[0]}: {e}") from e

        if result.returncode != 0:
            raise ToolchainError(f"unable to get link command from {' '.join(cmd)}",
                                 result.returncode, result.stdout)
        return result.stdout

    def capture(self, command: BuildCommand) -> BuildTrace:
        """Build until every package file in the link manifest comes from GOCACHE.

        Right after a cold build the manifest may point at archives in the
        temporary $WORK directory, which is gone once the build finishes. The
        next build finds them in GOCACHE instead.
        Args:    command: The go build command
        Returns: BuildTrace of the first build whose manifest is fully cached
        Raises:  CacheUnstableError if no such build happens within max_attempts"""
        output = Path(command.output)
        for attempt in range(1, self.max_attempts + 1):
            self._remove_output(output)
            trace = self.parser.parse(self._run_traced_build(command))

            outside = [path for path in trace.packagefile_paths() if not self.go_env.in_build_cache(path)]
            if not outside:
                self.logger.info(f"Attempt {attempt}: all package files are in {self.go_env.build_cache}")
                return trace

            self.logger.info(f"Attempt {attempt}: {len(outside)} package files outside "
                             f"{self.go_env.build_cache}, e.g. {outside[0]}")

        raise CacheUnstableError(f"package files of {command.output} were still outside "
                                 f"{self.go_env.build_cache} after {self.max_attempts} builds")

    def run(self, command: BuildCommand) -> List[int]:
        """Capture the link command of a build and store it.
        Returns: Ids of the stored link invocations
        Raises:  NothingToCacheError if the build does not link anything"""
        trace = self.capture(command)
        if not trace.link_commands:
            raise NothingToCacheError(f"no link command in the trace of {' '.join(command.args)}, "
                                      f"nothing to cache")

        invocation_ids = self.cache.store(command.fingerprint, trace)
        self.logger.info(f"Cached link command for {command.fingerprint} in {self.cache.db_path}")
        return invocation_ids
