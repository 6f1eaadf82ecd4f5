"""
Replay side of QuickLink.

Relinks a previously captured program from the LinkCache, without running the
compiler, and replaces the current process with the result.
"""

import os
import stat
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import List

from ._cache import CachedLink, LinkCache
from ._errors import CacheMissError, CacheStorageError, LinkerError, LinkerLaunchError, QuickLinkError
from ._fingerprint import Fingerprint
from ._link_args import resolve_link_arguments
from ._type_check import typecheck, typecheck_methods


@typecheck
def hand_off(binary: Path, argv0: str, args: List[str]) -> int:
    """Replace the current process with binary.
    On POSIX this never returns. Where the platform cannot replace a process
    image, the binary runs as a child sharing stdin/stdout/stderr and its exit
    code is returned for the caller to exit with.
    Args:    binary: Executable to run
             argv0: Name the program sees as argv[0]
             args: Remaining command-line arguments
    Returns: Exit code of the child (only where exec is unavailable)"""
    if os.name == "nt":
        return subprocess.run([str(binary)] + args).returncode

    try:
        os.execve(binary, [argv0] + args, os.environ)
    except OSError as e:
        raise QuickLinkError(f"exec of {binary} failed: {e}") from e


@typecheck_methods
class Executor:
    """Relinks cached programs and runs them."""

    def __init__(self, cache: LinkCache, linker: str, logger):
        """Args:    cache: Cache to read link commands from
                 linker: Path of the linker executable (normally $(go env GOTOOLDIR)/link)
                 logger: Logger"""
        self.cache = cache
        self.linker = linker
        self.logger = logger

    def _write_manifest(self, cached: CachedLink) -> Path:
        """Write the importcfg.link manifest of a cached invocation to a new temporary file."""
        try:
            fd, name = tempfile.mkstemp(prefix="importcfg.link")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for line in cached.manifest():
                    self.logger.debug(f"{name} --- {line}")
                    f.write(f"{line}\n")
        except OSError as e:
            raise QuickLinkError(f"unable to write importcfg file: {e}") from e
        return Path(name)

    def _create_output(self, program: str) -> Path:
        """Reserve a temporary path for the linked executable."""
        suffix = ".exe" if os.name == "nt" else ""
        try:
            fd, name = tempfile.mkstemp(prefix=f"{Path(program).name}-", suffix=suffix)
            os.close(fd)
        except OSError as e:
            raise QuickLinkError(f"unable to create binary file: {e}") from e
        return Path(name)

    def _remove_file(self, path: Path, what: str):
        """Remove a temporary file, logging a warning instead of raising on failure."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.logger.warning(f"Unable to remove {what} {path}: {e}")

    def _run_linker(self, args: List[str]):
        cmd = [self.linker] + args
        self.logger.info(f"Link command: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise LinkerLaunchError(f"unable to run linker {self.linker}: {e}") from e

        if result.stdout:
            self.logger.info(result.stdout)
        if result.returncode != 0:
            raise LinkerError(result.returncode, result.stderr)
        if result.stderr:
            # Linker warnings go to the user
            sys.stderr.write(result.stderr)

    def link(self, fingerprint: Fingerprint) -> Path:
        """Relink a cached program into a fresh temporary executable.
        Args:    fingerprint: Program name and build tags it was captured with
        Returns: Path of the linked executable
        Raises:  CacheMissError if nothing is cached for fingerprint,
                 LinkerError if the linker exits non-zero"""
        cached = self.cache.lookup(fingerprint)
        if cached is None:
            raise CacheMissError(f"No link command found for {fingerprint.program!r} "
                                 f"with build tags {fingerprint.tags}")
        self.logger.debug(f"Cache hit: {cached}")

        importcfg = self._write_manifest(cached)
        try:
            binary = self._create_output(fingerprint.program)
            try:
                args = resolve_link_arguments(cached.arguments, str(binary), str(importcfg), cached.main_package)
                self._run_linker(args)
            except ValueError as e:
                self._remove_file(binary, "binary file")
                raise CacheStorageError(f"rebuild link command for {fingerprint}", e) from e
            except QuickLinkError:
                self._remove_file(binary, "binary file")
                raise
        finally:
            self._remove_file(importcfg, "importcfg file")

        mode = binary.stat().st_mode
        if not mode & stat.S_IXUSR:
            binary.chmod(mode | stat.S_IXUSR)
        return binary

    def run(self, fingerprint: Fingerprint, args: List[str]) -> int:
        """Relink a cached program and hand the process over to it.
        Args:    fingerprint: Program name and build tags
                 args: Command-line arguments for the program
        Returns: Exit code of the program (only where exec is unavailable)"""
        binary = self.link(fingerprint)
        self.logger.info(f"Exec: {binary} {args}")
        return hand_off(binary, fingerprint.program, args)
