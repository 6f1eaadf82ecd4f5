"""Go toolchain environment for QuickLink."""

import json
import os
import subprocess
from pathlib import Path
from typing import Dict

from ._errors import ToolchainError
from ._type_check import typecheck_methods


@typecheck_methods
class GoEnv:
    """Toolchain environment reported by `go env -json`.

    Queried once by a pipeline and passed to whatever needs the linker path or
    the build cache location. The environment does not change while QuickLink
    runs, so there is no reason to ask twice.
    """

    def __init__(self, variables: Dict[str, str]):
        self.variables = variables

    @classmethod
    def query(cls, go_tool: str = "go") -> 'GoEnv':
        """Run `<go_tool> env -json` and wrap its result.
        Args:    go_tool: Go executable (name on PATH or absolute path)
        Returns: GoEnv instance
        Raises:  ToolchainError if the command cannot run, fails or prints invalid JSON"""
        cmd = [go_tool, "env", "-json"]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ToolchainError(f"unable to run {' '.join(cmd)}: {e}") from e

        if result.returncode != 0:
            raise ToolchainError(f"unable to get Go environment from {' '.join(cmd)}",
                                 result.returncode, result.stderr)

        try:
            variables = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ToolchainError(f"unable to decode Go environment: {e}", output=result.stdout) from e

        return cls(variables)

    def _require(self, name: str) -> str:
        value = self.variables.get(name)
        if not value:
            raise ToolchainError(f"Go environment does not define {name}")
        return value

    @property
    def tool_dir(self) -> str:
        """GOTOOLDIR: directory holding compile, link, buildid, ..."""
        return self._require("GOTOOLDIR")

    @property
    def build_cache(self) -> str:
        """GOCACHE: the persistent, content-addressed build cache."""
        return self._require("GOCACHE")

    @property
    def linker_path(self) -> str:
        """Absolute path of the Go linker, as it appears in `go build -x` traces.
        Joined with the platform separator, as the go command does (backslashes on Windows)."""
        return os.path.join(self.tool_dir, "link" + self.variables.get("GOEXE", ""))

    def in_build_cache(self, file_path: str) -> bool:
        """Check whether file_path lies inside GOCACHE.
        Args:    file_path: Absolute path taken from a manifest
        Returns: True if the path is inside the build cache directory"""
        cache_dir = Path(os.path.normpath(self.build_cache))
        path = Path(os.path.normpath(file_path))
        return path.is_relative_to(cache_dir)
