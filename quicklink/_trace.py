"""
Parsing of `go build -x` traces.

The trace is a shell-like transcript of every step the go command runs. Two
things in it matter to QuickLink: the lines that invoke the linker, and the
files the go command stages with here-documents, in particular the
importcfg.link manifest the linker reads.

Example (abridged):
    WORK=/tmp/go-build1234
    mkdir -p $WORK/b001/
    cat >$WORK/b001/importcfg.link << 'EOF' # internal
    packagefile example.com/foo=/home/me/.cache/go-build/ab/ab12-d
    packagefile fmt=/home/me/.cache/go-build/cd/cd34-d
    modinfo "..."
    EOF
    GOROOT='/usr/lib/go' /usr/lib/go/pkg/tool/linux_amd64/link -o $WORK/b001/exe/a.out -importcfg $WORK/b001/importcfg.link ... /home/me/.cache/go-build/ab/ab12-d
"""

import logging
import re
from typing import Dict, Iterator, List, Optional

from ._type_check import typecheck_methods


STAGED_FILE_START_RE = re.compile(r"^cat > *(\S+) *<< 'EOF' *(?:#.*)?$")
STAGED_FILE_END = "EOF"
VARIABLE_DEF_RE = re.compile(r"^(\w+)=(\S*)$")
VARIABLE_REF_RE = re.compile(r"\$(\w+)")

PACKAGEFILE_DIRECTIVE = "packagefile"


def is_packagefile_line(line: str) -> bool:
    """Check whether a manifest line is a packagefile directive (well-formed or not)."""
    return line == PACKAGEFILE_DIRECTIVE or line.startswith(PACKAGEFILE_DIRECTIVE + " ")


@typecheck_methods
class BuildTrace:
    """What QuickLink extracts from one traced build."""

    def __init__(self, link_commands: List[str], staged_files: Dict[str, List[str]]):
        """Args:    link_commands: Argument text of every linker invocation, in trace order
                 staged_files: Staged file name -> content lines (variables substituted)"""
        self.link_commands = link_commands
        self.staged_files = staged_files

    def packagefile_paths(self) -> Iterator[str]:
        """Yield the file path of every packagefile line in every staged file.
        Lines without '=' yield nothing here; storing them reports the error."""
        for content in self.staged_files.values():
            for line in content:
                if is_packagefile_line(line):
                    _, sep, file_path = line.partition("=")
                    if sep:
                        yield file_path

    def __repr__(self):
        return f"BuildTrace({len(self.link_commands)} link commands, staged files: {sorted(self.staged_files)})"


class _ParserState:
    """Mutable state of one parse: declared variables and the open staged file."""

    def __init__(self):
        self.variables: Dict[str, str] = {}
        self.current_file: Optional[str] = None
        self.staged_files: Dict[str, List[str]] = {}
        self.link_commands: List[str] = []

    def substitute(self, line: str) -> str:
        """Replace $NAME with the value declared so far. Unknown names are left as-is."""
        return VARIABLE_REF_RE.sub(lambda m: self.variables.get(m.group(1), m.group(0)), line)


class TraceParser:
    """Line classifier for `go build -x` output.

    Two states: outside any staged file, and inside one (after a
    `cat > FILE << 'EOF'` line, until a line that is exactly `EOF`).
    Instances hold only the compiled linker matcher; every parse starts from
    fresh state, so a parser can be reused.
    """

    def __init__(self, linker_path: str, logger=None):
        """Args:    linker_path: Absolute path of the linker, as printed in the trace
                 logger: Logger for per-line debug output"""
        self.linker_path = linker_path
        self.logger = logger or logging.getLogger("QuickLink")
        self._link_command_re = re.compile(r"^.*" + re.escape(linker_path) + r" (.*)$")

    def parse(self, trace: str) -> BuildTrace:
        """Parse a complete trace in one forward pass.
        Args:    trace: Combined stdout/stderr of `go build -x`
        Returns: BuildTrace with link commands and staged file contents"""
        state = _ParserState()
        for raw_line in trace.splitlines():
            self._parse_line(state, state.substitute(raw_line))
        return BuildTrace(state.link_commands, state.staged_files)

    def _parse_line(self, state: _ParserState, line: str):
        start = STAGED_FILE_START_RE.match(line)
        if start:
            # The most recently opened file wins, even if another one is still open
            state.current_file = start.group(1)
            state.staged_files[state.current_file] = []
            self.logger.debug(f"Start of file {state.current_file!r}   --- {line}")
            return

        if state.current_file is not None:
            if line == STAGED_FILE_END:
                self.logger.debug(f"End of file {state.current_file!r}     --- {line}")
                state.current_file = None
            else:
                self.logger.debug(f"Content of file {state.current_file!r} --- {line}")
                state.staged_files[state.current_file].append(line)
            return

        definition = VARIABLE_DEF_RE.match(line)
        if definition:
            state.variables[definition.group(1)] = definition.group(2)
            self.logger.debug(f"Variable           --- {line}")
            return

        link_command = self._link_command_re.match(line)
        if link_command:
            state.link_commands.append(link_command.group(1))
            self.logger.debug(f"Link command found --- {line}")
            return

        self.logger.debug(f"Ignored line       --- {line}")


def parse_build_trace(trace: str, linker_path: str, logger=None) -> BuildTrace:
    """Parse a `go build -x` trace.
    Args:    trace: Trace text
             linker_path: Absolute path of the linker executable
             logger: Optional logger for debug output
    Returns: BuildTrace"""
    return TraceParser(linker_path, logger).parse(trace)
