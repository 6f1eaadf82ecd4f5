"""
Link command arguments with placeholders.

A captured link command contains paths that only exist during the build that
produced it: the output file and the importcfg manifest under $WORK, and the
main package archive. Those positions are stored as placeholders and filled
with fresh paths when the command is replayed.
"""

from typing import List, Optional

from ._type_check import typecheck_methods


OUTPUT_FLAG = "-o"
IMPORTCFG_FLAG = "-importcfg"


class Placeholder:
    """Kinds of argument values recomputed at replay time."""

    OUTPUT_PATH = "OUTPUT_PATH"
    IMPORTCFG_PATH = "IMPORTCFG_PATH"
    MAIN_PACKAGE = "MAIN_PACKAGE"

    ALL = (OUTPUT_PATH, IMPORTCFG_PATH, MAIN_PACKAGE)


@typecheck_methods
class LinkArgument:
    """One positional argument of a link command.

    token holds the literal value seen in the trace. For OUTPUT_PATH it is
    empty (the build-time value is useless); for IMPORTCFG_PATH and
    MAIN_PACKAGE it is kept for reference but never used at replay time."""

    def __init__(self, position: int, token: str, placeholder: Optional[str] = None):
        if placeholder is not None and placeholder not in Placeholder.ALL:
            raise ValueError(f"Unknown placeholder {placeholder!r}")
        self.position = position
        self.token = token
        self.placeholder = placeholder

    def __eq__(self, other):
        if not isinstance(other, LinkArgument):
            return NotImplemented
        return (self.position, self.token, self.placeholder) == (other.position, other.token, other.placeholder)

    def __repr__(self):
        if self.placeholder:
            return f"LinkArgument({self.position}, <{self.placeholder}>)"
        return f"LinkArgument({self.position}, {self.token!r})"


@typecheck_methods
class SplitLinkCommand:
    """A link command split into arguments, with what capture needs to know about it."""

    def __init__(self, arguments: List[LinkArgument], importcfg: Optional[str], last_token: Optional[str]):
        """Args:    arguments: Arguments in order, OUTPUT_PATH/IMPORTCFG_PATH already substituted
                 importcfg: Literal manifest path (key into the staged files), None without -importcfg
                 last_token: Literal value of the final argument, candidate main package archive"""
        self.arguments = arguments
        self.importcfg = importcfg
        self.last_token = last_token


def split_link_command(command: str) -> SplitLinkCommand:
    """Split link command text into placeholder-aware arguments.

    Splits on whitespace. Quoting and escaping are not understood, so an
    argument containing a space is split in two.
    Args:    command: Argument text following the linker path in the trace
    Returns: SplitLinkCommand"""
    arguments = []
    importcfg = None
    previous = None
    tokens = command.split()

    for position, token in enumerate(tokens):
        if previous == OUTPUT_FLAG:
            arguments.append(LinkArgument(position, "", Placeholder.OUTPUT_PATH))
        elif previous == IMPORTCFG_FLAG:
            importcfg = token
            arguments.append(LinkArgument(position, token, Placeholder.IMPORTCFG_PATH))
        else:
            arguments.append(LinkArgument(position, token))
        previous = token

    return SplitLinkCommand(arguments, importcfg, tokens[-1] if tokens else None)


def resolve_link_arguments(arguments: List[LinkArgument], output_path: str, importcfg_path: str,
                           main_package: Optional[str]) -> List[str]:
    """Build the argument vector for a replayed link.
    Args:    arguments: Stored arguments, ordered by position
             output_path: Fresh path the linker writes the executable to
             importcfg_path: Path of the regenerated manifest
             main_package: Archive of the main package (needed only if MAIN_PACKAGE occurs)
    Returns: List of literal arguments"""
    values = {
        Placeholder.OUTPUT_PATH: output_path,
        Placeholder.IMPORTCFG_PATH: importcfg_path,
        Placeholder.MAIN_PACKAGE: main_package,
    }

    resolved = []
    for argument in arguments:
        if argument.placeholder is None:
            resolved.append(argument.token)
            continue
        value = values[argument.placeholder]
        if value is None:
            raise ValueError(f"No value for {argument.placeholder} at position {argument.position}")
        resolved.append(value)
    return resolved
