"""
cmdtree faults (parse and dispatch errors) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing fault.
  Codes are grouped by domain so logs and searches stay predictable.
- CommandFault: base type carrying a message + read-only options; knows how to
  render itself through rich as a single "[error] <message>" line, or
  "[error <code>] <message>" when the fancy option is set.
- FaultChain: ordered, first-to-last record of the faults met while parsing.
- CommandExit: exception group wrapping a chain, for callers that prefer raising.

Contract
- The parsing engine never raises faults. It appends them to the chain of the
  current ParsingContext and keeps going (or stops, see finish_on_error).
- The command layer reports only the first fault of a chain, after a usage line,
  and maps it to the -1 return code.
- Programming mistakes (bad descriptors) are not faults: they raise TypeError or
  ValueError at construction time.
"""
import copy
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Group
from rich.text import Text

from .utils import Unset, rename


class FaultCode(IntEnum):
    """
    canonical fault codes used across the engine (stable identifiers).

    grouping
    - routing (1110x): UNKNOWN_COMMAND, MISSING_COMMAND
    - options (1111x): INVALID_OPTION, MISSING_OPTION
    - arity (1112x): INADEQUATE_ARGUMENTS
    - leftovers (1114x): EXTRA_ARGUMENTS
    - scripts (1115x): SCRIPT_LOAD
    """
    # --- routing errors ---
    UNKNOWN_COMMAND      = 11101
    MISSING_COMMAND      = 11103

    # --- option errors ---
    INVALID_OPTION       = 11112
    MISSING_OPTION       = 11117

    # --- arity errors ---
    INADEQUATE_ARGUMENTS = 11122

    # --- leftover errors ---
    EXTRA_ARGUMENTS      = 11141

    # --- script errors ---
    SCRIPT_LOAD          = 11151

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def palette():
    """
    default palette, merged with the optional __styles__ mapping of __main__.
    """
    return defaultdict(str, {
        "error-label": "bold #FF4DA6",   # friendly pinky label
        "code": "bold #00E5FF",          # neon cyan fault code
        "error-message": "#C8C8D0",      # soft light gray message
        "usage-label": "bold #00E6FF",
        "usage-pattern": "bold #36C5F0",
        "section-label": "bold #FFFFFF",
        "name": "bold #00E6FF",
        "description": "#9CA3AF",
    } | getattr(__import__("__main__"), "__styles__", {}))


def _option(name):
    """
    expose one entry of fault.options as a read-only attribute.
    """
    @rename(name)
    def getter(self):
        return self.options.get(name)

    return property(getter)


class CommandFault(Exception):
    code = None

    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __str__(self):
        return "" if self.message is Unset else self.message

    def __rich__(self):
        styles = palette()
        colorful = self.options.get("colorful", False)

        def text(fragment, style):
            return Text(str(fragment), styles[style] if colorful else "")

        if self.options.get("fancy", False) and self.code is not None:
            # "[error 11112] ..." with the host-normalized code
            label = Text.assemble(text("[error ", "error-label"), text(self.code.normalize(), "code"), text("]", "error-label"))
        else:
            label = text("[error]", "error-label")
        return Text.assemble(label, " ", text(self, "error-message"))

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class InvalidOptionFault(CommandFault):
    code = FaultCode.INVALID_OPTION
    token = _option("token")


class MissingOptionFault(CommandFault):
    code = FaultCode.MISSING_OPTION
    option = _option("option")


class InadequateArgumentsFault(CommandFault):
    code = FaultCode.INADEQUATE_ARGUMENTS
    descriptor = _option("descriptor")
    received = _option("received")
    input = _option("input")


class UnknownCommandFault(CommandFault):
    code = FaultCode.UNKNOWN_COMMAND
    input = _option("input")


class MissingCommandFault(CommandFault):
    code = FaultCode.MISSING_COMMAND


class ExtraArgumentsFault(CommandFault):
    code = FaultCode.EXTRA_ARGUMENTS
    leftover = _option("leftover")


class ScriptLoadFault(CommandFault):
    code = FaultCode.SCRIPT_LOAD
    path = _option("path")


class FaultChain:
    """
    ordered record of faults, reported first-to-last.

    appending is O(1) and first/last are read without walking the chain.
    """
    __slots__ = ("_faults",)

    def __init__(self, faults=(), /):
        self._faults = []
        for fault in faults:
            self.append(fault)

    @property
    def first(self):
        return self._faults[0] if self._faults else None

    @property
    def last(self):
        return self._faults[-1] if self._faults else None

    def append(self, fault, /):
        if not isinstance(fault, CommandFault):
            raise TypeError("FaultChain.append() argument must be a command fault")
        self._faults.append(fault)

    def __iter__(self):
        return iter(self._faults)

    def __len__(self):
        return len(self._faults)

    def __bool__(self):
        return bool(self._faults)

    def __getitem__(self, index, /):
        return self._faults[index]

    def __repr__(self):
        return f"FaultChain({self._faults!r})"


class CommandExit(ExceptionGroup):
    """
    exception group over a fault chain, raised by Parser.parse_or_raise().
    """

    def __new__(cls, exceptions, **options):
        return super().__new__(cls, "bad exit", tuple(exceptions))

    def __init__(self, exceptions, **options):
        super().__init__("bad exit", tuple(exceptions))
        self.options = MappingProxyType(options)

    def __rich__(self):
        return Group(*(copy.replace(exception, **self.options) for exception in self.exceptions))

    def derive(self, exceptions):
        return type(self)(exceptions, **self.options)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.exceptions, **{**self.options, **overrides})


__all__ = (
    "FaultCode",
    "CommandFault",
    "InvalidOptionFault",
    "MissingOptionFault",
    "InadequateArgumentsFault",
    "UnknownCommandFault",
    "MissingCommandFault",
    "ExtraArgumentsFault",
    "ScriptLoadFault",
    "FaultChain",
    "CommandExit",
)
