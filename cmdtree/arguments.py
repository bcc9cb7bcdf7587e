r"""
cmdtree argument descriptors (the descriptor normalizer).

Overview
- Descriptors
  • Option: named argument. Either a flag (no payload, boolean value, optional
    "on"/"off" alias groups) or a valued option taking exactly `nargs` tokens.
  • Argument: positional argument with a fixed arity, or variadic (negative nargs).

- Arity pass
  • arrange(arguments): the right-to-left pass that turns the variadic argument's
    arity into the "remaining minus reserved" sentinel and rejects a second one.

Option specs
- "-v"                         → valued option "v"
- "-v, --version"              → aliases -v/--version, value name "version"
- "-s, --shout / --no-shout"   → flag; --shout sets True, --no-shout sets False
  The value name defaults to the longest alias (dashes stripped). A "/" always
  makes the option a flag, whatever is_flag says.

Invariants
- A descriptor is immutable once built; public attributes are read-only
  properties returning copies of containers.
- A flag has nargs == 0 and a boolean default; a valued option has nargs >= 1.
- A multiple option keeps its declared default list as-is. The parser shares it
  between invocations and never mutates it (copy-on-write).

Examples
    >>> Option("-s, --shout / --no-shout").on
    ['-s', '--shout']
    >>> Argument("files", -1).metavar
    '[FILES...]'
"""
import copy
import functools
import operator
import re

from .utils import *


class ArgumentType(type):
    """
    Metaclass that turns descriptor classes into introspectable, read-only specs.

    Responsibilities
    - Expose selected fields as read-only properties using mirror() for all
      names listed in __introspectable__.
    - Provide stable, readable __repr__/__rich_repr__ implementations for
      diagnostics (rich pretty printing included).

    Conventions
    - __typename__ is derived from the class name (camel-case split with hyphens)
      and used in construction errors.
    - __displayable__ (if set) narrows which properties are shown by __rich_repr__;
      otherwise __introspectable__ is used.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            """
            Return a concise, stable representation with key metadata.

            Example
            - option(name='verbose', on=['--verbose'], ...)
            """
            return f"{type(self).__typename__}({
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            })"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: normalize the display metadata shared by every descriptor.

    - help: optional short description; must be a non-empty string when given.
      Becomes None when Unset.
    - metavar: optional label used in usage/help; must be a non-empty string
      when given. Left Unset here, the per-kind sanitizers pick the default.

    Raises
    - TypeError: when a field is not a string.
    - ValueError: when a field is empty after trimming.
    """
    for name in ("help", "metavar"):
        if not isinstance(object := metadata[name], str | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            raise ValueError(f"{cls.__typename__} {name!r} cannot be empty")
        metadata[name] = object
    metadata["help"] = coalesce(metadata["help"])


def _extract_names(names, name, /):
    """
    Internal: scan one alias group for repeated -name / --name tokens.

    Returns the aliases found, in order, and the value name: `name` unchanged
    when already known, otherwise the longest alias with its dashes stripped
    (the first one wins on ties).
    """
    aliases = []
    longest = ""
    for match in re.finditer(r"(-+)([\w-]*)", names):
        if not match[2]:
            raise ValueError(f"option alias {match[0]!r} must have a name")
        aliases.append(match[0])
        if len(longest) < len(match[2]):
            longest = match[2]
    return aliases, name or longest


def _sanitize_named_metadata(cls, metadata, /):
    """
    Internal: resolve the option spec into aliases, value name and kind.

    Rules
    - whitespace is ignored; commas separate aliases.
    - a "/" forces flag interpretation: the left side holds the "on" aliases
      and the right side the "off" aliases.
    - without a "/", a flag has every alias "on" and no "off" alias; a valued
      option keeps them all in `names`.
    - the value name defaults to the longest alias (dash-stripped).

    Mutates
    - spec, name, names, on, off, is_flag
    """
    if not isinstance(spec := metadata["spec"], str):
        raise TypeError(f"{cls.__typename__} spec must be a string")
    if not isinstance(name := metadata["name"], str | Unset):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif isinstance(name, str) and not (name := name.strip()):
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")

    names = re.sub(r"\s", "", spec)
    if "/" in names:
        metadata["is_flag"] = True

    if metadata["is_flag"]:
        on, _, off = names.partition("/")
        on, name = _extract_names(on, name)
        off, name = _extract_names(off, name)
        metadata["names"] = ()
        metadata["on"] = tuple(on)
        metadata["off"] = tuple(off)
        aliases = on + off
    else:
        aliases, name = _extract_names(names, name)
        metadata["names"] = tuple(aliases)
        metadata["on"] = metadata["off"] = ()

    if not aliases:
        raise ValueError(f"{cls.__typename__} spec {spec!r} must declare at least one alias")
    if len(set(aliases)) != len(aliases):
        raise ValueError(f"{cls.__typename__} spec {spec!r} cannot contain duplicated aliases")
    if not name:
        raise ValueError(f"{cls.__typename__} spec {spec!r} does not yield a value name")

    metadata["spec"] = spec.strip()
    metadata["name"] = name


def _sanitize_arity_metadata(cls, metadata, /):
    """
    Internal: arity, metavar and default for flags and valued options.

    - flags: nargs forced to 0, empty metavar, default coerced to bool.
    - valued: nargs defaults to 1 and must be positive; metavar defaults to
      "<VALUE>" for a single token and "<VALUES...>" otherwise; default kept
      as given (None when Unset).
    """
    if metadata["is_flag"]:
        metadata["nargs"] = 0
        metadata["metavar"] = ""
        metadata["default"] = bool(coalesce(metadata["default"], False))
        return

    if not isinstance(nargs := metadata["nargs"], int | Unset) or isinstance(nargs, bool):
        raise TypeError(f"{cls.__typename__} 'nargs' must be an integer")
    nargs = coalesce(nargs, 1)
    if nargs <= 0:
        raise ValueError(f"{cls.__typename__} 'nargs' must be a positive integer")
    metadata["nargs"] = nargs
    metadata["metavar"] = coalesce(metadata["metavar"], "<VALUE>" if nargs == 1 else "<VALUES...>")
    metadata["default"] = coalesce(metadata["default"])


def _sanitize_multiple_metadata(cls, metadata, /):
    """
    Internal: a multiple option accumulates into a list, so its default must be
    a list too. Flags carry a boolean default and cannot accumulate.
    """
    if not metadata["multiple"]:
        return
    if metadata["is_flag"]:
        raise TypeError(f"flag {cls.__typename__} cannot be multiple")
    if not isinstance(metadata["default"], list | None):
        raise TypeError(f"multiple {cls.__typename__} default must be a list")


class Option(metaclass=ArgumentType):
    """
    Named argument descriptor (flag or valued option).

    Properties
    - spec: the raw spec string, as shown in help.
    - name: key of the value in the parsed option map.
    - names: aliases of a valued option (empty for flags).
    - on / off: aliases setting a flag to True / False (empty for valued options).
    - nargs: 0 for flags, >= 1 for valued options.
    - required / multiple / default / metavar / help.
    """

    __introspectable__ = (
        "spec",
        "name",
        "names",
        "on",
        "off",
        "nargs",
        "required",
        "multiple",
        "default",
        "metavar",
        "help",
    )

    __displayable__ = (
        "name",
        "names",
        "on",
        "off",
        "nargs",
        "required",
        "multiple",
        "default",
    )

    def __new__(
            cls,
            spec,
            /,
            name=Unset,
            *,
            is_flag=False,
            required=False,
            multiple=False,
            nargs=Unset,
            default=Unset,
            help=Unset,
            metavar=Unset,
    ):
        """
        Construct an Option descriptor.

        Parameters
        - spec: str
          Alias declaration, e.g. "-v", "-v, --version", "-s, --shout / --no-shout".
        - name: Unset | str
          Value name; defaults to the longest alias without dashes.
        - is_flag: bool
          Declare a flag; implied by a "/" in the spec.
        - required: bool
          Parsing fails with a missing-option fault when absent.
        - multiple: bool
          The option may repeat; values accumulate into a list.
        - nargs: Unset | int
          Tokens taken by a valued option (default 1, must be positive).
        - default: Any
          Value used when the option is absent. Must be a list for multiple options;
          coerced to bool for flags.
        - help / metavar: Unset | str
          Help text and value label.

        Raises
        - TypeError / ValueError on malformed metadata.
        """
        metadata = {
            "spec": spec,
            "name": name,
            "names": (),
            "on": (),
            "off": (),
            "is_flag": bool(is_flag),
            "nargs": nargs,
            "required": bool(required),
            "multiple": bool(multiple),
            "default": default,
            "metavar": metavar,
            "help": help,
        }
        _sanitize_metadata(cls, metadata)
        _sanitize_named_metadata(cls, metadata)
        _sanitize_arity_metadata(cls, metadata)
        _sanitize_multiple_metadata(cls, metadata)
        del metadata["is_flag"]

        self = super().__new__(cls)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        return self

    @property
    def flag(self):
        return self._nargs == 0

    @property
    def aliases(self):
        """
        every alias of this option, in declaration order.
        """
        return self._names + self._on + self._off

    def __replace__(self, **overrides):
        metadata = {
            "name": self._name,
            "is_flag": self.flag,
            "required": self._required,
            "multiple": self._multiple,
            "nargs": Unset if self.flag else self._nargs,
            "default": self._default,
            "help": Unset if self._help is None else self._help,
            "metavar": Unset if self.flag else self._metavar,
        } | overrides
        return type(self)(metadata.pop("spec", self._spec), **metadata)


class Argument(metaclass=ArgumentType):
    """
    Positional argument descriptor.

    - nargs > 0: exactly that many tokens (a scalar value when nargs == 1).
    - nargs < 0: variadic; takes every remaining token except those reserved for
      the fixed arguments declared after it (see arrange()).
    """

    __introspectable__ = (
        "name",
        "nargs",
        "metavar",
        "help",
    )

    def __new__(cls, name=Unset, /, nargs=1, *, metavar=Unset, help=Unset):
        if name is Unset:
            raise TypeError(f"{cls.__typename__} must have a name")
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        elif not (name := name.strip()):
            raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
        if not isinstance(nargs, int) or isinstance(nargs, bool):
            raise TypeError(f"{cls.__typename__} 'nargs' must be an integer")
        if nargs == 0:
            raise ValueError(f"{cls.__typename__} 'nargs' cannot be zero")

        metadata = {
            "name": name,
            "nargs": nargs,
            "metavar": metavar,
            "help": help,
        }
        _sanitize_metadata(cls, metadata)
        if metadata["metavar"] is Unset:
            metadata["metavar"] = name.upper()
            if nargs > 1 or nargs < 0:
                metadata["metavar"] = "[" + metadata["metavar"] + "...]"

        self = super().__new__(cls)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        return self

    @property
    def variadic(self):
        return self._nargs < 0

    @property
    def reserved(self):
        """
        tokens kept for the fixed arguments after a variadic one (0 otherwise).

        only meaningful once the argument went through arrange().
        """
        return -1 - self._nargs if self.variadic else 0

    def __replace__(self, **overrides):
        metadata = {
            "nargs": self._nargs,
            "metavar": self._metavar,
            "help": Unset if self._help is None else self._help,
        } | overrides
        return type(self)(metadata.pop("name", self._name), **metadata)


def arrange(arguments, /):
    """
    Right-to-left arity pass over positional arguments.

    The variadic argument (if any) is replaced by a copy whose nargs is the
    sentinel -1 - R, where R is the sum of the fixed arities declared after it;
    at parse time it takes max(0, remaining - R) tokens. The given descriptors
    are left untouched.

    Raises
    - TypeError: when an item is not an Argument.
    - ValueError: on duplicated names or a second variadic argument.
    """
    arranged = list(arguments)
    names = set()
    for argument in arranged:
        if not isinstance(argument, Argument):
            raise TypeError("arrange() argument must be an iterable of arguments")
        if argument.name in names:
            raise ValueError(f"argument name {argument.name!r} is already in use")
        names.add(argument.name)

    follows = 0
    for index in reversed(range(len(arranged))):
        argument = arranged[index]
        if argument.variadic:
            if follows is None:
                raise ValueError("arguments cannot declare more than one variadic arity")
            arranged[index] = copy.replace(argument, nargs=-1 - follows)
            follows = None
        elif follows is not None:
            follows += argument.nargs
    return tuple(arranged)


__all__ = (
    "Option",
    "Argument",
    "arrange",
)
