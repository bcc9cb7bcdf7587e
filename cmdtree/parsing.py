"""
cmdtree parsing engine: single-pass consumption of a token array.

Phases
- start_parsing(tokens)
  • fresh ParsingContext, option map pre-filled with the declared defaults.
- parse_next_option(context, tokens, index)   (called in a loop)
  • one option per call while the token under the cursor starts with '-'.
  • a bare '--' is consumed and ends option scanning; everything after it is
    positional.
- parse_arguments(context, tokens, index)
  • positional arguments, in declaration order, fixed arities first-come and the
    variadic one taking max(0, remaining - reserved).
- finish_parsing(context)
  • required options; marks the context finished.

Faults
- Never raised. Each one is appended to context.faults; with finish_on_error
  (the default) the first fault finishes the context and every later phase
  becomes a no-op.

Copy-on-write defaults
- A multiple option with a declared default starts out holding that very list
  (no copy). The option name is remembered in context.defaults; the first value
  received for that option replaces it with a brand-new list, so the declared default is never
  mutated and invocations never leak values into each other.

Example
    >>> parser = Parser([Option("--tag", multiple=True)], [Argument("files", -1)])
    >>> context = parser.parse(["--tag", "a", "--tag", "b", "x.txt"])
    >>> context.options, context.arguments
    ({'tag': ['a', 'b']}, {'files': ['x.txt']})
"""
from collections.abc import Iterable, Mapping

from .arguments import Option, Argument, arrange
from .faults import *
from .utils import *


class ParsingContext:
    """
    Per-invocation parsing state; never shared between invocations.

    Attributes
    - options: option name → scalar, list, or None.
    - arguments: argument name → scalar, list, or None.
    - defaults: names of the multiple options still holding their shared default list.
    - faults: FaultChain, first-to-last.
    - finished: no phase does anything once True.
    - finish_on_error: finish on the first fault (True) or aggregate them.
    - tokens / index: the token array and the cursor after the last phase run
      through Parser.parse(); extra holds what is left.
    """
    __slots__ = (
        "options",
        "arguments",
        "defaults",
        "faults",
        "finished",
        "finish_on_error",
        "tokens",
        "index",
    )

    def __init__(self, tokens=(), /, *, finish_on_error=True):
        self.options = {}
        self.arguments = {}
        self.defaults = set()
        self.faults = FaultChain()
        self.finished = False
        self.finish_on_error = bool(finish_on_error)
        self.tokens = tuple(tokens)
        self.index = 0

    @property
    def fault(self):
        """
        first fault of the chain (the one the command layer reports), or None.
        """
        return self.faults.first

    @property
    def extra(self):
        return list(self.tokens[self.index:])

    def append(self, fault, /):
        self.faults.append(fault)
        if self.finish_on_error:
            self.finished = True

    def __repr__(self):
        return f"parsing-context(options={self.options!r}, arguments={self.arguments!r}, faults={self.faults!r})"


def _resolve_option(x, /):
    """
    accept an Option, a bare spec string, or a mapping of Option keywords with a
    'spec' entry.
    """
    if isinstance(x, Option):
        return x
    if isinstance(x, str):
        return Option(x)
    if isinstance(x, Mapping):
        metadata = dict(x)
        try:
            spec = metadata.pop("spec")
        except KeyError:
            raise TypeError("option mapping must have a 'spec' entry") from None
        return Option(spec, **metadata)
    raise TypeError("parser options must be options, strings or mappings")


def _resolve_argument(x, /):
    """
    accept an Argument, a bare name, or a mapping of Argument keywords with a
    'name' entry.
    """
    if isinstance(x, Argument):
        return x
    if isinstance(x, str):
        return Argument(x)
    if isinstance(x, Mapping):
        metadata = dict(x)
        return Argument(metadata.pop("name", Unset), **metadata)
    raise TypeError("parser arguments must be arguments, strings or mappings")


def _plural(count, word):
    return "%d %s" % (count, word if count == 1 else word + "s")


class Parser:
    """
    Parsing engine bound to one descriptor set (built once, reused per invocation).

    Construction
    - options: iterable of Option | str | Mapping
    - arguments: iterable of Argument | str | Mapping, arranged by arrange()

    Raises
    - TypeError / ValueError for malformed descriptors, two variadic arguments,
      or an alias declared by two options.
    """

    def __init__(self, options=(), arguments=()):
        if not isinstance(options, Iterable) or isinstance(options, str):
            raise TypeError("Parser() options must be an iterable")
        if not isinstance(arguments, Iterable) or isinstance(arguments, str):
            raise TypeError("Parser() arguments must be an iterable")

        self._options = tuple(map(_resolve_option, options))
        self._arguments = arrange(map(_resolve_argument, arguments))

        self._aliases = {}
        for option in self._options:
            for alias in option.aliases:
                if self._aliases.setdefault(alias, option) is not option:
                    raise ValueError(f"option alias {alias!r} is already in use")

    @property
    def options(self):
        return self._options

    @property
    def arguments(self):
        return self._arguments

    def start_parsing(self, tokens=(), /, *, finish_on_error=True):
        """
        Build a fresh context for one invocation over `tokens`.

        Every option starts at its default. A multiple option with a declared
        default shares that list (registered in context.defaults); without a
        default it starts with a new empty list.
        """
        if isinstance(tokens, str) or not isinstance(tokens, Iterable):
            raise TypeError("start_parsing() argument must be an iterable of strings")
        tokens = tuple(tokens)
        for token in tokens:
            if not isinstance(token, str):
                raise TypeError("start_parsing() argument must be an iterable of strings")

        context = ParsingContext(tokens, finish_on_error=finish_on_error)
        for option in self._options:
            if option.multiple:
                # the declared list itself, shared until the first value arrives
                if (default := option._default) is not None:
                    context.defaults.add(option.name)
                else:
                    default = []
                context.options[option.name] = default
            else:
                context.options[option.name] = option._default
        return context

    def parse_next_option(self, context, tokens, index):
        """
        Consume one option at `index`.

        Returns
        - (index, name, value) after a matching option (value is True/False for
          flags, the token for nargs == 1, a list of tokens otherwise).
        - (index, None, None) once option scanning is over: a non-option token,
          the end of input, a bare '--' (consumed), an unknown option (consumed,
          InvalidOption recorded) or a finished context.

        A valued option short of tokens records InadequateArguments and keeps
        whatever was available.
        """
        if context.finished or index >= len(tokens) or not tokens[index].startswith("-"):
            return index, None, None

        token = tokens[index]
        index += 1

        if token == "--":
            return index, None, None

        try:
            option = self._aliases[token]
        except KeyError:
            context.append(InvalidOptionFault(
                'No such option: "%s"' % token,
                token=token,
            ))
            return index, None, None

        if option.flag:
            value = token in option.on
        else:
            values = list(tokens[index:index + option.nargs])
            index += len(values)
            if option.nargs == 1:
                value = values[0] if values else None
            else:
                value = values
            if len(values) < option.nargs:
                context.append(InadequateArgumentsFault(
                    '"%s" option requires %s' % (token, _plural(option.nargs, "argument")),
                    descriptor=option,
                    received=values,
                    input=token,
                ))

        if option.multiple:
            current = context.options.get(option.name)
            if current is None or option.name in context.defaults:
                context.defaults.discard(option.name)
                context.options[option.name] = [value]
            else:
                current.append(value)
        else:
            context.options[option.name] = value

        return index, option.name, value

    def parse_arguments(self, context, tokens, index):
        """
        Consume positional arguments from `index`; return the advanced index.

        A fixed argument short of tokens records InadequateArguments and stops
        positional parsing. The variadic argument takes max(0, remaining - reserved)
        tokens and never runs short.
        """
        if context.finished:
            return index

        for argument in self._arguments:
            nargs = argument.nargs
            if argument.variadic:
                nargs = max(0, len(tokens) - index - argument.reserved)

            values = list(tokens[index:index + nargs])
            index += len(values)
            if argument.nargs == 1:
                context.arguments[argument.name] = values[0] if values else None
            else:
                context.arguments[argument.name] = values

            if len(values) < nargs:
                if values:
                    message = 'Argument "%s" requires %s' % (argument.name, _plural(nargs, "argument"))
                else:
                    message = 'Missing argument "%s"' % argument.name
                context.append(InadequateArgumentsFault(
                    message,
                    descriptor=argument,
                    received=values,
                    input=argument.name,
                ))
                break

        return index

    def finish_parsing(self, context):
        """
        Check required options and mark the context finished.

        An absent required option (None, or an empty list for a multiple one)
        records MissingOption. Returns True when the chain holds any fault.
        """
        if context.finished:
            return bool(context.faults)

        for option in self._options:
            if not option.required:
                continue
            value = context.options.get(option.name)
            if value is None or (option.multiple and not value):
                context.append(MissingOptionFault(
                    'Missing option: "%s"' % '" / "'.join(option.aliases),
                    option=option,
                ))
                if context.finished:
                    break

        context.finished = True
        return bool(context.faults)

    def parse(self, tokens, /, *, finish_on_error=True):
        """
        Run every phase over `tokens`; return the finished context.

        context.index points past the last consumed token and context.extra
        holds the leftovers.
        """
        context = self.start_parsing(tokens, finish_on_error=finish_on_error)
        tokens = context.tokens
        index = 0
        while True:
            index, name, _ = self.parse_next_option(context, tokens, index)
            if name is None:
                break
        context.index = self.parse_arguments(context, tokens, index)
        self.finish_parsing(context)
        return context

    def parse_or_raise(self, tokens, /, *, finish_on_error=True):
        """
        Like parse(), but raise CommandExit (an exception group over the fault
        chain) when any fault was recorded.
        """
        context = self.parse(tokens, finish_on_error=finish_on_error)
        if context.faults:
            raise CommandExit(context.faults)
        return context

    def __repr__(self):
        return f"parser(options={self._options!r}, arguments={self._arguments!r})"


__all__ = (
    "ParsingContext",
    "Parser",
)
