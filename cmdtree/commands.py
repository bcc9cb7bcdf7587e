"""
cmdtree command layer: build, compose, and run command trees.

What this module provides
- Command: the dispatch engine shared by every node. Owns one Parser (its
  descriptors plus an injected builtin --help flag), the carry-over buffer of
  unconsumed tokens (extra), the ignore_extra flag and an opaque context value
  handed down to children.
- CommandGroup: resolves the first leftover token to a named child and runs it,
  once, or repeatedly in chain mode.
- FunctionCommand: leaf handing the parsed values to a Python callback.
- ScriptCommand: leaf running a Python file with the parsed values in its globals.
- execute(command, proc, tokens) / main(...): entry points.

Dispatch states
    Init → ParsingOptions → ParsingArguments → {HelpRequested | ErrorHalted | Validated}
         → Executing → Done

Return codes
- None, True and 0 mean success; anything else is a failure code and travels
  up the tree verbatim (see is_failed).
- Parse faults, unknown or missing subcommands and unexpected leftovers are
  reported (usage line + "[error] ..." line) and mapped to -1.

Output
- Every line goes through the `echo` sink as a rich Text. The default sink
  prints on a shared rich Console; tests inject a list.append.

Quick start
    from cmdtree import CommandGroup, Option, Argument, main

    cli = CommandGroup(descr="Build tool.", chain=True)

    @cli.command("build", arguments=[Argument("target")])
    def build(options, arguments):
        print("building", arguments["target"])

    @cli.command("test", options=[Option("-v, --verbose / --quiet")], arguments=[Argument("suite")])
    def test(options, arguments):
        print("testing", arguments["suite"], options["verbose"])

    if __name__ == "__main__":
        main(cli)        # e.g. `tool build x test -v y`
"""
import copy
import inspect
import os
import runpy
import shlex
import sys
from collections.abc import Iterable, Mapping

from rich.console import Console
from rich.text import Text

from .arguments import ArgumentType, Option
from .faults import *
from .faults import palette
from .parsing import Parser
from .utils import *

console = Console(highlight=False)

# value-map key of the builtin help flag; "$" keeps it apart from alias-derived names
HELP = "$help"
BUILTINS = (HELP,)


def _print(line):
    console.print(line, soft_wrap=True)


def is_failed(code):
    """
    True for any return code other than None, True or 0.
    """
    if code is None or code is True:
        return False
    return isinstance(code, bool) or code != 0


class CommandType(ArgumentType):
    """
    Metaclass for commands: same introspection plumbing as the descriptors
    (__typename__, mirrored read-only fields, stable repr).
    """


class Command(metaclass=CommandType):
    """
    Base dispatch engine for one command node.

    Capabilities (shared by every node)
    - execute(proc, tokens): run the node, return a return code.
    - description: one-line description shown by a parent's help.
    - usage_pattern(proc): "proc [OPTIONS] ARGS..." line.
    - help(proc): full help page.

    Configuration
    - descr: description (defaults to "<ClassName>").
    - options / arguments: descriptors (Option | str | Mapping, Argument | str | Mapping).
    - help_option: spec of the builtin help flag ("--help" by default), a mapping
      of Option keywords, or False to disable it.
    - echo: sink called with one rich Text per output line.
    - colorful: style output lines with the palette (see faults.palette).
    - fancy: show the fault code in error lines ("[error 11112] ...").
    - options_metavar / arguments_metavar: override the "[OPTIONS]" and the
      positional parts of the usage line.

    State
    - extra: tokens left over by the last parse (read-only copy).
    - ignore_extra: leftovers are not an error (set by parents in chain mode).
    - context: opaque value inherited from the parent.
    """

    __introspectable__ = (
        "descr",
        "extra",
        "colorful",
        "fancy",
    )

    __displayable__ = (
        "descr",
    )

    def __init__(
            self,
            *,
            descr=Unset,
            options=(),
            arguments=(),
            help_option=Unset,
            echo=Unset,
            colorful=False,
            fancy=False,
            options_metavar=Unset,
            arguments_metavar=Unset,
    ):
        if not isinstance(descr, str | Unset):
            raise TypeError(f"{type(self).__typename__} 'descr' must be a string")
        if not isinstance(options, Iterable) or isinstance(options, str):
            raise TypeError(f"{type(self).__typename__} 'options' must be an iterable")
        for name, metavar in (("options_metavar", options_metavar), ("arguments_metavar", arguments_metavar)):
            if not isinstance(metavar, str | Unset):
                raise TypeError(f"{type(self).__typename__} {name!r} must be a string")
        if not callable(echo := coalesce(echo, _print)):
            raise TypeError(f"{type(self).__typename__} 'echo' must be callable")

        options = list(options)
        self._options_metavar = coalesce(options_metavar, "[OPTIONS]" if options else "")
        if (help := self._make_help_option(help_option)) is not None:
            options.append(help)

        self._parser = Parser(options, arguments)
        self._arguments_metavar = coalesce(
            arguments_metavar,
            " ".join(argument.metavar for argument in self._parser.arguments),
        )
        self._descr = coalesce(descr)
        self._echo = echo
        self._colorful = bool(colorful)
        self._fancy = bool(fancy)
        self._extra = []
        self.ignore_extra = False
        self.context = None

    def _make_help_option(self, help_option):
        """
        build the builtin help flag, stored under the reserved HELP key.
        """
        if help_option is False:
            return None
        metadata = {"help": "Show this message and exit."}
        if help_option is Unset:
            spec = "--help"
        elif isinstance(help_option, str):
            spec = help_option
        elif isinstance(help_option, Mapping):
            metadata |= help_option
            try:
                spec = metadata.pop("spec")
            except KeyError:
                raise TypeError(f"{type(self).__typename__} 'help_option' mapping must have a 'spec' entry") from None
        else:
            raise TypeError(f"{type(self).__typename__} 'help_option' must be a string, a mapping or False")
        return Option(spec, **metadata | {"name": HELP, "is_flag": True})

    @property
    def parser(self):
        return self._parser

    @property
    def description(self):
        return self._descr or "<%s>" % type(self).__name__

    # ── Output ───────────────────────────────────────────────────────────────

    def _text(self, fragment, style=""):
        if not self._colorful or not style:
            return Text(str(fragment))
        return Text(str(fragment), palette()[style])

    def echo(self, *fragments):
        """
        hand one line to the sink (fragments are joined without separators).
        """
        self._echo(Text.assemble(*(
            fragment if isinstance(fragment, Text) else self._text(fragment) for fragment in fragments
        )))

    def usage_pattern(self, proc):
        return " ".join(part for part in (proc, self._options_metavar, self._arguments_metavar) if part)

    def usage(self, proc, describe=False):
        self.echo(self._text("Usage: ", "usage-label"), self._text(self.usage_pattern(proc), "usage-pattern"))
        if describe and self.description:
            self.echo()
            self.echo("  ", self._text(self.description, "description"))

    def _describe(self, title, rows):
        """
        print a titled two-column section; the first column is padded to at
        least 19 characters and grows by steps of 4 for longer labels.
        """
        if not rows:
            return
        width = 19
        for label, _ in rows:
            if len(label) >= width:
                width = 4 * ((len(label) + 3) // 4) - 1
        self.echo()
        self.echo(self._text(title, "section-label"))
        for label, descr in rows:
            if descr:
                self.echo("  ", self._text(label.ljust(width), "name"), "  ", self._text(descr, "description"))
            else:
                self.echo("  ", self._text(label, "name"))

    def help(self, proc):
        self.usage(proc, True)
        self._describe("Options:", [
            ((option.spec + " " + option.metavar).rstrip(), option.help or "")
            for option in self._parser.options
        ])
        self._describe("Arguments:", [
            (argument.metavar, argument.help)
            for argument in self._parser.arguments if argument.help is not None
        ])

    def report(self, proc, fault, /, *, usage=True):
        """
        print the usage line (unless usage=False) and the fault as "[error] ...".
        """
        if usage:
            self.usage(proc)
            self.echo()
        self.echo(copy.replace(fault, colorful=self._colorful, fancy=self._fancy).__rich__())

    # ── Dispatch ─────────────────────────────────────────────────────────────

    def shift(self, count, tokens=Unset, /):
        """
        drop the first `count` tokens (of `tokens`, or of extra) and store the
        rest as the new extra.
        """
        tokens = list(coalesce(tokens, self._extra))
        self._extra = tokens[count:] if count > 0 else tokens
        return list(self._extra)

    def check_extra(self, proc):
        """
        False (after reporting) when tokens are left over and not ignored.
        """
        if self.ignore_extra or not self._extra:
            return True
        self.report(proc, ExtraArgumentsFault(
            "Got unexpected extra %s (%s)" % (
                "arguments" if len(self._extra) > 1 else "argument",
                " ".join(self._extra),
            ),
            leftover=list(self._extra),
        ))
        return False

    def parse_options(self, proc, tokens=Unset, /, *, builtins=True):
        """
        Parse `tokens` (or the current extra) against this node's descriptors.

        Returns
        - (0, None, None) when a builtin flag (help) was met while scanning
          options: help is printed, positional parsing and required checks are
          skipped.
        - (-1, fault, None) on a fault: usage and the first fault are printed.
        - (None, options, arguments) otherwise; builtin keys are left out of
          the option map.

        In every case the unconsumed tokens become the new extra.
        """
        tokens = list(coalesce(tokens, self._extra))
        actions = BUILTINS if builtins else ()
        parser = self._parser

        context = parser.start_parsing(tokens)
        action = None
        index = 0
        while True:
            index, name, _ = parser.parse_next_option(context, tokens, index)
            if name is None:
                break
            if action := next((action for action in actions if context.options.get(action)), None):
                break

        if action is None:
            index = parser.parse_arguments(context, tokens, index)
            parser.finish_parsing(context)

        context.index = index
        self._extra = tokens[index:]

        if action == HELP:
            self.help(proc)
            return 0, None, None

        if context.faults:
            self.report(proc, context.fault)
            return -1, context.fault, None

        options = {name: value for name, value in context.options.items() if name not in BUILTINS}
        return None, options, context.arguments

    def execute(self, proc, tokens=Unset, /):
        raise NotImplementedError(f"{type(self).__typename__} must implement execute()")


class CommandGroup(Command):
    """
    Command node dispatching to named children.

    Configuration (on top of Command's)
    - chain: run several children in one go, each consuming a prefix of the
      leftovers (their leftovers are never an error on their own).
    - entry: optional hook called with (options, arguments) after the group's
      own parse; a non-None result is returned right away.
    - metavar: subcommand label of the usage line.
    - pass_command: call entry as entry(group, options, arguments).
    """

    __introspectable__ = (
        "descr",
        "extra",
        "colorful",
        "fancy",
        "chain",
        "children",
    )

    __displayable__ = (
        "descr",
        "chain",
        "children",
    )

    def __init__(self, *, chain=False, entry=Unset, metavar=Unset, pass_command=False, **options):
        super().__init__(**options)
        if entry is not Unset and not callable(entry):
            raise TypeError(f"{type(self).__typename__} 'entry' must be callable")
        if not isinstance(metavar, str | Unset):
            raise TypeError(f"{type(self).__typename__} 'metavar' must be a string")
        self._chain = bool(chain)
        self._entry = entry
        self._pass_command = bool(pass_command)
        self._children = {}
        if self._chain:
            self._metavar = coalesce(metavar, "COMMAND1 [ARGS]... [COMMAND2 [ARGS]...]...")
        else:
            self._metavar = coalesce(metavar, "COMMAND [ARGS]...")

    def add(self, name, command, /):
        """
        Register `command` under `name` (exact, case-sensitive); returns it.
        """
        if not isinstance(name, str):
            raise TypeError(f"{type(self).__typename__} command name must be a string")
        elif not (name := name.strip()):
            raise ValueError(f"{type(self).__typename__} command name cannot be empty")
        if not isinstance(command, Command):
            raise TypeError(f"{type(self).__typename__} child must be a command")
        if self._children.setdefault(name, command) is not command:
            raise ValueError(f"{type(self).__typename__} command name {name!r} is already in use")
        return command

    def command(self, name=Unset, /, **options):
        """
        Decorator: wrap a callback into a FunctionCommand registered under `name`
        (the callback's name by default).
        Output settings (echo, colorful, fancy) are inherited unless given.
        """
        options = {"echo": self._echo, "colorful": self._colorful, "fancy": self._fancy} | options

        @rename("command")
        def wrapper(callback, /):
            return self.add(coalesce(name, getattr(callback, "__name__", Unset)), FunctionCommand(callback, **options))
        return wrapper

    def group(self, name=Unset, /, **options):
        """
        Decorator: register a nested CommandGroup whose entry hook is the callback.
        Output settings are inherited unless given.
        """
        options = {"echo": self._echo, "colorful": self._colorful, "fancy": self._fancy} | options

        @rename("group")
        def wrapper(callback, /):
            return self.add(coalesce(name, getattr(callback, "__name__", Unset)), CommandGroup(entry=callback, **options))
        return wrapper

    def usage_pattern(self, proc):
        return super().usage_pattern(proc) + " " + self._metavar

    def help(self, proc):
        super().help(proc)
        self._describe("Commands:", [
            (name, self._children[name].description) for name in sorted(self._children)
        ])

    def _resolve(self, proc, name):
        try:
            return self._children[name]
        except KeyError:
            self.report(proc, UnknownCommandFault('No such command: "%s"' % name, input=name))
            return None

    def execute(self, proc, tokens=Unset, /):
        received = list(coalesce(tokens, self._extra))
        code, options, arguments = self.parse_options(proc, received)
        if code is not None:
            return code

        if self._entry is not Unset:
            if self._pass_command:
                code = self._entry(self, options, arguments)
            else:
                code = self._entry(options, arguments)
            if code is not None:
                return code

        tokens = list(self._extra)
        if not tokens:
            # nothing given at all: behave like --help
            if len(received) == 0:
                self.help(proc)
                return 0
            self.report(proc, MissingCommandFault("Missing command."))
            return -1

        name = tokens[0]
        if not self._chain:
            if (child := self._resolve(proc, name)) is None:
                return -1
            child.context = self.context
            child.ignore_extra = self.ignore_extra
            code = child.execute(proc + " " + name, self.shift(1, tokens))
            self._extra = list(child.extra)
            if is_failed(code):
                return code
        else:
            while name is not None:
                if (child := self._resolve(proc, name)) is None:
                    return -1
                child.context = self.context
                child.ignore_extra = True
                code = child.execute(proc + " " + name, self.shift(1, tokens))
                if is_failed(code):
                    return code
                tokens = self._extra = list(child.extra)
                name = tokens[0] if tokens else None

        if not self.check_extra(proc):
            return -1
        return 0


class FunctionCommand(Command):
    """
    Leaf command calling `callback(options, arguments)`, or
    `callback(command, options, arguments)` with pass_command=True.

    The description defaults to the first line of the callback's docstring.
    """

    def __init__(self, callback, /, *, pass_command=False, **options):
        if not callable(callback):
            raise TypeError("function-command callback must be callable")
        if "descr" not in options and (doc := inspect.getdoc(callback)):
            options["descr"] = doc.splitlines()[0]
        super().__init__(**options)
        self._callback = callback
        self._pass_command = bool(pass_command)

    @property
    def callback(self):
        return self._callback

    def execute(self, proc, tokens=Unset, /):
        code, options, arguments = self.parse_options(proc, tokens)
        if code is not None:
            return code
        if not self.check_extra(proc):
            return -1
        if self._pass_command:
            return self._callback(self, options, arguments)
        return self._callback(options, arguments)


class ScriptCommand(Command):
    """
    Leaf command running a Python file.

    The file runs through runpy.run_path with __command__, __options__ and
    __arguments__ seeded in its globals. When it defines a callable `main`, the
    result of main(proc, *consumed_tokens) is the return code; otherwise the
    run counts as a success. A file that cannot be read or compiled is reported
    and mapped to -1.
    """

    def __init__(self, path, /, **options):
        if not isinstance(path, str | os.PathLike):
            raise TypeError("script-command path must be a string or a path")
        options.setdefault("descr", "Execute file '%s'" % os.fspath(path))
        super().__init__(**options)
        self._path = os.fspath(path)

    @property
    def path(self):
        return self._path

    def execute(self, proc, tokens=Unset, /):
        received = list(coalesce(tokens, self._extra))
        code, options, arguments = self.parse_options(proc, received)
        if code is not None:
            return code
        if not self.check_extra(proc):
            return -1

        consumed = received[:len(received) - len(self._extra)]
        try:
            namespace = runpy.run_path(self._path, init_globals={
                "__command__": self,
                "__options__": options,
                "__arguments__": arguments,
            })
        except (OSError, SyntaxError) as error:
            self.report(proc, ScriptLoadFault("Failed to load file: %s" % error, path=self._path), usage=False)
            return -1

        if callable(main := namespace.get("main")):
            return main(proc, *consumed)
        return None


def _tokenize(tokens, /):
    """
    normalize the tokens given to execute(): Unset → sys.argv[1:], str → shlex
    split, iterable → list of strings.
    """
    if tokens is Unset:
        return sys.argv[1:]
    if isinstance(tokens, str):
        return shlex.split(tokens)
    if isinstance(tokens, Iterable):
        tokens = list(tokens)
        for token in tokens:
            if not isinstance(token, str):
                raise TypeError("execute() tokens must be a string or an iterable of strings")
        return tokens
    raise TypeError("execute() tokens must be a string or an iterable of strings")


def execute(command, proc, tokens=Unset, /, *, context=Unset):
    """
    Run the root of a command tree.

    Parameters
    - command: Command
    - proc: str, the program name shown in usage lines.
    - tokens: Unset (sys.argv[1:]) | str (shell-like, split with shlex) | Iterable[str]
    - context: opaque value handed to every node (a new dict by default).

    Returns
    - the return code of the tree (see is_failed).
    """
    if not isinstance(command, Command):
        raise TypeError("execute() first argument must be a command")
    if not isinstance(proc, str):
        raise TypeError("execute() second argument must be a string")
    command.context = {} if context is Unset else context
    command.ignore_extra = False
    return command.execute(proc, _tokenize(tokens))


def main(command, proc=Unset, tokens=Unset, /):
    """
    Run the tree and exit the process.

    The exit status is 0 on success, the return code itself when it is an
    integer, and -1 for any other failure value. The program name defaults to
    __main__.__prog__, then to the basename of sys.argv[0].
    """
    if proc is Unset:
        proc = getattr(__import__("__main__"), "__prog__", os.path.basename(sys.argv[0]))
    code = execute(command, proc, tokens)
    if not is_failed(code):
        code = 0
    elif not isinstance(code, int) or isinstance(code, bool):
        code = -1
    raise SystemExit(code)


__all__ = (
    "Command",
    "CommandGroup",
    "FunctionCommand",
    "ScriptCommand",
    "is_failed",
    "execute",
    "main",
)
