"""
Runopts registry layer: sessions, contexts, declaration and resolution.

What this module provides
- Session: the process-wide service every declaring module receives. It owns
  • the contexts, in declaration order (one per declaring component),
  • the lock state (a global lock context and a command → locking context table),
  • the run mode (RUN, HELP, GENERATE) derived from --help / --generate-help,
  • the terminal and markdown renderers and the debounced static-help writer,
  • the deferred declaration phases drained by capture().

- Context: a named registration scope. Its options live in sub-command
  partitions ("" holds top-level options). Declaring the same option again
  merges the new fields into the existing entry (first write wins per field).

Declaring and resolving
    from runopts import Session, OptionConfig

    session = Session()
    session.bootstrap()                      # --help / --generate-help handling

    context = session.context("Time Travel", "Travel through time")
    values = context.options({
        "time": OptionConfig(type="string", required=True),
        "traveler": OptionConfig(type="string", required=True, multiple=True),
        "location": OptionConfig(type="string", default="X"),
    })

    advanced = context.command("advanced", {
        "speed": OptionConfig(type="number", default=100),
    })                                       # None unless argv starts with 'advanced'

    session.capture()                        # no-op unless collecting help

Faults
- configuration and validation faults go through Session.trigger: in shell mode
  they are printed and end the process, otherwise they are raised.
- duplicate names across contexts are warnings, silenced by `overload` and while
  collecting help metadata.
"""
import atexit
import copy
import os
import sys
import threading
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from rich.console import Console
from rich.text import Text

from . import help, static
from .coercion import coerce
from .faults import *
from .options import OptionConfig, argname, canonical, merge
from .renderers import MarkdownRenderer, TerminalRenderer
from .tokenizer import tokenize
from .utils import Unset, coalesce

DEFAULT_CONTEXT = "General Options"
DEFAULT_HELP_FILE = "RUN.md"

EXIT_HELP = 0
EXIT_GENERATED = 3

console = Console(stderr=True)


class Mode(Enum):
    """
    What the process is doing with its declarations.

    - RUN: normal execution; values are validated.
    - HELP: --help was requested; declarations only feed the help page.
    - GENERATE: --generate-help was requested; declarations feed RUN.md.
    """
    RUN = "run"
    HELP = "help"
    GENERATE = "generate"


def _normalize(configs):
    if not isinstance(configs, dict):
        raise TypeError("option configurations must be a mapping of names to configurations")
    normalized = {}
    for name, config in configs.items():
        config = coalesce(config, OptionConfig())
        if config is None:
            config = OptionConfig()
        if not isinstance(config, OptionConfig):
            raise TypeError(f"option {name!r} configuration must be an option configuration")
        normalized[canonical(name)] = config
    return normalized


class Context:
    """
    Named registration scope for the options of one component.

    Lifecycle
    - created through Session.context(name); asking again for the same name
      returns the same object, so later declarations extend it.
    - never destroyed; lives as long as its session.

    Partitions
    - partitions[""] holds top-level options, partitions["<command>"] the
      options only valid after that sub-command token.
    """

    def __init__(self, session, name, /, description=Unset, *, help_file=Unset):
        if not isinstance(session, Session):
            raise TypeError("context 'session' must be a session")
        if not isinstance(name, str) or not name.strip():
            raise TypeError("context 'name' must be a non-empty string")
        if description is not Unset and not isinstance(description, str):
            raise TypeError("context 'description' must be a string")
        if help_file is not Unset and not isinstance(help_file, str | Path):
            raise TypeError("context 'help_file' must be a string or a path")
        self._session = session
        self._name = name.strip()
        self._description = description
        self._help_file = help_file
        self._partitions = {"": {}}

    @property
    def session(self):
        return self._session

    @property
    def name(self):
        return self._name

    @property
    def description(self):
        return coalesce(self._description, None)

    @description.setter
    def description(self, description):
        if not isinstance(description, str):
            raise TypeError("context 'description' must be a string")
        self._description = description

    @property
    def help_file(self):
        """
        Location of the static help document (own override or the session default).
        """
        return coalesce(self._help_file, self._session.help_file)

    @property
    def partitions(self):
        return MappingProxyType({command: MappingProxyType(partition) for command, partition in self._partitions.items()})

    def subcommand(self, command, /):
        """
        Ensure the partition of `command` exists and return a read-only view of it.
        """
        if not isinstance(command, str):
            raise TypeError("sub-command name must be a string")
        with self._session.guard:
            return MappingProxyType(self._partitions.setdefault(command, {}))

    def __repr__(self):
        return f"context(name={self._name!r}, partitions={list(self._partitions)!r})"

    def __rich_repr__(self):
        yield "name", self._name
        yield "description", self.description
        yield "partitions", {command: list(partition) for command, partition in self._partitions.items()}

    def _check_locks(self, name, config, command):
        if config.overload:
            return
        session = self._session
        if command:
            locker = session._commands.get(command)
            if locker is not None and locker is not self:
                session.trigger(LockedCommandError(
                    "cannot add option %r to command %r: it was closed by context %r" % (
                        argname(name), command, locker.name
                    ),
                    title="locked command",
                    code=FaultCode.LOCKED_COMMAND,
                    hint="declare the option in %r or mark it with overload=True" % locker.name,
                    docs=getdoc(FaultCode.LOCKED_COMMAND),
                    option=name,
                    command=command
                ))
        elif session._lock is not None and session._lock is not self:
            session.trigger(LockedOptionsError(
                "cannot add option %r: options were closed by context %r" % (argname(name), session._lock.name),
                title="locked options",
                code=FaultCode.LOCKED_OPTIONS,
                hint="declare the option in %r or mark it with overload=True" % session._lock.name,
                docs=getdoc(FaultCode.LOCKED_OPTIONS),
                option=name
            ))

    def _owner(self, key, command):
        """
        Find another context that claims `key` where it can meet `command` on one argv.

        Top-level options are parsed on every invocation, so they clash with any
        partition; two different sub-commands never run together.
        """
        for context in self._session.contexts.values():
            if context is self:
                continue
            for other, partition in context._partitions.items():
                if command and other and other != command:
                    continue
                for name, config in partition.items():
                    if key == name or key in config.aliases:
                        return context, config
        return None

    def _check_duplicates(self, name, config, command):
        if config.overload:
            return
        for key in (name, *config.aliases):
            if not (found := self._owner(key, command)):
                continue
            context, other = found
            if other.overload:
                continue
            self._session.trigger(DuplicatedOptionWarning(
                "command line option %s is used by two different contexts: %r and %r" % (
                    argname(key), context.name, self.name
                ),
                title="duplicated option",
                code=FaultCode.DUPLICATED_OPTION,
                hint="rename one of them or mark it with overload=True",
                docs=getdoc(FaultCode.DUPLICATED_OPTION),
                option=key
            ))

    def _check_collectors(self, name, config, partition, command):
        if not config.collect_not_prefixed_args:
            return
        for other, existing in partition.items():
            if other != name and existing.collect_not_prefixed_args:
                self._session.trigger(DuplicatedCollectorError(
                    "options %r and %r both collect arguments without prefix" % (argname(other), argname(name)),
                    title="duplicated collector",
                    code=FaultCode.DUPLICATED_COLLECTOR,
                    hint="only one option per %s may set collect_not_prefixed_args" % (
                        "command %r" % command if command else "context"
                    ),
                    docs=getdoc(FaultCode.DUPLICATED_COLLECTOR),
                    option=name
                ))

    def register(self, name, config=Unset, /, *, command=""):
        """
        Register (or extend) one option and return its merged configuration.

        Behavior
        - locked scopes reject the option unless it is overloaded (fatal).
        - names/aliases already claimed by another context produce a warning,
          except while collecting help metadata.
        - an existing entry keeps its declared fields; only absent ones are filled.
        - a second collect_not_prefixed_args option in the partition is fatal.
        - in generation mode the static help document is (re)scheduled.
        """
        name = canonical(name)
        if not isinstance(command, str):
            raise TypeError("register() command must be a string")
        config = coalesce(config, OptionConfig())
        if not isinstance(config, OptionConfig):
            raise TypeError("register() config must be an option configuration")

        self._check_locks(name, config, command)
        if not self._session.collecting:
            self._check_duplicates(name, config, command)

        with self._session.guard:
            partition = self._partitions.setdefault(command, {})
            if (existing := partition.get(name)) is not None:
                config = merge(existing, config)
            self._check_collectors(name, config, partition, command)
            partition[name] = config

        if self._session.mode is Mode.GENERATE:
            self._session.generate()
        return config

    def declare(self, configs, /, *, command="", allow_other_options=True):
        """
        Register a batch of options; with allow_other_options=False, close the scope.

        Closing the top-level scope sets the session-wide lock: no other context may
        add top-level options afterwards. Closing a command reserves that command
        name for this context.
        """
        if not isinstance(allow_other_options, bool):
            raise TypeError("declare() allow_other_options must be a boolean")
        configs = _normalize(configs)
        for name, config in configs.items():
            self.register(name, config, command=command)

        if allow_other_options:
            return configs

        session = self._session
        if command:
            locker = session._commands.get(command)
            if locker is not None and locker is not self:
                session.trigger(LockedCommandError(
                    "command %r was already closed by context %r" % (command, locker.name),
                    title="locked command",
                    code=FaultCode.LOCKED_COMMAND,
                    hint="declare the command options in %r" % locker.name,
                    docs=getdoc(FaultCode.LOCKED_COMMAND),
                    command=command
                ))
            session._commands[command] = self
        elif session._lock is None:
            session._lock = self
        return configs

    def resolve(self, configs, /, *, command="", strict=False):
        """
        Tokenize the session argv for `configs` and coerce every value.

        Returns
        - dict of option name → typed value.
        - None when `command` is given but the argv does not start with it (or starts
          with an option instead); no per-option checks run in that case.

        Unknown tokens
        - the first one is matched against `command` when a command is expected.
        - bare ones go to the collect_not_prefixed_args option, if any (only one
          unless it is multiple).
        - the rest are fatal in strict mode, ignored otherwise.
        """
        configs = _normalize(configs)
        partition = self._partitions.get(command, {})
        configs = {name: partition.get(name, config) for name, config in configs.items()}

        session = self._session
        checks = not session.collecting

        string, boolean, collect = [], [], []
        alias, default = {}, {}
        collector = None
        for name, config in configs.items():
            (boolean if config.type == "boolean" else string).append(name)
            for other in config.aliases:
                alias[other] = name
            if "default" in config:
                default[name] = config.default
            if config.multiple:
                collect.append(name)
            if config.collect_not_prefixed_args:
                collector = name

        state = {"valid": True, "expecting": bool(command)}
        buffer = []

        def unknown(token, key, value):
            if state["expecting"]:
                state["expecting"] = False
                if key is not None or token != command:
                    state["valid"] = False
                return
            if not state["valid"]:
                return
            if key is None and collector is not None:
                if buffer and not configs[collector].multiple and checks:
                    session.trigger(TooManyArgumentsError(
                        "too many arguments for option %r: %r and %r" % (argname(collector), buffer[0], token),
                        title="too many arguments",
                        code=FaultCode.TOO_MANY_ARGUMENTS,
                        hint="pass a single value or quote it",
                        docs=getdoc(FaultCode.TOO_MANY_ARGUMENTS),
                        option=collector,
                        token=token
                    ))
                buffer.append(token)
                return
            if strict and checks:
                session.trigger(InvalidOptionError(
                    "invalid option %r" % token,
                    title="invalid option",
                    code=FaultCode.INVALID_OPTION,
                    hint="run with --help to see all available options",
                    docs=getdoc(FaultCode.INVALID_OPTION),
                    token=token
                ))

        parsed = tokenize(
            session.argv,
            string=string,
            boolean=boolean,
            alias=alias,
            default=default,
            collect=collect,
            unknown=unknown
        )

        # a command that never showed up was not invoked
        if state["expecting"] or not state["valid"]:
            return None

        values = {}
        for name, config in configs.items():
            raw = parsed.values.get(name)
            if name == collector and buffer:
                if config.multiple:
                    # bare arguments replace the declared default
                    raw = [*(raw if name in parsed.supplied else []), *buffer]
                else:
                    raw = buffer[0]
            values[name] = coerce(
                raw,
                config,
                name,
                supplied=parsed.supplied.get(name, Unset),
                checks=checks,
                report=session.trigger
            )
        return values

    def option(self, name, config=Unset, /, *, command=""):
        """
        Register one option and return its value (None if `command` was not invoked).
        """
        if not isinstance(name, str):
            raise TypeError("option() name must be a string")
        values = self.resolve({name: self.register(name, config, command=command)}, command=command)
        return None if values is None else values[canonical(name)]

    def options(self, configs, /, *, allow_other_options=True):
        """
        Declare top-level options and return their values.

        With allow_other_options=False the top-level scope is closed and tokens
        that match no option are fatal.
        """
        configs = self.declare(configs, allow_other_options=allow_other_options)
        return self.resolve(configs, strict=not allow_other_options)

    def command(self, name, configs=Unset, /, *, allow_other_options=True):
        """
        Declare the options of sub-command `name` and return their values,
        or None when the argv does not invoke `name`.
        """
        if not isinstance(name, str) or not name.strip():
            raise TypeError("command() name must be a non-empty string")
        configs = self.declare(coalesce(configs, {}), command=name, allow_other_options=allow_other_options)
        self.subcommand(name)
        return self.resolve(configs, command=name, strict=not allow_other_options)


class Session:
    """
    Process-wide option service, passed explicitly to every declaring module.

    Parameters
    - argv: Iterable[str] | Unset
      tokens to resolve (defaults to sys.argv[1:]).
    - prog: str | Unset
      program name shown in fault headers (defaults to basename of sys.argv[0]).
    - help_file: str | Path | Unset
      default static help location (defaults to RUN.md in the working directory).
    - shell: bool
      print faults and exit (True) or raise them (False).
    - fancy, colorful: bool
      fault and help styling.
    - window: float
      debounce window in seconds for static help writes.
    """

    def __init__(
            self,
            argv=Unset,
            /,
            *,
            prog=Unset,
            help_file=Unset,
            shell=True,
            fancy=False,
            colorful=True,
            window=1.0
    ):
        argv = coalesce(argv, sys.argv[1:])
        if isinstance(argv, str):
            raise TypeError("session 'argv' must be an iterable of strings")
        argv = list(argv)
        if not all(isinstance(token, str) for token in argv):
            raise TypeError("session 'argv' must be an iterable of strings")
        for name, value in (("shell", shell), ("fancy", fancy), ("colorful", colorful)):
            if not isinstance(value, bool):
                raise TypeError(f"session {name!r} must be a boolean")
        help_file = coalesce(help_file, DEFAULT_HELP_FILE)
        if not isinstance(help_file, str | Path):
            raise TypeError("session 'help_file' must be a string or a path")
        if static.local(help_file) is not None:
            help_file = Path.cwd() / static.local(help_file)

        self._argv = argv
        self._prog = coalesce(prog, os.path.basename(sys.argv[0]) or "runopts")
        self._help_file = help_file
        self._contexts = {}
        self._lock = None
        self._commands = {}
        self._mode = Mode.RUN
        self._default = None
        self._deferred = []
        self._loaded = False
        self._exit = None
        self.guard = threading.RLock()
        self.shell = shell
        self.fancy = fancy
        self.colorful = colorful
        self.terminal = TerminalRenderer(colorful)
        self.markdown = MarkdownRenderer()
        self.writer = static.Debouncer(window)

    @property
    def argv(self):
        return tuple(self._argv)

    @property
    def prog(self):
        return self._prog

    @property
    def help_file(self):
        return self._help_file

    @property
    def mode(self):
        return self._mode

    @property
    def collecting(self):
        """
        True while declarations only feed help output (HELP or GENERATE mode).
        """
        return self._mode is not Mode.RUN

    @property
    def default(self):
        """
        The "General Options" context created by bootstrap(), or None.
        """
        return self._default

    @property
    def contexts(self):
        return MappingProxyType(self._contexts)

    @property
    def target(self):
        return static.target(self)

    def context(self, name, /, description=Unset, *, help_file=Unset):
        """
        Create the context `name`, or return the existing one (filling a missing description).
        """
        if not isinstance(name, str) or not name.strip():
            raise TypeError("context() name must be a non-empty string")
        if (context := self._contexts.get(name.strip())) is not None:
            if description is not Unset and context.description is None:
                context.description = description
            return context
        with self.guard:
            context = self._contexts.setdefault(name.strip(), Context(self, name, description, help_file=help_file))
        if self._mode is Mode.GENERATE:
            self.generate()
        return context

    def trigger(self, fault, /, **options):
        """
        Surface a fault with this session's ui flags merged in.
        """
        if (
                not hasattr(fault, "__trigger__") or
                not callable(fault.__trigger__) or
                not hasattr(fault, "__replace__") or
                not callable(fault.__replace__)
        ):
            raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
        fault = copy.replace(fault, **{
            "prog": self.prog,
            "shell": self.shell,
            "fancy": self.fancy,
            "colorful": self.colorful,
            **options
        })
        trigger(fault)

    def bootstrap(self):
        """
        Declare the built-in options and enter the matching mode.

        - --generate-help: GENERATE mode; the document is scheduled now and on every
          later declaration. The process ends with EXIT_GENERATED at capture() or,
          at the latest, at interpreter exit.
        - --help / -h: HELP mode; if the static document can be read, help is
          printed from it right away and the process exits. Otherwise the program
          keeps running to collect declarations; help is printed (exit 0) at
          capture() or, at the latest, at interpreter exit.
        """
        if self._default is not None:
            return self._default

        context = self._default = self.context(DEFAULT_CONTEXT)
        helping = context.option("help", OptionConfig(
            type="boolean",
            aliases=["h"],
            description="Show the help page"
        ))
        generating = context.option("generate-help", OptionConfig(
            type="boolean",
            dev=True,
            description="Run the program with this option to update this help page"
        ))

        if generating:
            self._mode = Mode.GENERATE
            console.print(Text("generating help page in %s (can be displayed with --help)" % self.target, style="dim"))
            atexit.register(self._shutdown)
            self.generate()
        elif helping:
            self._mode = Mode.HELP
            if self.load():
                self.print_help(keep_order=True)
                sys.exit(EXIT_HELP)
            atexit.register(self._shutdown)
        return context

    def defer(self, callback, /):
        """
        Wrap a deferred declaration phase so it runs at most once.

        The host calls the returned function when the phase is reached; capture()
        runs any phase that has not been reached yet while collecting help.
        """
        if not callable(callback):
            raise TypeError("defer() argument must be callable")
        done = False

        def phase(*args, **kwargs):
            nonlocal done
            if done:
                return None
            done = True
            return callback(*args, **kwargs)

        self._deferred.append(phase)
        return phase

    def capture(self):
        """
        Hold the program while collecting help metadata, then finish the process.

        - RUN mode: returns immediately.
        - HELP mode: runs pending deferred phases, prints help and exits with 0.
        - GENERATE mode: runs pending deferred phases, writes the document now and
          exits with EXIT_GENERATED.
        """
        if not self.collecting:
            return
        sys.exit(self._conclude())

    def _conclude(self):
        # runs once, whichever of capture() and the exit hook gets here first
        if self._exit is None:
            while self._deferred:
                self._deferred.pop(0)()
            if self._mode is Mode.HELP:
                self.print_help(keep_order=self._loaded)
                self._exit = EXIT_HELP
            else:
                self.writer.flush()
                self._exit = EXIT_GENERATED
        return self._exit

    def _shutdown(self):
        """
        Interpreter exit hook for HELP and GENERATE modes.

        Finishes the collection when the program ends without calling capture(),
        then terminates with the mode's exit status. An exception raised inside an
        atexit handler cannot change the status, so the process ends through
        os._exit once the standard streams are flushed; handlers registered before
        this one do not run.
        """
        code = self._conclude()
        sys.stdout.flush()
        sys.stderr.flush()
        os._exit(code)

    def render(self, renderer, /, *, keep_order=False):
        """
        Render every context through `renderer`; the default context comes last.
        """
        with self.guard:
            document, _ = help.render(self._contexts.values(), renderer, keep_order=keep_order, default=self._default)
        return document

    def print_help(self, *, keep_order=False):
        output = Console(highlight=False, soft_wrap=True)
        output.print(Text.from_ansi(self.render(self.terminal, keep_order=keep_order)), end="")

    def generate(self):
        """
        Schedule a (debounced) write of the static help document.

        Returns False, after a warning, when no context exists yet.
        """
        if not self._contexts:
            self.trigger(NoContextsWarning(
                "no command line options registered yet",
                title="nothing to generate",
                code=FaultCode.MISSING_CONTEXTS,
                hint="declare options before generating the help page",
                docs=getdoc(FaultCode.MISSING_CONTEXTS)
            ))
            return False
        self.writer.schedule(self.write)
        return True

    def write(self, path=Unset, /):
        """
        Write the static help document now; returns its path.
        """
        with self.guard:
            return static.write(self, path)

    def load(self, path=Unset, /):
        """
        Register the options described by the static help document.

        Returns False, after a warning, when the document cannot be read.
        """
        if not static.load(self, path):
            self.trigger(StaticHelpWarning(
                "no static help file found at %s" % coalesce(path, self.target),
                title="no static help",
                code=FaultCode.MISSING_STATIC_HELP,
                hint="run the program with --generate-help to create it",
                docs=getdoc(FaultCode.MISSING_STATIC_HELP)
            ))
            return False
        self._loaded = True
        return True


__all__ = (
    "DEFAULT_CONTEXT",
    "DEFAULT_HELP_FILE",
    "EXIT_HELP",
    "EXIT_GENERATED",
    "Mode",
    "Context",
    "Session",
)
