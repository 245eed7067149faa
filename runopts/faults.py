"""
Runopts faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for all operator-facing issues
  (errors and warnings). Codes are grouped by domain to keep copy consistent
  and make logs/searches predictable.
- OptionException / OptionWarning: base types that carry message + options and
  know how to render themselves in a friendly, lowercased, and actionable way.
- trigger(): central entry point to surface any fault (respecting shell/fancy/colorful).
- getdoc(): optional description lookup for a code from the host application.

Taxonomy
- configuration errors: programmer mistakes in declarations (duplicate collectors,
  registering into a locked scope). always fatal.
- validation errors: bad operator input (missing option, non-numeric value, empty
  string, stray arguments, unknown option in a strict context). always fatal.
- warnings: reported, execution continues (name clashes between contexts, missing
  static help document, generation requested before any context exists).

Integration
- The registry builds a fault and hands it to Session.trigger(fault), which merges
  the session ui flags and calls trigger().
- In shell mode, exceptions are printed via rich and the process exits with status 1;
  outside shell mode they are raised so library callers and tests can observe them.
"""
import copy
import inspect
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

from .utils import Unset

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the registry (stable identifiers).

    grouping (by high-level domain)
    - configuration (1110x)
      • DUPLICATED_COLLECTOR, LOCKED_OPTIONS, LOCKED_COMMAND
    - validation (1111x)
      • MISSING_OPTION, INVALID_NUMBER, EMPTY_STRING, TOO_MANY_ARGUMENTS, INVALID_OPTION
    - warnings (121xx)
      • DUPLICATED_OPTION, MISSING_STATIC_HELP, MISSING_CONTEXTS

    spacing leaves room for future additions without reshuffling existing codes.
    """
    # --- configuration errors (11xxx) ---
    DUPLICATED_COLLECTOR = 11101
    LOCKED_OPTIONS       = 11102
    LOCKED_COMMAND       = 11103

    # --- validation errors (11xxx) ---
    MISSING_OPTION       = 11111
    INVALID_NUMBER       = 11112
    EMPTY_STRING         = 11113
    TOO_MANY_ARGUMENTS   = 11114
    INVALID_OPTION       = 11115

    # --- warnings (12xxx) ---
    DUPLICATED_OPTION    = 12111
    MISSING_STATIC_HELP  = 12121
    MISSING_CONTEXTS     = 12122

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__
        to override numeric ids with friendlier labels. when no mapping
        is present, the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _render(fault, palette, kind):
    """
    build the rich renderable shared by exceptions and warnings.

    layout
    - header: "[ prog — code | title ]"
    - body: message, then "→ hint", then the optional docs line.
    - fancy: the body is wrapped into a Panel titled by the header.
    """
    styles = defaultdict(str, palette | getattr(__import__("__main__"), "__styles__", {}))
    colorful = fault.options.get("colorful", False)

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if not colorful:
            return Text(str(fragment))
        if isinstance(fragment, Text):
            return fragment
        return Text(str(fragment), styles[style])

    prog = getattr(__import__("__main__"), "__prog__", fault.options.get("prog", "runopts"))
    code = fault.options.get("code")

    header = Text.assemble(
        "[ ",
        text(prog, "prog-name"),
        " — ",
        text(code.normalize() if isinstance(code, FaultCode) else "", "code"),
        " | ",
        text(str(fault.options.get("title", kind)).title(), kind + "-title"),
        " ]"
    )
    body = [text(fault.message, kind + "-message")]
    if hint := fault.options.get("hint"):
        body.append(Text.assemble(text(" → ", "hint-arrow"), text(hint, "hint")))
    if docs := fault.options.get("docs"):
        body.append(text(docs, "docs"))

    if fault.options.get("fancy", False):
        return Panel(Group(*body), title=header, title_align="left")
    return Group(header, *body)


class OptionException(Exception):
    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",  # near-white program name
            "code": "bold #00E5FF",  # neon cyan fault code
            "error-title": "bold #FF4DA6",  # friendly pinky title

            # body
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
            "docs": "#737373",
        }, "error")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            raise self from None
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class ConfigurationError(OptionException): ...
class DuplicatedCollectorError(ConfigurationError): ...
class LockedOptionsError(ConfigurationError): ...
class LockedCommandError(ConfigurationError): ...

class ValidationError(OptionException): ...
class MissingOptionError(ValidationError): ...
class InvalidNumberError(ValidationError): ...
class EmptyStringError(ValidationError): ...
class TooManyArgumentsError(ValidationError): ...
class InvalidOptionError(ValidationError): ...


class OptionWarning(Warning):
    def __init__(self, message=Unset, /, **options):
        assert isinstance(message, str | Unset)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        return _render(self, {
            # header parts
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",  # amber fault code for warnings
            "warning-title": "bold #FFC2E0",

            # body
            "warning-message": "#D6D6DE",
            "hint-arrow": "#B8EFAF dim",
            "hint": "italic #B8EFAF",
            "docs": "#737373",
        }, "warning")

    def __trigger__(self) -> None:
        if not self.options.get("shell", False):
            return warnings.warn(self, stacklevel=len(inspect.stack()))
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "positional arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class DuplicatedOptionWarning(OptionWarning): ...
class StaticHelpWarning(OptionWarning): ...
class NoContextsWarning(OptionWarning): ...


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via __replace__(**options) before triggering.
    - in shell mode, rendering happens via rich console; otherwise, exceptions are raised
      and warnings go through the warnings module.

    typical options
    - prog, shell, fancy, colorful, title, code, hint, docs, and any other context
      the reporter may want to keep (e.g., option/command/token).
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    copy.replace(fault, **options).__trigger__()


def getdoc(code, /):
    """
    optional documentation fetch for a fault code.

    lookup
    - the host application may expose a __docs__ mapping in __main__ where keys
      are FaultCode instances and values are short documentation strings.
    - when not found, returns None (renderers treat docs as optional).
    """
    if not isinstance(code, FaultCode):
        raise TypeError("getdoc() argument must be an fault-code")
    try:
        return getattr(__import__("__main__"), "__docs__", {})[code]
    except KeyError:
        return None


__all__ = (
    "FaultCode",
    "OptionException",
    "ConfigurationError",
    "DuplicatedCollectorError",
    "LockedOptionsError",
    "LockedCommandError",
    "ValidationError",
    "MissingOptionError",
    "InvalidNumberError",
    "EmptyStringError",
    "TooManyArgumentsError",
    "InvalidOptionError",
    "OptionWarning",
    "DuplicatedOptionWarning",
    "StaticHelpWarning",
    "NoContextsWarning",
    "trigger",
    "getdoc",
)
