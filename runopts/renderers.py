"""
Help renderers: formatting strategies behind one small interface.

The help algorithm (runopts.help) decides *what* goes where: titles, sub-command
headers, Required/Optional sections, one line per option. A renderer decides
*how* each of those pieces looks. Adding an output format means implementing
HelpRenderer; neither the registry nor the algorithm changes.

Renderers
- TerminalRenderer: ANSI-styled text for `--help` on a console. Styles are
  rich style strings rendered to escape sequences with rich.style.Style.
- MarkdownRenderer: the persisted static help document (RUN.md). Its output
  is also the format runopts.static parses back, so the two must stay in step.
"""
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Sequence

from rich.color import ColorSystem
from rich.style import Style

DEFAULT_PREAMBLE = "# Run Options\nThis file contains an auto-generated list of the available command line options."


def stringify(value, /):
    """
    Text form of a default value as it appears in help.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Sequence) and not isinstance(value, str):
        return ", ".join(map(stringify, value))
    return str(value)


class HelpRenderer(ABC):
    """
    Capability set the help algorithm needs from an output format.

    Required
    - format_prefix(forms, placeholder, optional=False): the option column, e.g. "--name, -n NAME".
    - format_description(description, level): level 1 is a context description,
      level 2 an option description.
    - format_default(value): annotation appended to an option description.
    - format_title(title, level): level 2 is a context title.
    - format_subcommand(command): header of a sub-command partition.
    - create_section(name): "Required" / "Optional" section header.

    Optional hooks
    - preamble() / end(): text around the whole document.
    - spacing: minimum number of spaces between the option column and its description.
    """
    spacing = 1

    @abstractmethod
    def format_prefix(self, forms, placeholder, /, optional=False): ...

    @abstractmethod
    def format_description(self, description, level, /): ...

    @abstractmethod
    def format_default(self, value, /): ...

    @abstractmethod
    def format_title(self, title, level, /): ...

    @abstractmethod
    def format_subcommand(self, command, /): ...

    @abstractmethod
    def create_section(self, name, /): ...

    def preamble(self):
        return ""

    def end(self):
        return ""


class TerminalRenderer(HelpRenderer):
    """
    ANSI terminal renderer.

    Palette keys
    - option-name, optional-option-name, placeholder
    - description, default, title, section, subcommand

    Customization
    - Define a mapping named __styles__ in __main__ to override any palette entry.
    - When colorful is False, no escape sequences are emitted at all.
    """
    spacing = 4

    def __init__(self, /, colorful=True):
        if not isinstance(colorful, bool):
            raise TypeError("terminal renderer 'colorful' must be a boolean")
        self.colorful = colorful

    def _styles(self):
        return defaultdict(str, {
            "option-name": "#4FA9E8",  # cyan for required option names
            "optional-option-name": "#184E6D",  # darker cyan for optional ones
            "placeholder": "",
            "description": "#969696",  # muted gray
            "default": "#969696",
            "title": "bold",
            "section": "",
            "subcommand": "#1EDA6D",  # green sub-command headers
        } | getattr(__import__("__main__"), "__styles__", {}))

    def _paint(self, text, key):
        if not self.colorful or not text:
            return text
        if not (style := self._styles()[key]):
            return text
        return Style.parse(style).render(text, color_system=ColorSystem.TRUECOLOR)

    def format_prefix(self, forms, placeholder, /, optional=False):
        inset = "    " if forms[0].startswith("--") else ""
        key = "optional-option-name" if optional else "option-name"
        names = ", ".join(self._paint(form, key) for form in forms)
        return f"    {inset}{names}{' ' + self._paint(placeholder, 'placeholder') if placeholder else ''}"

    def format_description(self, description, level, /):
        if level == 1:
            description = "\n" + "\n".join("  " + line for line in description.split("\n"))
        return self._paint(description, "description")

    def format_default(self, value, /):
        return self._paint(f" (default: {stringify(value)})", "default")

    def format_title(self, title, level, /):
        if level >= 4:
            return f"\n    {self._paint(title, 'description')}"
        if level >= 3:
            return f"\n  {self._paint(title, 'section')}"
        return f"\n{self._paint(title, 'title')}"

    def format_subcommand(self, command, /):
        return f"\n\n  {self._paint(command, 'subcommand')}"

    def create_section(self, name, /):
        return f"\n\n  {self._paint(name + ':', 'section')}"

    def end(self):
        return "\n"


class MarkdownRenderer(HelpRenderer):
    """
    Markdown renderer for the static help document.

    Layout
        # Run Options                      ← preamble (replaced when a document is parsed)
        ## <context name>
        <context description>
        Required: / Optional:
         * `-a, --name PLACEHOLDER` description (default: `value`)
        ### <sub-command>
    """

    def __init__(self, /, preamble=DEFAULT_PREAMBLE):
        if not isinstance(preamble, str):
            raise TypeError("markdown renderer 'preamble' must be a string")
        self.description = preamble

    def preamble(self):
        return f"{self.description}\n"

    def end(self):
        return "\n"

    def format_prefix(self, forms, placeholder, /, optional=False):
        return f" * `{', '.join(forms)}{' ' + placeholder if placeholder else ''}`"

    def format_description(self, description, level, /):
        return description

    def format_default(self, value, /):
        return f" (default: `{stringify(value)}`)"

    def format_title(self, title, level, /):
        return f"\n{'#' * level} {title}" if title else "\n"

    def format_subcommand(self, command, /):
        return f"\n\n### {command}"

    def create_section(self, name, /):
        return f"\n\n{name}:"


__all__ = (
    "DEFAULT_PREAMBLE",
    "HelpRenderer",
    "TerminalRenderer",
    "MarkdownRenderer",
    "stringify",
)
