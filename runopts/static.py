r"""
Static help persistence: RUN.md generation and parsing.

Generation
- The document is the Markdown rendering of every context of a session.
- Writes are debounced: each request replaces the pending one and restarts a
  short window, so a burst of declarations produces a single write. flush()
  performs the pending write immediately (used at shutdown and in tests).
- The target is the help file of the most recently declared context whose
  location is a local path, falling back to the first context.

Parsing
- The text before the first "## " heading is the document preamble and becomes
  the markdown renderer's description.
- Each "## <name>" section creates (or reuses) the context <name>; the lines up
  to the first marker are its description.
- "### <command>" switches the sub-command partition, "Required:" and
  "Optional:" switch the required flag (required until an Optional marker).
- " * `-a, --name PLACEHOLDER` description (default: `value`)" registers option
  `name` with alias `a`: the last form is the primary name. Only a
  backtick-quoted default annotation is read back as a default; plain text
  such as "(default: off)" stays part of the description.
"""
import re
import threading
from pathlib import Path
from urllib.parse import urlsplit
from urllib.request import url2pathname

from .options import OptionConfig
from .utils import Unset, coalesce

_SECTION = re.compile(r"^## ", re.MULTILINE)
_ENTRY = re.compile(r"^\s*\*\s*`(?P<forms>[^`]*)`\s*(?P<description>.*)$")
_DEFAULT = re.compile(r"\s*\(default: `(?P<default>[^`]*)`\)$")


class Debouncer:
    """
    Schedule-or-replace holder for a single pending task.

    - schedule(task): drop any pending task, keep `task`, restart the window.
    - flush(): run the pending task now (if any); returns whether something ran.
    - cancel(): drop the pending task without running it.
    """

    def __init__(self, /, window=1.0):
        if isinstance(window, bool) or not isinstance(window, int | float):
            raise TypeError("debouncer 'window' must be a number of seconds")
        if window < 0:
            raise ValueError("debouncer 'window' must not be negative")
        self.window = window
        self._task = None
        self._timer = None
        self._lock = threading.RLock()

    @property
    def pending(self):
        return self._task is not None

    def schedule(self, task, /):
        if not callable(task):
            raise TypeError("schedule() argument must be callable")
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._task = task
            self._timer = threading.Timer(self.window, self.flush)
            self._timer.daemon = True
            self._timer.start()

    def flush(self):
        with self._lock:
            task, self._task = self._task, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if task is None:
                return False
            task()
            return True

    def cancel(self):
        with self._lock:
            self._task = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


def local(location, /):
    """
    Return a Path for a local help-file location, or None for remote URLs.
    """
    if isinstance(location, Path):
        return location
    parts = urlsplit(location)
    # one-letter schemes are Windows drive letters
    if not parts.scheme or len(parts.scheme) == 1:
        return Path(location)
    if parts.scheme == "file":
        return Path(url2pathname(parts.path))
    return None


def target(session, /):
    """
    Path the static help document is written to / read from.
    """
    contexts = list(session.contexts.values())
    for context in reversed(contexts):
        if (path := local(context.help_file)) is not None:
            return path
    if contexts and (path := local(contexts[0].help_file)) is not None:
        return path
    return local(session.help_file)


def write(session, path=Unset, /):
    """
    Render the session as Markdown and write it; returns the written path.
    """
    path = Path(coalesce(path, target(session)))
    path.write_text(session.render(session.markdown), encoding="utf-8")
    return path


def _register(context, command, required, line):
    match = _ENTRY.fullmatch(line)
    if not match:
        return
    description = match["description"].strip()
    default = Unset
    if found := _DEFAULT.search(description):
        default = found["default"]
        description = description[:found.start()]

    placeholder = Unset
    names = []
    for form in match["forms"].split(","):
        name, _, label = form.strip().partition(" ")
        if label.strip():
            placeholder = label.strip()
        if name := name.lstrip("-"):
            names.append(name)
    if not names:
        return

    primary = names.pop()
    context.register(primary, OptionConfig(
        description=description or Unset,
        placeholder=placeholder,
        default=default,
        aliases=names,
        required=required,
    ), command=command)


def parse(session, content, /):
    """
    Register every option described by a static help document into `session`.
    """
    if not isinstance(content, str):
        raise TypeError("parse() content must be a string")

    preamble, *sections = _SECTION.split(content)
    if preamble := preamble.strip():
        session.markdown.description = preamble

    for section in sections:
        lines = [line for line in section.split("\n") if line.strip()]
        if not lines or not (name := lines.pop(0).strip()):
            continue

        description = []
        while lines and not _marker(lines[0]):
            description.append(lines.pop(0).strip())

        context = session.context(name, "\n".join(description) or Unset)

        command = ""
        required = True
        for line in lines:
            stripped = line.strip()
            if stripped.startswith("### "):
                command = stripped[4:].strip()
                context.subcommand(command)
                required = True
            elif stripped == "Required:":
                required = True
            elif stripped == "Optional:":
                required = False
            elif stripped.startswith("*"):
                _register(context, command, required, line)


def _marker(line):
    stripped = line.strip()
    return stripped.startswith(("#", "*")) or stripped in ("Required:", "Optional:")


def load(session, path=Unset, /):
    """
    Read and parse the static help document.

    Returns False when it cannot be read or describes an option that cannot be
    declared (invalid names or placeholders). Entries registered before the
    faulty one stay registered.
    """
    path = Path(coalesce(path, target(session)))
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return False
    try:
        parse(session, content)
    except (TypeError, ValueError):
        return False
    return True


__all__ = (
    "Debouncer",
    "local",
    "target",
    "write",
    "parse",
    "load",
)
