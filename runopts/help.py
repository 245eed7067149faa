"""
Help rendering: registry contents → one text document through a renderer.

Algorithm
- contexts are visited newest first (declaration order reversed) unless
  keep_order is requested; the designated default context ("General Options")
  is always emitted last.
- within a context: the title, its description, then every sub-command
  partition (top-level "" first), each split into a Required and an Optional
  section. Development-only options are never shown.
- every option line is written as  prefix + SEPARATOR + spacing + description.
  once all contexts are rendered, a single pass pads every prefix to the widest
  prefix of the whole document (escape sequences do not count) and drops the
  separator, so descriptions line up across contexts.
"""
import re

from .options import forms, placeholder
from .utils import visible_width

SEPARATOR = "\x01"

_ALIGNABLE = re.compile(r"^.*" + SEPARATOR, re.MULTILINE)


def _entries(partition):
    return [(name, config) for name, config in partition.items() if not config.dev]


def render_context(context, renderer, /):
    """
    Render one context; returns (text, widest visible prefix).
    """
    content = renderer.format_title(context.name, 2)
    if context.description:
        content += "\n" + renderer.format_description(context.description, 1)

    width = 0
    for command, partition in context.partitions.items():
        if command:
            content += renderer.format_subcommand(command)

        entries = _entries(partition)
        sections = (
            ("Required", [entry for entry in entries if entry[1].required]),
            ("Optional", [entry for entry in entries if not entry[1].required]),
        )
        for section, group in sections:
            if not group:
                continue
            content += renderer.create_section(section)
            for name, config in group:
                prefix = renderer.format_prefix(forms(name, config), placeholder(config), optional=not config.required)
                width = max(width, visible_width(prefix))
                description = renderer.format_description(config.description or "", 2)
                if "default" in config:
                    description += renderer.format_default(config.default)
                content += f"\n{prefix}{SEPARATOR}{' ' * renderer.spacing}{description}"

    return content, width


def align(content, width, /):
    """
    Pad every prefix (text before SEPARATOR) to `width` visible columns and drop the separator.
    """
    def pad(match):
        prefix = match.group(0)[:-len(SEPARATOR)]
        return prefix + " " * max(0, width - visible_width(prefix))

    return _ALIGNABLE.sub(pad, content)


def render(contexts, renderer, /, *, keep_order=False, default=None):
    """
    Render several contexts into one document.

    Parameters
    - contexts: Iterable[Context] in declaration order.
    - renderer: HelpRenderer.
    - keep_order: visit contexts in the given order instead of newest first.
    - default: the context rendered last regardless of its position.

    Returns
    - (document, widest visible prefix)
    """
    contexts = list(contexts)
    if not keep_order:
        contexts.reverse()

    contents = []
    tail = None
    width = 0
    for context in contexts:
        content, size = render_context(context, renderer)
        width = max(width, size)
        if context is default:
            tail = content
        else:
            contents.append(content)
    if tail is not None:
        contents.append(tail)

    document = align("\n".join(contents), width)
    return renderer.preamble() + document + renderer.end(), width


__all__ = (
    "SEPARATOR",
    "render_context",
    "render",
    "align",
)
