r"""
Runopts option configurations.

Overview
- OptionConfig: the declaration of one named option. Every field is optional;
  an absent field is stored as nothing at all (reads fall back to the declared
  default), which is what lets independent call-sites declare the same option
  piece by piece.
- merge(existing, incoming): first-write-wins union of two configurations.
- argname / forms / placeholder: display helpers shared by the coercion layer
  (fault messages) and the help renderers.

Fields (all keyword-capable, validated on construction)
- description: str, shown in help.
- type: "string" | "boolean" | "number" | "URL" (default "string").
- placeholder: str, value label in help (ignored for booleans).
- default: value matching `type` (a sequence of such values when multiple).
- aliases: iterable of alternate names (leading dashes are stripped).
- multiple: collect repeated occurrences into a list.
- required: missing value is a fatal validation error.
- allow_empty_string: when False, an empty string value is rejected (default True).
- collect_not_prefixed_args: bare argv tokens are gathered into this option.
- overload: suppress duplicate-registration warnings.
- dev: internal/development-only option, never rendered in help.

Merge laws
- merge(a, b) keeps every present field of a and only fills the gaps from b.
- merge is associative and idempotent: merge(a, a) == a.

Quick example:
    >>> first = OptionConfig(type="number", description="speed in km/h")
    >>> second = OptionConfig(type="string", aliases=["s"])
    >>> merged = merge(first, second)
    >>> merged.type, merged.aliases
    ('number', ('s',))
"""
import functools
import operator
import re
from collections.abc import Iterable
from types import MappingProxyType

from .utils import Unset, rename

OPTION_TYPES = ("string", "boolean", "number", "URL")

_FIELDS = (
    "description",
    "type",
    "placeholder",
    "default",
    "aliases",
    "multiple",
    "required",
    "allow_empty_string",
    "collect_not_prefixed_args",
    "overload",
    "dev",
)

_DEFAULTS = MappingProxyType({
    "description": None,
    "type": "string",
    "placeholder": None,
    "default": Unset,
    "aliases": (),
    "multiple": False,
    "required": False,
    "allow_empty_string": True,
    "collect_not_prefixed_args": False,
    "overload": False,
    "dev": False,
})

_FLAGS = ("multiple", "required", "allow_empty_string", "collect_not_prefixed_args", "overload", "dev")

# Option names and aliases: letters/digits joined by single dashes or underscores.
_NAME = re.compile(r"[^\W_](?:[-_]?[^\W_])*")


def _field(name):
    """
    build a read-only accessor returning the effective value of a field.
    """

    @rename(name)
    def getter(self):
        return self._fields.get(name, _DEFAULTS[name])

    return property(getter)


def _check_name(name, what):
    if not isinstance(name, str):
        raise TypeError(f"option {what} must be a string")
    if not _NAME.fullmatch(name := name.lstrip("-")):
        raise ValueError(f"option {what} {name!r} is not a valid option name")
    return name


def _check_default(default, type, multiple):
    """
    validate that a declared default fits the declared type.

    the check only runs when the type is known at construction time; a
    configuration that only declares a default is validated against "string".
    """
    kinds = {
        "string": (str,),
        "boolean": (bool,),
        "number": (int, float),
        "URL": (str,),
    }[type]

    def fits(value):
        if type == "number" and isinstance(value, bool):
            return False
        return isinstance(value, kinds)

    if multiple and isinstance(default, Iterable) and not isinstance(default, str):
        if not all(map(fits, default)):
            raise TypeError(f"option default items must match type {type!r}")
        return list(default)
    if not fits(default):
        raise TypeError(f"option default must match type {type!r}")
    return default


class OptionConfig:
    """
    Partial, immutable declaration of a single option.

    Construction validates every provided field once; reading a field returns
    either the declared value or the documented default. `fields` exposes only
    what was actually declared, which is what merge() works on.
    """
    __slots__ = ("_fields",)

    def __init__(
            self,
            /,
            description=Unset,
            type=Unset,
            placeholder=Unset,
            default=Unset,
            aliases=Unset,
            *,
            multiple=Unset,
            required=Unset,
            allow_empty_string=Unset,
            collect_not_prefixed_args=Unset,
            overload=Unset,
            dev=Unset,
    ):
        fields = {}

        if description is not Unset:
            if not isinstance(description, str):
                raise TypeError("option description must be a string")
            fields["description"] = description

        if type is not Unset:
            if type not in OPTION_TYPES:
                raise ValueError(f"option type must be one of {', '.join(map(repr, OPTION_TYPES))}")
            fields["type"] = type

        if placeholder is not Unset:
            if not isinstance(placeholder, str):
                raise TypeError("option placeholder must be a string")
            if not (placeholder := placeholder.strip()):
                raise ValueError("option placeholder must be a non-empty string")
            fields["placeholder"] = placeholder

        if aliases is not Unset:
            if isinstance(aliases, str) or not isinstance(aliases, Iterable):
                raise TypeError("option aliases must be an iterable of strings")
            fields["aliases"] = tuple(dict.fromkeys(_check_name(alias, "alias") for alias in aliases))

        for name, value in zip(_FLAGS, (multiple, required, allow_empty_string, collect_not_prefixed_args, overload, dev)):
            if value is Unset:
                continue
            if not isinstance(value, bool):
                raise TypeError(f"option {name!r} must be a boolean")
            fields[name] = value

        if default is not Unset:
            fields["default"] = _check_default(
                default,
                fields.get("type", _DEFAULTS["type"]),
                fields.get("multiple", False)
            )

        self._fields = fields

    @classmethod
    def _from_fields(cls, fields, /):
        # Fields were validated when first declared; merging must not re-check
        # them against each other (a parsed textual default may meet a later type).
        self = cls.__new__(cls)
        self._fields = {name: fields[name] for name in _FIELDS if name in fields}
        return self

    description = _field("description")
    type = _field("type")
    placeholder = _field("placeholder")
    default = _field("default")
    aliases = _field("aliases")
    multiple = _field("multiple")
    required = _field("required")
    allow_empty_string = _field("allow_empty_string")
    collect_not_prefixed_args = _field("collect_not_prefixed_args")
    overload = _field("overload")
    dev = _field("dev")

    @property
    def fields(self):
        """
        Read-only mapping of the fields that were explicitly declared.
        """
        return MappingProxyType(self._fields)

    def __contains__(self, name, /):
        return name in self._fields

    def __eq__(self, other, /):
        if not isinstance(other, OptionConfig):
            return NotImplemented
        return self._fields == other._fields

    def __hash__(self):
        return hash(tuple((name, repr(value)) for name, value in self._fields.items()))

    def __or__(self, other, /):
        if not isinstance(other, OptionConfig):
            return NotImplemented
        return merge(self, other)

    def __rich_repr__(self):
        yield from self._fields.items()

    def __repr__(self):
        return f"option-config({
            ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
        })"


def merge(existing, incoming, /):
    """
    Merge two partial configurations, first write wins per field.

    Every field present in `existing` is kept verbatim; fields it lacks are
    taken from `incoming`. Neither argument is modified.
    """
    if not isinstance(existing, OptionConfig) or not isinstance(incoming, OptionConfig):
        raise TypeError("merge() arguments must be option configurations")
    return OptionConfig._from_fields(incoming.fields | existing.fields)


def canonical(name, /):
    """
    Validated option name with its leading dashes removed.

    Raises TypeError for non-strings and ValueError for names that cannot be
    spelled on a command line (spaces, punctuation, empty).
    """
    return _check_name(name, "name")


def argname(name, /):
    """
    Command-line spelling of an option name: '-n' for one character, '--name' otherwise.
    """
    return ("-" if len(name) == 1 else "--") + name


def forms(name, config, /):
    """
    All display forms of an option: aliases in declaration order, primary name last.
    """
    return [*map(argname, config.aliases), argname(name)]


def placeholder(config, /):
    """
    Value label shown after the option forms, upper-cased; None for booleans.
    """
    if config.type == "boolean":
        return None
    return config.placeholder and config.placeholder.upper()


__all__ = (
    "OPTION_TYPES",
    "OptionConfig",
    "merge",
    "canonical",
    "argname",
    "forms",
    "placeholder",
)
