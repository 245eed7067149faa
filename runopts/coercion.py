"""
Value coercion: raw tokenizer output → typed option values.

Contract
- coerce(value, config, name) takes what the tokenizer produced for one option
  (str | bool | list[str] | None, or an already typed declared default) and
  returns the typed value, reporting validation faults through `report`.

Types
- "string": str.
- "boolean": bool ("false"/"0"/"no"/"off" spell False when given as text).
- "number": the raw text must consist of digits and dots only, then it is parsed
  as a float. None passes through, so optional numeric options need no default.
- "URL": the raw text is resolved against the working directory, so relative
  paths become absolute file URLs; absolute URLs are kept. None passes through.

Checks (skipped when checks=False, i.e. while only collecting help metadata)
- required and nothing resolved (None, or an empty list when multiple) → MissingOptionError.
- string with allow_empty_string=False and an empty/absent value → EmptyStringError.
- malformed number → InvalidNumberError (raised by the conversion itself, also
  skipped in collection mode where the raw text is kept).
"""
import re
from pathlib import Path
from urllib.parse import urljoin

from .faults import FaultCode, EmptyStringError, InvalidNumberError, MissingOptionError, getdoc, trigger
from .options import argname, forms
from .utils import Unset, coalesce

_NUMBER = re.compile(r"[\d.]+")

_FALSEY = frozenset({"false", "0", "no", "off"})


def _base():
    return Path.cwd().as_uri() + "/"


def _convert(item, config, display, checks, report):
    if item is None:
        return None

    match config.type:
        case "number":
            if isinstance(item, int | float) and not isinstance(item, bool):
                return item
            text = str(item) if not isinstance(item, bool) else ""
            try:
                if not _NUMBER.fullmatch(text):
                    raise ValueError(text)
                return float(text)
            except ValueError:
                if not checks:
                    return item
                return report(InvalidNumberError(
                    "invalid value %r for numeric option %r" % (text, display),
                    title="invalid number",
                    code=FaultCode.INVALID_NUMBER,
                    hint="pass digits and dots only (for example: %s 42.5)" % display,
                    docs=getdoc(FaultCode.INVALID_NUMBER),
                    input=display,
                    value=item
                ))
        case "URL":
            return urljoin(_base(), str(item))
        case "boolean":
            if isinstance(item, str):
                return item.lower() not in _FALSEY
            return bool(item)
        case _:
            if isinstance(item, bool):
                return "" if item else None
            return str(item)


def coerce(value, config, name, /, *, supplied=Unset, checks=True, report=trigger):
    """
    Coerce one raw option value according to its configuration.

    Parameters
    - value: raw value from the tokenizer (or None when the option never showed up).
    - config: OptionConfig of the option (usually the merged registry entry).
    - name: primary option name.
    - supplied: the spelling the operator typed (alias or name); quoted in faults.
    - checks: False while collecting help metadata, which disables required/empty
      checks and keeps malformed numbers as raw text instead of failing.
    - report: callable receiving faults (normally Session.trigger).

    Returns
    - the typed value, a list of typed values when config.multiple, or None.
    """
    display = argname(coalesce(supplied, name))

    if config.multiple:
        if value is None:
            items = []
        elif isinstance(value, list | tuple):
            items = list(value)
        else:
            items = [value]
        result = [_convert(item, config, display, checks, report) for item in items]
        missing = not result
    else:
        if isinstance(value, list | tuple):
            value = value[-1] if value else None
        result = _convert(value, config, display, checks, report)
        missing = result is None

    if not checks:
        return result

    if config.required and missing:
        return report(MissingOptionError(
            "missing command line option %s" % ", ".join(forms(name, config)),
            title="missing option",
            code=FaultCode.MISSING_OPTION,
            hint=config.description or "run with --help to see all available options",
            docs=getdoc(FaultCode.MISSING_OPTION),
            option=name
        ))

    if config.type == "string" and not config.allow_empty_string and not result:
        return report(EmptyStringError(
            "option %r must not be empty" % display,
            title="empty value",
            code=FaultCode.EMPTY_STRING,
            hint="pass a non-empty value (for example: %s <value>)" % display,
            docs=getdoc(FaultCode.EMPTY_STRING),
            option=name
        ))

    return result


__all__ = (
    "coerce",
)
