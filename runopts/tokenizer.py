r"""
Raw argv tokenizer.

Splits an argv-like list into a flat mapping of canonical option name → raw
value, the way minimal flag parsers do, without knowing anything about option
types beyond "takes a value" (string) versus "presence only" (boolean).

Accepted spellings
- long:   --name value | --name=value | --flag
- short:  -n value | -n=value | -f | -abc (grouped short flags, the last may take a value)
- "--"    ends option parsing; everything after it is bare.

Definition
- string: names that take a value ("" when no value follows).
- boolean: presence-only names (False unless present or defaulted).
- alias: alternate name → canonical name.
- default: canonical name → value used when the argv leaves it unset.
- collect: names whose repeated occurrences accumulate into a list.
- unknown: callback(token, key, value) invoked for every token that does not
  match a declared name or alias; key and value are None for bare tokens.

Result
- Parsed.values: canonical name → str | bool | list[str] (| declared default).
- Parsed.supplied: canonical name → the spelling actually typed (alias or name),
  used to quote the operator's own words back in fault messages.
"""
import re
from typing import NamedTuple


class Parsed(NamedTuple):
    values: dict
    supplied: dict


# shape: -<letters> or --<name>, optionally followed by =<value>
_TOKEN = re.compile(r"(?P<dashes>--?)(?P<key>[^\s=-][^\s=]*)(?:=(?P<value>.*))?", re.DOTALL)

_FALSEY = frozenset({"false", "0", "no", "off"})


def _takes(token):
    # a following token is a value unless it looks like another option
    return token is not None and not _TOKEN.fullmatch(token)


def tokenize(argv, /, *, string=(), boolean=(), alias=None, default=None, collect=(), unknown=None):
    """
    Tokenize `argv` against a flat option definition.

    Parameters
    - argv: Iterable[str], usually sys.argv[1:].
    - string, boolean, collect: Iterable[str] of canonical names.
    - alias: Mapping[str, str] alternate → canonical.
    - default: Mapping[str, Any] canonical → default value.
    - unknown: Callable[[str, str | None, Any], Any] | None.

    Returns
    - Parsed(values, supplied)
    """
    string = frozenset(string)
    boolean = frozenset(boolean)
    collect = frozenset(collect)
    alias = dict(alias or {})
    default = dict(default or {})

    values = {}
    supplied = {}
    known = string | boolean | set(alias)

    def canonical(key):
        return alias.get(key, key)

    def assign(key, value):
        name = canonical(key)
        supplied[name] = key
        if name in collect:
            values.setdefault(name, []).append(value)
        else:
            values[name] = value

    def bare(token):
        if unknown is not None:
            unknown(token, None, None)

    tokens = list(argv)
    index = 0

    def following():
        return tokens[index + 1] if index + 1 < len(tokens) else None

    while index < len(tokens):
        token = tokens[index]

        if token == "--":
            for rest in tokens[index + 1:]:
                bare(rest)
            break

        match = _TOKEN.fullmatch(token)
        if not match:
            bare(token)
            index += 1
            continue

        inline = match["value"]

        if match["dashes"] == "--":
            keys = [match["key"]]
        else:
            # grouped short flags: every letter but the last is presence-only
            # unless it takes a value, in which case the rest of the group is that value
            letters = match["key"]
            keys = []
            for position, letter in enumerate(letters[:-1]):
                if canonical(letter) in string:
                    inline = letters[position + 1:] + ("=" + inline if inline is not None else "")
                    keys.append(letter)
                    break
                keys.append(letter)
            else:
                keys.append(letters[-1])

        for key in keys[:-1]:
            if key not in known:
                if unknown is not None:
                    unknown(token, key, True)
                continue
            assign(key, True)

        key = keys[-1]
        name = canonical(key)

        if key not in known:
            if inline is not None:
                value = inline
            elif _takes(following()):
                index += 1
                value = tokens[index]
            else:
                value = True
            if unknown is not None:
                unknown(token, key, value)
        elif name in boolean:
            assign(key, inline.lower() not in _FALSEY if inline is not None else True)
        else:
            if inline is not None:
                value = inline
            elif _takes(following()):
                index += 1
                value = tokens[index]
            else:
                value = ""
            assign(key, value)

        index += 1

    for name in collect:
        values.setdefault(name, [])

    for name, value in default.items():
        if name not in values or (name in collect and not values[name]):
            values[name] = list(value) if name in collect and isinstance(value, list | tuple) else value

    for name in boolean:
        values.setdefault(name, False)

    return Parsed(values, supplied)


__all__ = (
    "Parsed",
    "tokenize",
)
