from __future__ import annotations

import json
import re
from typing import Any
from typing import Iterable
from typing import TypeVar

import pydantic

_INT_SYNTAX = re.compile(r"^\s*[+-]?\d+\s*$")


_T = TypeVar("_T")


def maybe_iter(value: str | _T | list[str | _T] | None) -> Iterable[str | _T]:
    if not value:
        return
    if isinstance(value, str):
        yield value
    elif isinstance(value, (list, tuple)):
        yield from value
    else:
        yield value


def is_int(value: Any) -> bool:
    """True for real integers. Booleans are not considered integers here."""
    return isinstance(value, int) and not isinstance(value, bool)


def try_int(value: Any, default: int | None = None) -> int | None:
    """Coerce a value to an int if it looks like one.

    Strings are only accepted if they are a plain (optionally signed)
    integer. Booleans and floats are never coerced.
    """
    if value is None or isinstance(value, (bool, float)):
        return default
    if isinstance(value, int):
        return value
    text = value if isinstance(value, str) else str(value)
    if _INT_SYNTAX.match(text):
        return int(text)
    return default


def try_str(value: Any, default: str | None = None) -> str | None:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    return str(value)


def parse_bool(value: Any) -> bool | None:
    """Returns True or False for 'true' or 'false' (any case), otherwise None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        match value.strip().lower():
            case "true":
                return True
            case "false":
                return False
    return None


def is_truthy(value: Any) -> bool | None:
    """Whether a trait value counts as "selected".

    Booleans count when True, integers when positive and strings when
    non-empty. Anything else returns None so the caller can decide.
    """
    if isinstance(value, bool):
        return value
    if (int_value := try_int(value)) is not None:
        return int_value > 0
    if isinstance(value, str):
        return value != ""
    return None


class JSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return json.JSONEncoder.default(self, obj)


def dump(data: pydantic.BaseModel | dict, as_json=True, *args, **kwargs) -> str | dict:
    if not isinstance(data, dict):
        data = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    if as_json:
        return json.dumps(data, cls=JSONEncoder, *args, **kwargs)
    else:
        return data
