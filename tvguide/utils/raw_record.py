"""
Typed access to raw upstream records.

Upstream documents are plain JSON trees. Every read goes through these
helpers so that a missing or mistyped field surfaces as a MissingField or
MalformedField carrying the field path, never as a KeyError or TypeError.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeAlias

from tvguide.exceptions import MalformedField, MissingField

RawRecord: TypeAlias = Any

_MISSING = object()


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _lookup(record: RawRecord, key: str, path: str | None) -> Any:
    if not isinstance(record, Mapping):
        raise MalformedField(path or key, f"expected an object, got {_type_name(record)}")
    value = record.get(key, _MISSING)
    return _MISSING if value is None else value


def as_object(value: RawRecord, field: str) -> Mapping[str, Any]:
    """Ensure value is a JSON object."""
    if not isinstance(value, Mapping):
        raise MalformedField(field, f"expected an object, got {_type_name(value)}")
    return value


def has_field(record: RawRecord, key: str) -> bool:
    return isinstance(record, Mapping) and record.get(key) is not None


def require_str(record: RawRecord, key: str, *, path: str | None = None) -> str:
    field = path or key
    value = _lookup(record, key, path)
    if value is _MISSING:
        raise MissingField(field)
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedField(field, f"expected a string, got {_type_name(value)}")
    return str(value)


def optional_str(
    record: RawRecord, key: str, default: str | None = None, *, path: str | None = None
) -> str | None:
    value = _lookup(record, key, path)
    if value is _MISSING:
        return default
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise MalformedField(path or key, f"expected a string, got {_type_name(value)}")
    return str(value)


def _to_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise MalformedField(field, "expected an integer, got bool")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise MalformedField(field, f"expected an integer, got {value!r}")


def require_int(record: RawRecord, key: str, *, path: str | None = None) -> int:
    """Read an integer; numeric strings are accepted as upstream mixes both."""
    field = path or key
    value = _lookup(record, key, path)
    if value is _MISSING:
        raise MissingField(field)
    return _to_int(value, field)


def optional_int(record: RawRecord, key: str, default: int = 0, *, path: str | None = None) -> int:
    value = _lookup(record, key, path)
    if value is _MISSING or value == "":
        return default
    return _to_int(value, path or key)


def optional_bool(record: RawRecord, key: str, default: bool = False, *, path: str | None = None) -> bool:
    """Read a flag; upstream sometimes sends "true"/"false" strings."""
    value = _lookup(record, key, path)
    if value is _MISSING:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise MalformedField(path or key, f"expected a boolean, got {value!r}")


def optional_list(record: RawRecord, key: str, *, path: str | None = None) -> list[Any]:
    value = _lookup(record, key, path)
    if value is _MISSING:
        return []
    if not isinstance(value, list):
        raise MalformedField(path or key, f"expected an array, got {_type_name(value)}")
    return value


def require_list(record: RawRecord, key: str, *, path: str | None = None) -> list[Any]:
    if not has_field(record, key):
        raise MissingField(path or key)
    return optional_list(record, key, path=path)


def optional_object(record: RawRecord, key: str, *, path: str | None = None) -> Mapping[str, Any] | None:
    value = _lookup(record, key, path)
    if value is _MISSING:
        return None
    return as_object(value, path or key)


def require_object(record: RawRecord, key: str, *, path: str | None = None) -> Mapping[str, Any]:
    value = optional_object(record, key, path=path)
    if value is None:
        raise MissingField(path or key)
    return value


def optional_str_list(record: RawRecord, key: str, *, path: str | None = None) -> tuple[str, ...]:
    field = path or key
    values = []
    for index, item in enumerate(optional_list(record, key, path=path)):
        if not isinstance(item, str):
            raise MalformedField(f"{field}[{index}]", f"expected a string, got {_type_name(item)}")
        values.append(item)
    return tuple(values)
