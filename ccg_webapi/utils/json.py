"""JSON serialization that tolerates reference loops in response payloads."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import date, datetime
from typing import Any, Iterable

from flask.json.provider import DefaultJSONProvider

__all__ = ["LoopSafeJSONProvider", "strip_reference_loops"]

_CONTAINER_TYPES = (dict, list, tuple, set, frozenset)


def _is_container(value: Any) -> bool:
    if isinstance(value, _CONTAINER_TYPES):
        return True
    return is_dataclass(value) and not isinstance(value, type)


def _closes_loop(value: Any, ancestors: frozenset[int]) -> bool:
    return _is_container(value) and id(value) in ancestors


def _items(value: Any) -> Iterable[tuple[Any, Any]]:
    if isinstance(value, dict):
        return value.items()
    return ((field.name, getattr(value, field.name)) for field in fields(value))


def strip_reference_loops(value: Any, _ancestors: frozenset[int] = frozenset()) -> Any:
    """Return a copy of ``value`` without members that point back at an ancestor.

    Dataclasses become dicts and sets become lists. Members that refer to an
    enclosing container are dropped; repeated references to the same object
    from sibling positions are kept.
    """

    if not _is_container(value):
        return value
    ancestors = _ancestors | {id(value)}
    if isinstance(value, dict) or is_dataclass(value):
        return {
            key: strip_reference_loops(item, ancestors)
            for key, item in _items(value)
            if not _closes_loop(item, ancestors)
        }
    return [
        strip_reference_loops(item, ancestors)
        for item in value
        if not _closes_loop(item, ancestors)
    ]


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return DefaultJSONProvider.default(value)


class LoopSafeJSONProvider(DefaultJSONProvider):
    """Flask JSON provider that ignores reference loops instead of failing.

    Dates and datetimes are written as ISO 8601 strings.
    """

    default = staticmethod(_default)

    def dumps(self, obj: Any, **kwargs: Any) -> str:
        return super().dumps(strip_reference_loops(obj), **kwargs)
