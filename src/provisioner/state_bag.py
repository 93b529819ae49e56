"""Shared key-value context threaded through one provisioning run.

The bag is created by the caller, seeded with inputs (target descriptor,
provider handle, ui sink) and then passed explicitly to every step. It is
not persisted and not safe for concurrent writers.

A required key that is missing is a programming error: the pipeline was
assembled in the wrong order or the caller forgot to seed an input. That
is why ``get`` raises ``MissingStateError`` instead of returning ``None``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterator, Mapping, TypeVar

T = TypeVar('T')

_MISSING = object()


class MissingStateError(LookupError):
    """Raised when a step reads a required key nobody wrote."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'state bag has no value for required key {key!r}')


class StateTypeError(TypeError):
    """Raised when a required key holds a value of an unexpected type."""

    def __init__(self, key: str, expected: type, actual: type) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f'state bag key {key!r} holds {actual.__name__}, '
            f'expected {expected.__name__}'
        )


class StateBag:
    """Mutable mapping of string keys to opaque values, last write wins."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get(self, key: str, expected_type: type[T] | None = None) -> T:
        """Return a required value, raising if it was never written."""
        value = self._values.get(key, _MISSING)
        if value is _MISSING:
            raise MissingStateError(key)
        if expected_type is not None and not isinstance(value, expected_type):
            raise StateTypeError(key, expected_type, type(value))
        return value

    def find(self, key: str, default: Any = None) -> Any:
        """Return an optional value."""
        return self._values.get(key, default)

    def delete(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only copy of the current contents."""
        return MappingProxyType(dict(self._values))

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __repr__(self) -> str:
        return f'StateBag(keys={sorted(self._values)!r})'
