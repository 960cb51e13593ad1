from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, TypeVar


K = TypeVar("K")
V = TypeVar("V")


class frozendict(Mapping[K, V]):  # noqa: N801
    """Read-only, hashable mapping.

    Used for the relation registry returned by ``get_relations`` and for the
    extras view returned by ``get_extras``, so callers can inspect either
    without being able to mutate the state behind it.

    Example:
        >>> fd = frozendict({"through_country_id": 1})
        >>> fd["through_country_id"]
        1
        >>> fd
        <frozendict {'through_country_id': 1}>
    """

    __slots__ = ("_dict", "_hash")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        self._dict: dict[K, V] = dict(*args, **kwargs)
        self._hash: int | None = None

    def __getitem__(self, key: K) -> V:
        return self._dict[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._dict

    def __iter__(self) -> Iterator[K]:
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._dict!r}>"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, frozendict):
            return self._dict == other._dict

        if isinstance(other, dict):
            return self._dict == other

        return NotImplemented

    def __hash__(self) -> int:
        # Lazy: extras may hold unhashable values.
        if self._hash is None:
            self._hash = hash(frozenset(self._dict.items()))

        return self._hash
