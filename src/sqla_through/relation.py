from __future__ import annotations

import logging
import sys
from collections.abc import Callable, Iterable, Sequence
from typing import Any, Generic, TypeVar, Union, overload


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession

from .client import QueryClient, as_client
from .exceptions import RelationNotBootedError
from .keys import KeyOverrides, ResolvedKeys, resolve_keys
from .query import HasManyThroughQuery
from .tools import pivot_alias, unique_values


R = TypeVar("R")

_Target = Union[type[Any], Callable[[], type[Any]], str]

logger = logging.getLogger(__name__)


class HasManyThrough(Generic[R]):
    """Declarative has-many-through relation.

    Declared as a plain class attribute of the local model. The related and
    through models may be given as classes, zero-argument callables or class
    names, and are only resolved by :meth:`boot`, so models referencing each
    other can be defined in any order::

        class Country(Base):
            __tablename__ = "countries"

            id: orm.Mapped[int] = orm.mapped_column(primary_key=True)

            posts = has_many_through(lambda: Post, lambda: User)

    reaches ``posts`` through ``users`` using ``users.country_id`` and
    ``posts.user_id``. Every query factory requires :meth:`boot` to have
    completed; ``related()`` and ``preload()`` boot on first use.

    On an instance the attribute holds the list assigned by
    :meth:`set_related` (``preload()``); reading it before that raises
    ``AttributeError``.
    """

    def __init__(
        self,
        related: _Target,
        through: _Target,
        *,
        local_key: str | None = None,
        foreign_key: str | None = None,
        through_local_key: str | None = None,
        through_foreign_key: str | None = None,
    ) -> None:
        self._related_target = related
        self._through_target = through
        self.overrides = KeyOverrides(
            local_key=local_key,
            foreign_key=foreign_key,
            through_local_key=through_local_key,
            through_foreign_key=through_foreign_key,
        )
        self.owner: type[Any] | None = None
        self.name = ""
        self._booted = False
        self._keys: ResolvedKeys | None = None
        self._related: type[R] | None = None
        self._through: type[Any] | None = None
        self._pivot_alias = ""

    def __set_name__(self, owner: type[Any], name: str) -> None:
        self.owner = owner
        self.name = name

    @overload
    def __get__(self, instance: None, owner: type[Any] | None = None) -> Self: ...

    @overload
    def __get__(self, instance: object, owner: type[Any] | None = None) -> list[R]: ...

    def __get__(self, instance: object | None, owner: type[Any] | None = None) -> Self | list[R]:
        # Loaded lists live in the instance __dict__ and shadow this descriptor.
        if instance is None:
            return self

        raise AttributeError(
            f"{self.qualified_name} relation is not loaded; use preload() or related()"
        )

    def __repr__(self) -> str:
        state = "booted" if self._booted else "unbooted"
        return f"<{type(self).__name__} {self.qualified_name} ({state})>"

    @property
    def qualified_name(self) -> str:
        owner = self.owner.__name__ if self.owner is not None else "<unbound>"
        return f"{owner}.{self.name or '<unnamed>'}"

    @property
    def booted(self) -> bool:
        return self._booted

    def _resolve_target(self, target: _Target) -> type[Any]:
        if isinstance(target, str):
            assert self.owner is not None
            matches = [
                mapper.class_
                for mapper in sa.inspect(self.owner).registry.mappers
                if mapper.class_.__name__ == target
            ]
            if len(matches) != 1:
                raise ValueError(
                    f"Cannot resolve {target!r} for {self.qualified_name}: "
                    f"{len(matches)} mapped classes with that name"
                )
            model = matches[0]
        elif isinstance(target, type):
            model = target
        else:
            model = target()

        if not isinstance(sa.inspect(model, raiseerr=False), orm.Mapper):
            raise TypeError(f"{self.qualified_name} target {model!r} is not a mapped class")

        return model

    def boot(self) -> None:
        """Resolve the target models and the four join keys, once.

        Raises:
            RelationConfigurationError: A key is missing; the relation stays
                unbooted.
        """
        if self._booted:
            return

        if self.owner is None:
            raise RuntimeError("has_many_through() must be assigned in a class body")

        related = self._resolve_target(self._related_target)
        through = self._resolve_target(self._through_target)
        keys = resolve_keys(
            self.owner,
            through,
            related,
            relation=self.qualified_name,
            overrides=self.overrides,
        )

        self._related = related
        self._through = through
        self._keys = keys
        self._pivot_alias = pivot_alias(self.owner, keys.local_key)
        self._booted = True
        logger.debug(
            "Booted %s: %s.%s -> %s.%s / %s.%s -> %s.%s",
            self.qualified_name,
            through.__name__,
            keys.foreign_key,
            self.owner.__name__,
            keys.local_key,
            related.__name__,
            keys.through_foreign_key,
            through.__name__,
            keys.through_local_key,
        )

    def _require_booted(self) -> ResolvedKeys:
        if not self._booted or self._keys is None:
            raise RelationNotBootedError(self.qualified_name)

        return self._keys

    @property
    def keys(self) -> ResolvedKeys:
        return self._require_booted()

    @property
    def related_model(self) -> type[R]:
        self._require_booted()
        assert self._related is not None
        return self._related

    @property
    def through_model(self) -> type[Any]:
        self._require_booted()
        assert self._through is not None
        return self._through

    @property
    def pivot_alias(self) -> str:
        self._require_booted()
        return self._pivot_alias

    def get_query(
        self,
        instance: object,
        client: QueryClient | AsyncSession | None = None,
    ) -> HasManyThroughQuery[R]:
        """Query for the related rows of one owner instance."""
        keys = self._require_booted()
        value = getattr(instance, keys.local_key)
        if value is None:
            raise ValueError(
                f"Cannot query {self.qualified_name} relation: "
                f"{type(instance).__name__}.{keys.local_key} is None"
            )

        return HasManyThroughQuery(self, (value,), eager=False, client=as_client(client))

    def get_eager_query(
        self,
        instances: Iterable[object],
        client: QueryClient | AsyncSession | None = None,
    ) -> HasManyThroughQuery[R]:
        """One query for the related rows of all *instances*.

        The filter is ``IN`` over the distinct, non-null owner key values, in
        first-seen order.
        """
        keys = self._require_booted()
        values = unique_values(getattr(instance, keys.local_key) for instance in instances)
        logger.debug("%s eager query for %d owner key(s)", self.qualified_name, len(values))

        return HasManyThroughQuery(self, values, eager=True, client=as_client(client))

    def set_related(self, instance: object, objects: Iterable[R]) -> None:
        self._require_booted()
        setattr(instance, self.name, list(objects))

    def set_related_many(
        self, instances: Sequence[object], rows: Iterable[tuple[R, Any]]
    ) -> None:
        """Distribute eagerly fetched ``(object, pivot)`` *rows* onto their owners.

        Each object goes to every instance whose local key equals the pivot
        of its row, in fetch order. Rows matching no instance are dropped;
        instances without matches get an empty list.
        """
        keys = self._require_booted()
        owners: dict[Any, list[object]] = {}
        for instance in instances:
            owners.setdefault(getattr(instance, keys.local_key), []).append(instance)

        groups: dict[Any, list[R]] = {}
        dropped = 0
        for obj, value in rows:
            if value is None or value not in owners:
                dropped += 1
                continue
            groups.setdefault(value, []).append(obj)

        if dropped:
            logger.debug(
                "%s dropped %d row(s) matching no owner", self.qualified_name, dropped
            )

        for value, members in owners.items():
            for instance in members:
                self.set_related(instance, groups.get(value, ()))


def has_many_through(
    related: _Target,
    through: _Target,
    *,
    local_key: str | None = None,
    foreign_key: str | None = None,
    through_local_key: str | None = None,
    through_foreign_key: str | None = None,
) -> HasManyThrough[Any]:
    """Declare a has-many-through relation on a mapped class.

    Args:
        related: Model being fetched (class, callable or class name).
        through: Intermediate model (class, callable or class name).
        local_key: Attribute on the local model. Defaults to its primary key.
        foreign_key: Attribute on *through* referencing the local model.
            Defaults to ``<local>_id``.
        through_local_key: Attribute on *through* referenced by *related*.
            Defaults to its primary key.
        through_foreign_key: Attribute on *related* referencing *through*.
            Defaults to ``<through>_id``.

    Returns:
        An unbooted :class:`HasManyThrough`.
    """
    return HasManyThrough(
        related,
        through,
        local_key=local_key,
        foreign_key=foreign_key,
        through_local_key=through_local_key,
        through_foreign_key=through_foreign_key,
    )
