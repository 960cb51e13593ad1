from __future__ import annotations

import logging
import sys
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Generic, TypeVar


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import sqlalchemy as sa

from .client import CompiledSQL, QueryClient, compile_statement
from .mutation import HasManyThroughMutation, build_delete, build_update
from .tools import set_connection_name, set_extra


if TYPE_CHECKING:
    from sqlalchemy.orm.interfaces import ORMOption

    from .relation import HasManyThrough

R = TypeVar("R")

logger = logging.getLogger(__name__)


class HasManyThroughQuery(Generic[R]):
    """Relation-scoped SELECT over the related model.

    Created by ``HasManyThrough.get_query`` (one owner) or
    ``HasManyThrough.get_eager_query`` (many owners). The statement starts as
    a plain ``SELECT related``; the join to the through table, the pivot
    column and the owner-key filter are merged in by
    :meth:`apply_constraints`, which runs exactly once. Refinements made
    before that (``where``, ``order_by``, ``limit``...) are kept::

        query = related(country, "posts").where(Post.title.like("%101")).order_by(Post.id)
        posts = await query.all()

    The builder is single-use: its refining methods mutate it and return it.
    """

    __slots__ = ("_applied", "_client", "_eager", "_relation", "_statement", "_values")

    def __init__(
        self,
        relation: HasManyThrough[R],
        values: Sequence[Any],
        *,
        eager: bool,
        client: QueryClient | None = None,
    ) -> None:
        self._relation = relation
        self._values = tuple(values)
        self._eager = eager
        self._client = client
        self._applied = False
        self._statement: sa.Select[Any] = sa.select(relation.related_model)

    @property
    def statement(self) -> sa.Select[Any]:
        return self._statement

    @property
    def relation(self) -> HasManyThrough[R]:
        return self._relation

    @property
    def client(self) -> QueryClient | None:
        return self._client

    @property
    def is_eager(self) -> bool:
        return self._eager

    @property
    def constraints_applied(self) -> bool:
        return self._applied

    def _owner_criterion(self) -> sa.ColumnElement[bool]:
        column = self._relation.keys.foreign_column
        if self._eager:
            return column.in_(self._values)

        return column == self._values[0]

    def where(self, *criteria: sa.ColumnExpressionArgument[bool]) -> Self:
        self._statement = self._statement.where(*criteria)
        return self

    def order_by(self, *clauses: Any) -> Self:
        self._statement = self._statement.order_by(*clauses)
        return self

    def limit(self, limit: int | None) -> Self:
        self._statement = self._statement.limit(limit)
        return self

    def offset(self, offset: int | None) -> Self:
        self._statement = self._statement.offset(offset)
        return self

    def options(self, *options: ORMOption) -> Self:
        self._statement = self._statement.options(*options)
        return self

    def apply_constraints(self) -> Self:
        """Merge the join, pivot column and owner filter into the statement.

        Calling it again, directly or through :meth:`all`, is a no-op.
        """
        if self._applied:
            return self

        relation = self._relation
        keys = relation.keys
        self._statement = (
            self._statement.add_columns(keys.foreign_column.label(relation.pivot_alias))
            .join_from(
                relation.related_model,
                keys.through_local_column.table,
                keys.through_local_column == keys.through_foreign_column,
            )
            .where(self._owner_criterion())
        )
        self._applied = True

        return self

    def to_sql(self) -> CompiledSQL:
        """Compile the current statement for the client's dialect."""
        return compile_statement(
            self._statement, self._client.dialect if self._client is not None else None
        )

    def _require_client(self) -> QueryClient:
        if self._client is None:
            raise RuntimeError(
                f"{self._relation.qualified_name} query has no client to execute on"
            )

        return self._client

    async def rows(self) -> list[tuple[R, Any]]:
        """Execute on the read session and return ``(object, pivot)`` pairs.

        A related row reachable from several owners comes back once per
        owner, always as the same identity-mapped object, so the pivot of
        each pair is the only reliable record of which owner it belongs to.
        The object's extras hold the pivot of its last pair.
        """
        client = self._require_client()
        self.apply_constraints()

        result = await client.for_read().execute(self._statement)
        alias = self._relation.pivot_alias
        rows: list[tuple[R, Any]] = []
        for obj, pivot in result.unique().all():
            set_extra(obj, alias, pivot)
            set_connection_name(obj, client.connection)
            rows.append((obj, pivot))

        logger.debug(
            "%s fetched %d row(s) for %d owner key(s)",
            self._relation.qualified_name,
            len(rows),
            len(self._values),
        )

        return rows

    async def all(self) -> list[R]:
        """Execute on the read session and return the related objects.

        Every object carries its owner's key value in its extras under the
        relation's pivot alias.
        """
        return [obj for obj, _ in await self.rows()]

    async def first(self) -> R | None:
        objects = await self.limit(1).all()
        return objects[0] if objects else None

    def update(self, values: Mapping[str, Any]) -> HasManyThroughMutation:
        """``UPDATE`` the reachable related rows; see :class:`HasManyThroughMutation`."""
        relation = self._relation
        statement = build_update(
            relation.related_model, relation.keys, self._owner_criterion(), values
        )

        return HasManyThroughMutation(statement, self._client, relation.qualified_name)

    def delete(self) -> HasManyThroughMutation:
        """``DELETE`` the reachable related rows; see :class:`HasManyThroughMutation`."""
        statement = build_delete(self._relation.keys, self._owner_criterion())

        return HasManyThroughMutation(statement, self._client, self._relation.qualified_name)
