from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa

from .client import CompiledSQL, QueryClient, compile_statement
from .tools import get_column


if TYPE_CHECKING:
    from .keys import ResolvedKeys

logger = logging.getLogger(__name__)


def _reachable(keys: ResolvedKeys, criterion: sa.ColumnElement[bool]) -> sa.ColumnElement[bool]:
    """``related.through_fk IN (SELECT through.pk FROM through WHERE <criterion>)``.

    UPDATE and DELETE cannot join the through table portably, so the related
    rows are scoped with a subquery instead.
    """
    through_keys = sa.select(keys.through_local_column).where(criterion)

    return keys.through_foreign_column.in_(through_keys)


def build_delete(keys: ResolvedKeys, criterion: sa.ColumnElement[bool]) -> sa.Delete:
    related_table = keys.through_foreign_column.table

    return sa.delete(related_table).where(_reachable(keys, criterion))


def build_update(
    related: type[Any],
    keys: ResolvedKeys,
    criterion: sa.ColumnElement[bool],
    values: Mapping[str, Any],
) -> sa.Update:
    """UPDATE statement for *values* keyed by mapped attribute names."""
    columns: dict[sa.Column[Any], Any] = {}
    for key, value in values.items():
        column = get_column(related, key)
        if column is None:
            raise ValueError(f"{related.__name__} has no column attribute {key!r}")
        columns[column] = value

    related_table = keys.through_foreign_column.table

    return sa.update(related_table).where(_reachable(keys, criterion)).values(columns)


class HasManyThroughMutation:
    """Bulk ``UPDATE`` / ``DELETE`` of the related rows reachable from owners.

    Nothing is fetched beforehand and nothing is re-fetched afterwards;
    :meth:`execute` runs on the client's write session and returns the number
    of affected rows.
    """

    __slots__ = ("_client", "_relation_name", "statement")

    def __init__(
        self,
        statement: sa.Update | sa.Delete,
        client: QueryClient | None,
        relation_name: str,
    ) -> None:
        self.statement = statement
        self._client = client
        self._relation_name = relation_name

    def to_sql(self) -> CompiledSQL:
        return compile_statement(
            self.statement, self._client.dialect if self._client is not None else None
        )

    async def execute(self) -> int:
        if self._client is None:
            raise RuntimeError(f"{self._relation_name} mutation has no client to execute on")

        result = await self._client.for_write().execute(self.statement)
        logger.debug(
            "%s %s affected %d row(s)",
            self._relation_name,
            "UPDATE" if isinstance(self.statement, sa.Update) else "DELETE",
            result.rowcount,
        )

        return result.rowcount
