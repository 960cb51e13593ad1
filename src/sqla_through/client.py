from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple, TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncSession

from .tools import set_connection_name


T = TypeVar("T")


class CompiledSQL(NamedTuple):
    """SQL text and bound parameters of a compiled statement."""

    sql: str
    params: dict[str, Any]


def compile_statement(statement: sa.Executable, dialect: Dialect | None = None) -> CompiledSQL:
    compiled = statement.compile(dialect=dialect)  # type: ignore[attr-defined]

    return CompiledSQL(str(compiled), dict(compiled.params))


@dataclass(slots=True, frozen=True)
class QueryClient:
    """Read/write session pair used to execute relation queries.

    Fetches go to ``session``; ``UPDATE`` / ``DELETE`` go to
    ``write_session`` when one is configured. ``connection`` is an optional
    name recorded on every object fetched through this client, so that rows
    later reached through a relation of those objects report the same name.

    Example::

        client = QueryClient(replica_session, write_session=primary_session)
        countries = await client.scalars(sa.select(Country))
        await preload(countries, "posts", client=client)
    """

    session: AsyncSession
    write_session: AsyncSession | None = None
    connection: str | None = None

    def for_read(self) -> AsyncSession:
        return self.session

    def for_write(self) -> AsyncSession:
        return self.write_session if self.write_session is not None else self.session

    @property
    def dialect(self) -> Dialect | None:
        bind = self.session.bind
        return bind.dialect if bind is not None else None

    async def scalars(self, statement: sa.Select[tuple[T]]) -> Sequence[T]:
        """Execute an ORM select on the read session and tag the results."""
        result = await self.for_read().execute(statement)
        objects = result.unique().scalars().all()
        for obj in objects:
            set_connection_name(obj, self.connection)

        return objects


def as_client(client: QueryClient | AsyncSession | None) -> QueryClient | None:
    """Normalize ``None``, an ``AsyncSession`` or a ``QueryClient``."""
    if client is None or isinstance(client, QueryClient):
        return client

    if isinstance(client, AsyncSession):
        return QueryClient(client)

    raise TypeError(f"Expected AsyncSession or QueryClient, got {type(client).__name__}")
