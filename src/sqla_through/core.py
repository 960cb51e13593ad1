from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_object_session

from .client import QueryClient, as_client
from .query import HasManyThroughQuery
from .registry import get_relation
from .tools import get_connection_name


Constraint = Callable[[HasManyThroughQuery[Any]], HasManyThroughQuery[Any]]


def _client_for(instance: object) -> QueryClient | None:
    session = async_object_session(instance)
    if session is None:
        return None

    return QueryClient(session, connection=get_connection_name(instance))


def related(
    instance: object,
    name: str,
    client: QueryClient | AsyncSession | None = None,
) -> HasManyThroughQuery[Any]:
    """Relation-scoped query for one instance.

    Boots the relation if needed. Without *client*, the query runs on the
    ``AsyncSession`` the instance belongs to and inherits the connection name
    the instance was fetched with.

    Example::

        posts = await related(country, "posts").order_by(Post.id).all()
        await related(country, "posts").update({"title": "Lucid 101"}).execute()
        await related(country, "posts").delete().execute()
    """
    relation = get_relation(type(instance), name)
    relation.boot()
    resolved = as_client(client) if client is not None else _client_for(instance)

    return relation.get_query(instance, resolved)


async def preload(
    instances: Sequence[object],
    *names: str,
    client: QueryClient | AsyncSession,
    constraints: Mapping[str, Constraint] | None = None,
) -> None:
    """Eager-load has-many-through relations onto *instances*.

    Issues exactly one query per relation name regardless of how many
    instances are given, then assigns every instance its list of related
    objects. ``constraints`` maps a relation name to a callable refining its
    query before execution, e.g. to impose an order::

        countries = (await session.scalars(sa.select(Country))).all()
        await preload(
            countries,
            "posts",
            client=session,
            constraints={"posts": lambda q: q.order_by(Post.id)},
        )
        countries[0].posts

    Args:
        instances: Owners, all of the same model.
        *names: Relation names declared on that model.
        client: Session or client used for the queries. Without a connection
            name of its own, fetched rows take the one the first instance
            was fetched with.
        constraints: Optional per-relation query refinements.
    """
    if not instances:
        return

    resolved = as_client(client)
    assert resolved is not None
    if resolved.connection is None and (connection := get_connection_name(instances[0])):
        resolved = replace(resolved, connection=connection)

    model = type(instances[0])
    for name in names:
        relation = get_relation(model, name)
        relation.boot()

        query = relation.get_eager_query(instances, resolved)
        if constraints and (constraint := constraints.get(name)) is not None:
            query = constraint(query)

        relation.set_related_many(instances, await query.rows())


class ThroughRelationsMixin:
    """Adds ``related()`` and ``preload()`` to a mapped class.

    Example::

        class Country(ThroughRelationsMixin, Base):
            ...

        posts = await country.related("posts").all()
        await country.preload("posts")
    """

    def related(
        self, name: str, client: QueryClient | AsyncSession | None = None
    ) -> HasManyThroughQuery[Any]:
        return related(self, name, client)

    async def preload(
        self,
        *names: str,
        client: QueryClient | AsyncSession | None = None,
        constraints: Mapping[str, Constraint] | None = None,
    ) -> None:
        resolved = as_client(client) if client is not None else _client_for(self)
        if resolved is None:
            raise RuntimeError(
                f"{type(self).__name__} instance is not attached to a session; pass client="
            )

        await preload([self], *names, client=resolved, constraints=constraints)
