from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession

from sqla_through import QueryClient, get_connection_name, get_extras, related

from ..models import Base, Country, Post

pytestmark = pytest.mark.anyio


async def _country(session: AsyncSession, country_id: int) -> Country:
    return (await session.scalars(sa.select(Country).where(Country.id == country_id))).one()


class TestFetch:
    async def test_fetch_using_instance(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        india = await _country(session, 1)

        posts = await related(india, "posts").all()

        assert [p.title for p in posts] == ["Adonis 101", "Lucid 101"]
        assert [get_extras(p)["through_country_id"] for p in posts] == [1, 1]

    async def test_fetch_using_mixin(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        usa = await _country(session, 2)

        posts = await usa.related("posts").order_by(Post.id).all()

        assert [p.title for p in posts] == ["Adonis5", "Japa"]

    async def test_refined_fetch(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        india = await _country(session, 1)

        posts = await related(india, "posts").where(Post.title == "Lucid 101").all()

        assert [p.id for p in posts] == [2]

    async def test_loader_options(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        india = await _country(session, 1)

        posts = await related(india, "posts").options(orm.load_only(Post.title)).order_by(Post.id).all()

        assert [p.title for p in posts] == ["Adonis 101", "Lucid 101"]
        assert all("user_id" in sa.inspect(p).unloaded for p in posts)

    async def test_first(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        usa = await _country(session, 2)

        post = await related(usa, "posts").order_by(Post.id.desc()).first()

        assert post is not None
        assert post.title == "Japa"

    async def test_first_without_rows(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        nepal = await _country(session, 3)

        assert await related(nepal, "posts").first() is None

    async def test_connection_name_propagates(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        client = QueryClient(session, connection="secondary")
        india = (await client.scalars(sa.select(Country).where(Country.id == 1)))[0]

        assert get_connection_name(india) == "secondary"

        posts = await related(india, "posts").all()

        assert len(posts) == 2
        assert all(get_connection_name(p) == "secondary" for p in posts)

    async def test_explicit_client(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        india = Country(id=1)

        posts = await related(india, "posts", client=session).all()

        assert len(posts) == 2

    async def test_detached_instance_has_no_client(self) -> None:
        query = related(Country(id=1), "posts")

        assert query.client is None
        with pytest.raises(RuntimeError, match="Country.posts query has no client"):
            await query.all()

    async def test_execution_errors_propagate(self, session: AsyncSession, _create_tables: None) -> None:
        query = related(Country(id=1), "posts", client=session).where(sa.text("no_such_column = 1"))

        with pytest.raises(sa.exc.DBAPIError):
            await query.all()


class TestBulkMutations:
    async def test_delete(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        usa = await _country(session, 2)

        deleted = await related(usa, "posts").delete().execute()

        assert deleted == 2
        remaining = (await session.scalars(sa.select(Post.title).order_by(Post.id))).all()
        assert remaining == ["Adonis 101", "Lucid 101"]

    async def test_update(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        india = await _country(session, 1)

        updated = await related(india, "posts").update({"title": "Lucid 101"}).execute()

        assert updated == 2
        titles = (await session.execute(sa.select(Post.id, Post.title).order_by(Post.id))).all()
        assert [tuple(row) for row in titles] == [
            (1, "Lucid 101"),
            (2, "Lucid 101"),
            (3, "Adonis5"),
            (4, "Japa"),
        ]

    async def test_no_prior_fetch(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        statements: list[str],
    ) -> None:
        india = await _country(session, 1)
        before = len(statements)

        await related(india, "posts").delete().execute()

        executed = statements[before:]
        assert len(executed) == 1
        assert executed[0].lstrip().upper().startswith("DELETE FROM POSTS")

    async def test_mutation_uses_write_session(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        class _ReadOnly:
            async def execute(self, *args: object, **kwargs: object) -> None:
                raise AssertionError("mutation executed on the read session")

        client = QueryClient(_ReadOnly(), write_session=session)  # type: ignore[arg-type]
        india = await _country(session, 1)

        deleted = await related(india, "posts", client=client).delete().execute()

        assert deleted == 2

    async def test_nothing_reachable(self, session: AsyncSession, seed_data: dict[str, list[Base]]) -> None:
        nepal = await _country(session, 3)

        assert await related(nepal, "posts").delete().execute() == 0
