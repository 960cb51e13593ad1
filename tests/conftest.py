from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from typing import Any, Final

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_through import boot_relations

from .models import Base, Continent, Country, Post, User


ASYNC_DRIVERS: Final[dict[str, str]] = {
    "postgres": "postgresql+asyncpg",
    "mysql": "mysql+asyncmy",
    "mariadb": "mysql+asyncmy",
}

pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "mysql", "mariadb", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session", autouse=True)
def _boot_relations() -> None:
    """Resolve keys of every test relation up front.

    Needs no database, so unit tests get booted relations too.
    """
    boot_relations(Base)


def _container(backend: str) -> Any:
    if backend == "postgres":
        from testcontainers.postgres import PostgresContainer

        return PostgresContainer(image="postgres:latest")

    from testcontainers.mysql import MySqlContainer

    return MySqlContainer(image="mysql:8.0" if backend == "mysql" else "mariadb:latest")


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    if db_backend == "sqlite":
        yield f"sqlite+aiosqlite:///{tmp_path_factory.mktemp('db')}/test.db"
        return

    container = _container(db_backend)
    if os.name == "nt":
        container.get_container_host_ip = lambda: "127.0.0.1"
    with container:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(container.port)
        yield (
            f"{ASYNC_DRIVERS[db_backend]}://{container.username}:{container.password}"
            f"@{host}:{port}/{container.dbname}"
        )


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


@pytest.fixture
def statements(connection: AsyncConnection) -> Iterator[list[str]]:
    """SQL statements sent to the database while the test runs."""
    captured: list[str] = []

    def _capture(*args: Any) -> None:
        # (conn, cursor, statement, parameters, context, executemany)
        captured.append(args[2])

    sync_conn = connection.sync_connection
    assert sync_conn is not None
    sa.event.listen(sync_conn, "before_cursor_execute", _capture)
    yield captured
    sa.event.remove(sync_conn, "before_cursor_execute", _capture)


@pytest.fixture
async def seed_data(session: AsyncSession) -> dict[str, list[Base]]:
    asia = Continent(id=1, code="AS", name="Asia")
    america = Continent(id=2, code="NA", name="North America")
    europe = Continent(id=3, code="EU", name="Europe")
    session.add_all([asia, america, europe])
    await session.flush()

    india = Country(id=1, name="India", continent_code="AS")
    usa = Country(id=2, name="USA", continent_code="NA")
    nepal = Country(id=3, name="Nepal", continent_code="AS")
    session.add_all([india, usa, nepal])
    await session.flush()

    virk = User(id=1, username="virk", country_id=1)
    nikk = User(id=2, username="nikk", country_id=2)
    romain = User(id=3, username="romain", country_id=2)
    session.add_all([virk, nikk, romain])
    await session.flush()

    post1 = Post(id=1, title="Adonis 101", user_id=1)
    post2 = Post(id=2, title="Lucid 101", user_id=1)
    post3 = Post(id=3, title="Adonis5", user_id=2)
    post4 = Post(id=4, title="Japa", user_id=3)
    session.add_all([post1, post2, post3, post4])
    await session.flush()

    session.expunge_all()

    return {
        "continents": [asia, america, europe],
        "countries": [india, usa, nepal],
        "users": [virk, nikk, romain],
        "posts": [post1, post2, post3, post4],
    }
