from __future__ import annotations

import re
from collections.abc import Hashable, Iterable, Mapping
from functools import lru_cache
from typing import Any, Final, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm

from .datastructures import frozendict


_H = TypeVar("_H", bound=Hashable)

PIVOT_ALIAS_PREFIX: Final[str] = "through"
EXTRAS_INFO_KEY: Final[str] = "sqla_through.extras"
CONNECTION_INFO_KEY: Final[str] = "sqla_through.connection"

_CAMEL_BOUNDARY: Final[re.Pattern[str]] = re.compile(
    r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])"
)


@lru_cache(maxsize=512)
def snake_case(name: str) -> str:
    """Convert a class or attribute name to ``snake_case``.

    Example:
        >>> snake_case("BlogPost")
        'blog_post'
        >>> snake_case("HTTPRequest")
        'http_request'
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def pivot_alias(local: type[Any], local_key: str) -> str:
    """Name of the projected through-table column carrying the owner's key.

    ``pivot_alias(Country, "id")`` -> ``"through_country_id"``.
    """
    return f"{PIVOT_ALIAS_PREFIX}_{snake_case(local.__name__)}_{snake_case(local_key)}"


def get_primary_key_names(model: type[Any]) -> tuple[str, ...]:
    """Attribute keys of the primary key columns of *model*, in column order."""
    mapper = sa.inspect(model)

    return tuple(mapper.get_property_by_column(column).key for column in mapper.primary_key)


def get_column(model: type[Any], key: str) -> sa.Column[Any] | None:
    """Physical table column mapped to attribute *key*, or ``None``."""
    mapper: orm.Mapper[Any] = sa.inspect(model)
    prop = mapper.column_attrs.get(key)
    if prop is None or len(prop.columns) != 1:
        return None

    column = prop.columns[0]

    return column if isinstance(column, sa.Column) else None


def unique_values(values: Iterable[_H | None]) -> list[_H]:
    """Deduplicate *values* preserving first-seen order, skipping ``None``."""
    return [value for value in dict.fromkeys(values) if value is not None]


def _info(obj: object) -> dict[Any, Any]:
    return sa.inspect(obj).info


def get_extras(obj: object) -> Mapping[str, Any]:
    """Read-only view of the extras attached to a fetched related object.

    Related objects loaded through a has-many-through relation carry the
    owner's key value under the relation's pivot alias::

        posts = await related(country, "posts").all()
        get_extras(posts[0])["through_country_id"]  # -> country.id
    """
    return frozendict(_info(obj).get(EXTRAS_INFO_KEY, {}))


def set_extra(obj: object, key: str, value: Any) -> None:
    """Attach *value* under *key* to the extras of *obj*."""
    _info(obj).setdefault(EXTRAS_INFO_KEY, {})[key] = value


def get_connection_name(obj: object) -> str | None:
    """Name of the connection *obj* was fetched through, if one was set."""
    return _info(obj).get(CONNECTION_INFO_KEY)


def set_connection_name(obj: object, name: str | None) -> None:
    if name is not None:
        _info(obj)[CONNECTION_INFO_KEY] = name
