from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

import sqlalchemy as sa

from .exceptions import (
    MissingForeignKeyError,
    MissingLocalKeyError,
    MissingThroughForeignKeyError,
    MissingThroughLocalKeyError,
    RelationConfigurationError,
)
from .tools import get_column, get_primary_key_names, snake_case


DEFAULT_KEY_NAME: Final[str] = "id"


@dataclass(slots=True, frozen=True)
class KeyOverrides:
    """Explicit attribute names replacing the conventional defaults."""

    local_key: str | None = None
    foreign_key: str | None = None
    through_local_key: str | None = None
    through_foreign_key: str | None = None


@dataclass(slots=True, frozen=True)
class ResolvedKeys:
    """The four keys of a has-many-through join chain.

    Each key is kept both as the mapped attribute name (used to read values
    off instances) and as the physical table column (used to build SQL).
    """

    local_key: str
    local_column: sa.Column[Any]
    foreign_key: str
    foreign_column: sa.Column[Any]
    through_local_key: str
    through_local_column: sa.Column[Any]
    through_foreign_key: str
    through_foreign_column: sa.Column[Any]


def _primary_key(model: type[Any]) -> tuple[str | None, str]:
    # (usable default key, name reported when there is none)
    names = get_primary_key_names(model)
    if len(names) == 1:
        return names[0], names[0]

    return None, f"({', '.join(names)})" if names else DEFAULT_KEY_NAME


def _resolve_one(
    model: type[Any],
    key: str | None,
    error: type[RelationConfigurationError],
    relation: str,
    missing_name: str = DEFAULT_KEY_NAME,
) -> tuple[str, sa.Column[Any]]:
    name = key or missing_name
    column = get_column(model, key) if key else None
    if column is None:
        raise error(model.__name__, name, relation)

    return name, column


def resolve_keys(
    local: type[Any],
    through: type[Any],
    related: type[Any],
    *,
    relation: str,
    overrides: KeyOverrides = KeyOverrides(),  # noqa: B008
) -> ResolvedKeys:
    """Resolve and validate the join chain ``local -> through -> related``.

    Keys are checked in a fixed order and the first missing one raises:

    1. local key (default: local primary key) on *local*; a composite
       primary key is reported as ``(a, b)``
    2. foreign key (default: ``<local>_id``) on *through*
    3. through local key (default: through primary key) on *through*
    4. through foreign key (default: ``<through>_id``) on *related*

    Args:
        local: Model declaring the relation.
        through: Intermediate model.
        related: Model being fetched.
        relation: ``"<Local>.<name>"``, used in error messages.
        overrides: Explicit attribute names.

    Raises:
        RelationConfigurationError: One of its four subclasses, for the first
            key that is not a mapped table column.
    """
    local_default, local_missing = _primary_key(local)
    local_key, local_column = _resolve_one(
        local,
        overrides.local_key or local_default,
        MissingLocalKeyError,
        relation,
        local_missing,
    )
    foreign_key, foreign_column = _resolve_one(
        through,
        overrides.foreign_key or f"{snake_case(local.__name__)}_id",
        MissingForeignKeyError,
        relation,
    )
    through_default, through_missing = _primary_key(through)
    through_local_key, through_local_column = _resolve_one(
        through,
        overrides.through_local_key or through_default,
        MissingThroughLocalKeyError,
        relation,
        through_missing,
    )
    through_foreign_key, through_foreign_column = _resolve_one(
        related,
        overrides.through_foreign_key or f"{snake_case(through.__name__)}_id",
        MissingThroughForeignKeyError,
        relation,
    )

    return ResolvedKeys(
        local_key=local_key,
        local_column=local_column,
        foreign_key=foreign_key,
        foreign_column=foreign_column,
        through_local_key=through_local_key,
        through_local_column=through_local_column,
        through_foreign_key=through_foreign_key,
        through_foreign_column=through_foreign_column,
    )
