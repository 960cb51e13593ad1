from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy import orm

from .datastructures import frozendict
from .relation import HasManyThrough


logger = logging.getLogger(__name__)


def _declared_relations(model: type[Any]) -> dict[str, HasManyThrough[Any]]:
    relations: dict[str, HasManyThrough[Any]] = {}
    for klass in reversed(model.__mro__):
        for name, value in vars(klass).items():
            if isinstance(value, HasManyThrough):
                relations[name] = value

    return relations


def get_relations(
    base: type[orm.DeclarativeBase],
) -> Mapping[type[Any], Mapping[str, HasManyThrough[Any]]]:
    """Collect the has-many-through relations of every mapped class of *base*.

    Args:
        base: SQLAlchemy declarative base class.

    Returns:
        Frozen mapping of model class to ``{relation name: relation}``. Models
        without relations are omitted.

    Raises:
        AssertionError: If base is not a subclass of orm.DeclarativeBase.
    """
    assert orm.DeclarativeBase in getattr(base, "__bases__", ()), (
        "base must be a subclass of orm.DeclarativeBase"
    )

    return frozendict({
        mapper.class_: frozendict(relations)
        for mapper in base.registry.mappers
        if (relations := _declared_relations(mapper.class_))
    })


def get_relation(model: type[Any], name: str) -> HasManyThrough[Any]:
    """Return the has-many-through relation *name* declared on *model*.

    Raises:
        ValueError: If *model* has no such relation.
    """
    relation = getattr(model, name, None)
    if not isinstance(relation, HasManyThrough):
        raise ValueError(f"No has-many-through relation '{name}' on {model.__name__}")

    return relation


def boot_relations(base: type[orm.DeclarativeBase]) -> None:
    """Boot every relation declared under *base*.

    Call once at startup, after all models are imported, to surface
    configuration errors before the first query.

    Example:
        >>> from myapp.models import Base
        >>> boot_relations(Base)
    """
    count = 0
    for relations in get_relations(base).values():
        for relation in relations.values():
            relation.boot()
            count += 1

    logger.debug("Booted %d has-many-through relation(s) under %s", count, base.__name__)
