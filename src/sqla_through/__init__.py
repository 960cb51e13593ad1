"""Has-many-through relations for SQLAlchemy.

sqla_through lets a model reach a collection of another model through an
intermediate table without mapping that hop as an ORM relationship.
Declare the relation with ``has_many_through`` in the model body, then use
``related(instance, name)`` to query, update or delete the related rows of
one instance, or ``preload(instances, name, client=...)`` to load them for
many instances with a single query.
"""

from ._version import __version__, __version_tuple__
from .client import CompiledSQL, QueryClient
from .core import ThroughRelationsMixin, preload, related
from .datastructures import frozendict
from .exceptions import (
    MissingForeignKeyError,
    MissingLocalKeyError,
    MissingThroughForeignKeyError,
    MissingThroughLocalKeyError,
    RelationConfigurationError,
    RelationNotBootedError,
)
from .keys import KeyOverrides, ResolvedKeys, resolve_keys
from .mutation import HasManyThroughMutation
from .query import HasManyThroughQuery
from .registry import boot_relations, get_relation, get_relations
from .relation import HasManyThrough, has_many_through
from .tools import get_connection_name, get_extras, pivot_alias, snake_case


__all__ = (
    "CompiledSQL",
    "HasManyThrough",
    "HasManyThroughMutation",
    "HasManyThroughQuery",
    "KeyOverrides",
    "MissingForeignKeyError",
    "MissingLocalKeyError",
    "MissingThroughForeignKeyError",
    "MissingThroughLocalKeyError",
    "QueryClient",
    "RelationConfigurationError",
    "RelationNotBootedError",
    "ResolvedKeys",
    "ThroughRelationsMixin",
    "__version__",
    "__version_tuple__",
    "boot_relations",
    "frozendict",
    "get_connection_name",
    "get_extras",
    "get_relation",
    "get_relations",
    "has_many_through",
    "pivot_alias",
    "preload",
    "related",
    "resolve_keys",
    "snake_case",
)
