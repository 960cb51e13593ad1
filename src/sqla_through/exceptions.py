from __future__ import annotations

from typing import ClassVar


class RelationConfigurationError(ValueError):
    """A key required by a has-many-through relation does not exist.

    Raised by ``HasManyThrough.boot()`` before any SQL is built. The message
    format is stable and starts with :attr:`identifier`, e.g.::

        E_MISSING_RELATED_FOREIGN_KEY: User.country_id required by Country.posts relation is missing
    """

    identifier: ClassVar[str] = "E_INVALID_RELATION"

    def __init__(self, model: str, key: str, relation: str) -> None:
        self.model = model
        self.key = key
        self.relation = relation
        super().__init__(
            f"{self.identifier}: {model}.{key} required by {relation} relation is missing"
        )


class MissingLocalKeyError(RelationConfigurationError):
    identifier = "E_MISSING_RELATED_LOCAL_KEY"


class MissingForeignKeyError(RelationConfigurationError):
    identifier = "E_MISSING_RELATED_FOREIGN_KEY"


class MissingThroughLocalKeyError(RelationConfigurationError):
    identifier = "E_MISSING_THROUGH_LOCAL_KEY"


class MissingThroughForeignKeyError(RelationConfigurationError):
    identifier = "E_MISSING_THROUGH_FOREIGN_KEY"


class RelationNotBootedError(RuntimeError):
    """A query was requested from a relation whose ``boot()`` has not run."""

    def __init__(self, relation: str) -> None:
        self.relation = relation
        super().__init__(f"{relation} relation is not booted; call boot() first")
