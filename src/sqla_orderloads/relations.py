from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from functools import lru_cache
from types import MappingProxyType
from typing import TypeVar

from sqlalchemy import orm
from sqlalchemy.orm.interfaces import MANYTOMANY, MANYTOONE, ONETOMANY


T = TypeVar("T", bound=orm.DeclarativeBase)
Relationship = orm.RelationshipProperty[orm.DeclarativeBase]


class Cardinality(enum.Enum):
    """Association cardinality seen from the referencing entity."""

    MANY_TO_ONE = "many-to-one"
    ONE_TO_ONE = "one-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


def cardinality(relationship: Relationship) -> Cardinality:
    """Classify *relationship*.

    ``uselist=False`` on either FK direction is a one-to-one: the owning side
    (``Order.delivery``) is MANYTOONE to SQLAlchemy, the inverse side
    (``Delivery.order``) is ONETOMANY.
    """
    direction = relationship.direction
    if direction is MANYTOMANY:
        return Cardinality.MANY_TO_MANY

    if direction is MANYTOONE:
        return Cardinality.ONE_TO_ONE if _is_unique_fk(relationship) else Cardinality.MANY_TO_ONE

    assert direction is ONETOMANY
    return Cardinality.ONE_TO_ONE if not relationship.uselist else Cardinality.ONE_TO_MANY


def is_to_many(relationship: Relationship) -> bool:
    """True when joining *relationship* can multiply the parent's rows."""
    return cardinality(relationship) in (Cardinality.ONE_TO_MANY, Cardinality.MANY_TO_MANY)


def _is_unique_fk(relationship: Relationship) -> bool:
    return all(
        col.unique or col.primary_key for col in relationship.local_columns
    ) and bool(relationship.local_columns)


def relationship_graph(
    base: type[orm.DeclarativeBase],
) -> Mapping[type[orm.DeclarativeBase], Sequence[Relationship]]:
    """Map every mapped class under *base* to its relationships.

    Args:
        base: Declarative base whose registry is inspected.

    Returns:
        Read-only mapping from model class to its relationship properties.
    """
    assert orm.DeclarativeBase in getattr(base, "__mro__", ()), (
        "base must be a subclass of orm.DeclarativeBase"
    )

    return MappingProxyType({
        mapper.class_: tuple(mapper.relationships.values()) for mapper in base.registry.mappers
    })


@lru_cache(maxsize=256)
def resolve_path(model: type[T], dotted: str) -> tuple[Relationship, ...]:
    """Resolve ``"order_items.item"`` into the chain of relationship properties.

    Each segment must be a direct relationship key on the current model.
    """
    result: list[Relationship] = []
    current_cls: type[orm.DeclarativeBase] = model
    for segment in dotted.split("."):
        rel = orm.class_mapper(current_cls).relationships.get(segment)
        if rel is None:
            raise ValueError(
                f"No relationship '{segment}' on {current_cls.__name__} "
                f"(resolving '{dotted}' from {model.__name__})"
            )
        result.append(rel)
        current_cls = rel.mapper.class_

    return tuple(result)
