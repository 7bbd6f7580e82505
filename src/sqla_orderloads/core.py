from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Final, Generic, TypeVar

import sqlalchemy as sa
from sqlalchemy import orm

from .exceptions import InvalidPagingError, MultipleCollectionFetchError
from .relations import Relationship, is_to_many, resolve_path


if TYPE_CHECKING:
    from sqlalchemy.orm.strategy_options import _AbstractLoad

T = TypeVar("T", bound=orm.DeclarativeBase)

DEFAULT_OFFSET: Final[int] = 0
DEFAULT_LIMIT: Final[int] = 100


@dataclass(slots=True, frozen=True)
class _FetchParams(Generic[T]):
    __class_getitem__ = classmethod(lambda cls, *args: cls)

    model: type[T]
    joins: tuple[str, ...] = ()
    order_by_pk: bool = field(default=True)


class FetchBuilder(Generic[T]):
    """Builds a single SELECT that fetch-joins the requested association paths.

    Each hop of each dotted path becomes a ``LEFT OUTER JOIN`` plus a chained
    ``contains_eager`` option, so the joined rows populate the association
    instead of only filtering. A row missing on the far side loads as
    ``None`` (or an empty collection) rather than dropping the root; callers
    decide whether that is an error. Paths sharing a prefix reuse the same
    join.

    Only one to-many hop is accepted per statement: two independent
    collections joined side by side return the cross product of both.
    """

    __slots__ = (
        "_collection_path",
        "_loaded",
        "_options",
        "_query",
        "model",
    )

    def __init__(self, model: type[T]) -> None:
        if orm.DeclarativeBase in getattr(model, "__bases__", ()) or model is orm.DeclarativeBase:
            raise TypeError("model must not be orm.DeclarativeBase")

        self.model = model
        self._query: sa.Select[tuple[T]] = sa.select(model)
        self._options: list[_AbstractLoad] = []
        self._loaded: dict[str, _AbstractLoad] = {}
        self._collection_path: str | None = None

    @property
    def collection_path(self) -> str | None:
        """Cumulative path of the fetch-joined collection, if any."""
        return self._collection_path

    def build(self, joins: tuple[str, ...] = (), *, order_by_pk: bool = True) -> sa.Select[tuple[T]]:
        """Return the SELECT for *joins*.

        Args:
            joins: Relationship key paths, e.g. ``("member", "order_items.item")``.
            order_by_pk: Order by the root primary key, then by the primary
                key of every joined collection, so pages and item order are
                stable.

        Raises:
            MultipleCollectionFetchError: Two different to-many hops requested.
        """
        # shallow paths first so a deeper path always finds its prefix joined
        for path in sorted(set(joins), key=lambda p: p.count(".")):
            self._join_path(path, resolve_path(self.model, path))

        if order_by_pk:
            self._query = self._query.order_by(*self.model.__table__.primary_key)
            if self._collection_path is not None:
                rel = resolve_path(self.model, self._collection_path)[-1]
                self._query = self._query.order_by(*rel.mapper.local_table.primary_key)

        if self._options:
            self._query = self._query.options(*self._options)

        return self._query

    def _join_path(self, path: str, relationships: tuple[Relationship, ...]) -> None:
        load: _AbstractLoad | None = None
        cumulative = ""
        for relationship in relationships:
            cumulative = f"{cumulative}.{relationship.key}" if cumulative else relationship.key

            if cumulative in self._loaded:
                load = self._loaded[cumulative]
                continue

            if is_to_many(relationship):
                if self._collection_path is not None:
                    raise MultipleCollectionFetchError(
                        f"cannot fetch-join {cumulative!r}: collection "
                        f"{self._collection_path!r} is already joined into this statement"
                    )
                self._collection_path = cumulative

            self._query = self._query.outerjoin(relationship.class_attribute)
            load = _construct_strategy(orm.contains_eager, relationship, load)
            self._loaded[cumulative] = load

        if load is not None:
            self._options.append(load)


@lru_cache(maxsize=256)
def _fetch_with_joins(params: _FetchParams[T]) -> sa.Select[tuple[T]]:
    return FetchBuilder(params.model).build(params.joins, order_by_pk=params.order_by_pk)


def fetch_select(
    *,
    model: type[T],
    joins: tuple[str, ...] = (),
    order_by_pk: bool = True,
) -> sa.Select[tuple[T]]:
    """Create a SELECT for *model* with every path in *joins* outer fetch-joined.

    Examples:
        To-one associations only, safe to page::

            query = fetch_select(model=Order, joins=("member", "delivery"))

        The whole aggregate in one statement; rows repeat per order item,
        so read it with ``unique_scalars``::

            query = fetch_select(
                model=Order, joins=("member", "delivery", "order_items.item")
            )
    """
    return _fetch_with_joins(
        _FetchParams[T](model=model, joins=joins, order_by_pk=order_by_pk)
    )


def has_collection_join(model: type[T], joins: tuple[str, ...]) -> bool:
    """True when any path in *joins* crosses a to-many association."""
    return any(is_to_many(rel) for path in joins for rel in resolve_path(model, path))


def check_paging(offset: int | None, limit: int | None) -> None:
    if offset is not None and offset < 0:
        raise InvalidPagingError(f"offset must be >= 0, got {offset}")

    if limit is not None and limit < 1:
        raise InvalidPagingError(f"limit must be >= 1, got {limit}")


def reject_paging(strategy: str, offset: int | None, limit: int | None) -> None:
    """Refuse LIMIT/OFFSET on a statement whose rows are multiplied by a collection.

    The database would page the multiplied rows before de-duplication and
    return an under-filled page.
    """
    if offset is not None or limit is not None:
        raise InvalidPagingError(
            f"{strategy} joins a collection and cannot be paged "
            f"(offset={offset!r}, limit={limit!r})"
        )


def apply_paging(
    query: sa.Select[Any],
    offset: int | None,
    limit: int | None,
    *,
    collection: bool = False,
    strategy: str = "query",
) -> sa.Select[Any]:
    """Apply OFFSET/LIMIT, or raise ``InvalidPagingError`` for collection joins."""
    if collection:
        reject_paging(strategy, offset, limit)
        return query

    check_paging(offset, limit)
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)

    return query


def _construct_strategy(
    strategy: Callable[..., _AbstractLoad],
    relationship: Relationship,
    current: _AbstractLoad | None = None,
    **kw: Any,
) -> _AbstractLoad:
    """Create or chain a loader strategy option.

    If ``current`` is ``None``, creates a top-level strategy (e.g. ``orm.contains_eager(rel)``).
    Otherwise chains onto the existing option (e.g. ``current.contains_eager(rel)``).
    """
    attr = relationship.class_attribute

    return strategy(attr, **kw) if current is None else getattr(current, strategy.__name__)(attr, **kw)


def fetch_cache_info() -> dict[str, Any]:
    """Return LRU cache statistics for all internal caches."""
    return {fn.__name__: fn.cache_info() for fn in (_fetch_with_joins, resolve_path)}


def fetch_cache_clear() -> None:
    """Clear all internal LRU caches."""
    for fn in (_fetch_with_joins, resolve_path):
        fn.cache_clear()
