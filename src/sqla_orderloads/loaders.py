"""Entity loaders: each returns ``Order`` aggregates with ``member``,
``delivery`` and ``order_items.item`` populated, using a different fetch plan.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Final, TypeVar

from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from .config import get_settings
from .core import apply_paging, fetch_select, has_collection_join
from .exceptions import AssociationNotFoundError
from .models import Order, OrderItem
from .projections import OrderSearch
from .tools import check_batch_size, chunked, unique_scalars


logger = logging.getLogger(__name__)

T = TypeVar("T", bound=orm.DeclarativeBase)

TO_ONE_JOINS: Final[tuple[str, ...]] = ("member", "delivery")
AGGREGATE_JOINS: Final[tuple[str, ...]] = ("member", "delivery", "order_items.item")

# Re-enables per-row lazy loading for the naive loader only; every mapped
# relationship is raise_on_sql by default.
_NAIVE_OPTIONS: Final[tuple[Any, ...]] = (
    orm.lazyload(Order.member),
    orm.lazyload(Order.delivery),
    orm.lazyload(Order.order_items).lazyload(OrderItem.item),
)


async def list_orders_naive(
    session: AsyncSession,
    search: OrderSearch | None = None,
) -> list[Order]:
    """Load root rows, then resolve every association one row at a time.

    Issues ``1 + distinct members + 2N + distinct items`` statements: a
    member or item already in the identity map is not fetched again. This is
    the N+1 baseline the other strategies are measured against.
    """
    search = search or OrderSearch()
    query = search.apply(fetch_select(model=Order), member_joined=False).options(*_NAIVE_OPTIONS)
    orders = list((await session.scalars(query)).all())

    for order in orders:
        await _resolve(order, "member")
        await _resolve(order, "delivery")
        for order_item in await _resolve(order, "order_items"):
            await _resolve(order_item, "item")

    logger.debug("naive load resolved %d orders row by row", len(orders))

    return orders


async def _resolve(instance: Any, key: str) -> Any:
    value = await getattr(instance.awaitable_attrs, key)
    if value is None:
        raise AssociationNotFoundError(type(instance).__name__, instance.id, key)

    return value


def _check_loaded(orders: Sequence[Order]) -> None:
    # outer fetch joins leave a missing row as None
    for order in orders:
        if order.member is None:
            raise AssociationNotFoundError("Order", order.id, "member")
        if order.delivery is None:
            raise AssociationNotFoundError("Order", order.id, "delivery")
        for order_item in order.order_items:
            if order_item.item is None:
                raise AssociationNotFoundError("OrderItem", order_item.id, "item")


async def list_orders_to_one_join(
    session: AsyncSession,
    search: OrderSearch | None = None,
    *,
    offset: int | None = None,
    limit: int | None = None,
    batch_size: int | None = None,
) -> list[Order]:
    """Fetch-join ``member`` and ``delivery``, then batch-load the items.

    To-one joins never multiply rows, so the root statement is paged with
    ``offset``/``limit`` (defaults from settings). The ``order_items`` of the
    page are then loaded ``batch_size`` orders per statement:
    ``1 + ceil(N / batch_size)`` statements in total.

    A member, delivery or item row that is missing raises
    ``AssociationNotFoundError`` instead of dropping the order or item.
    """
    settings = get_settings()
    search = search or OrderSearch()
    offset = settings.default_offset if offset is None else offset
    limit = settings.default_limit if limit is None else limit
    batch_size = settings.batch_size if batch_size is None else batch_size

    query = apply_paging(
        search.apply(fetch_select(model=Order, joins=TO_ONE_JOINS), member_joined=True),
        offset,
        limit,
    )
    orders = list((await session.scalars(query)).all())
    await batch_load_collection(
        session, orders, Order.order_items, joins=("item",), batch_size=batch_size
    )
    _check_loaded(orders)

    return orders


async def list_orders_collection_join(
    session: AsyncSession,
    search: OrderSearch | None = None,
    *,
    offset: int | None = None,
    limit: int | None = None,
) -> list[Order]:
    """Fetch the whole aggregate in one statement.

    Each order row repeats once per order item; the result is de-duplicated
    by identity, first occurrence kept. Paging is refused with
    ``InvalidPagingError``: LIMIT would count multiplied rows, not orders.
    Missing member, delivery or item rows raise ``AssociationNotFoundError``.
    """
    search = search or OrderSearch()
    query = apply_paging(
        search.apply(fetch_select(model=Order, joins=AGGREGATE_JOINS), member_joined=True),
        offset,
        limit,
        collection=has_collection_join(Order, AGGREGATE_JOINS),
        strategy="collection fetch join",
    )
    orders = list(unique_scalars(await session.execute(query)))
    _check_loaded(orders)
    logger.debug("collection fetch join returned %d distinct orders", len(orders))

    return orders


async def batch_load_collection(
    session: AsyncSession,
    parents: Sequence[T],
    attribute: orm.InstrumentedAttribute[Any],
    *,
    joins: tuple[str, ...] = (),
    batch_size: int,
) -> int:
    """Populate a one-to-many *attribute* on *parents* with ``IN`` batches.

    Children are selected ``WHERE fk IN (...)`` for at most *batch_size*
    parent keys per statement, with *joins* fetch-joined on the child, and
    installed as the committed collection value. Parents without children
    get an empty collection.

    Args:
        session: Session the parents belong to.
        parents: Loaded parent instances.
        attribute: Collection attribute, e.g. ``Order.order_items``.
        joins: Paths to fetch-join from the child, e.g. ``("item",)``.
        batch_size: Parent keys per ``IN`` clause.

    Returns:
        Number of statements issued.

    Raises:
        ParameterLimitExceededError: *batch_size* cannot fit one statement.
    """
    relationship = attribute.property
    if not relationship.uselist:
        raise ValueError(f"{attribute} is not a collection")

    if not parents:
        return 0

    check_batch_size(session, batch_size)

    ((local_col, remote_col),) = relationship.local_remote_pairs
    child_cls = relationship.mapper.class_
    parent_key = relationship.parent.get_property_by_column(local_col).key
    child_key = relationship.mapper.get_property_by_column(remote_col).key
    reverse_key = relationship.back_populates

    by_key = {getattr(parent, parent_key): parent for parent in parents}
    base = fetch_select(model=child_cls, joins=joins)
    fk = getattr(child_cls, child_key)

    groups: dict[Any, list[Any]] = {}
    statements = 0
    for chunk in chunked(by_key, batch_size):
        children = (await session.scalars(base.where(fk.in_(chunk)))).all()
        statements += 1
        for child in children:
            groups.setdefault(getattr(child, child_key), []).append(child)

    for key, parent in by_key.items():
        children = groups.get(key, [])
        set_committed_value(parent, relationship.key, children)
        if reverse_key:
            for child in children:
                set_committed_value(child, reverse_key, parent)

    logger.debug(
        "batch loaded %s for %d parents in %d statements (batch_size=%d)",
        attribute,
        len(by_key),
        statements,
        batch_size,
    )

    return statements
