"""Projection loaders: select columns straight into read-model shapes,
without materializing ORM entities.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .core import apply_paging
from .exceptions import AssociationNotFoundError
from .models import Address, Delivery, Item, Member, Order, OrderItem
from .projections import (
    FlatRow,
    OrderItemProjection,
    OrderProjection,
    OrderSearch,
    OrderSummary,
)
from .tools import check_batch_size, chunked, group_by


logger = logging.getLogger(__name__)


def _summary_columns() -> tuple[sa.ColumnElement[Any], ...]:
    return (
        Order.id.label("order_id"),
        Member.id.label("member_key"),
        Member.name.label("member_name"),
        Order.order_date.label("order_date"),
        Order.status.label("order_status"),
        Delivery.id.label("delivery_key"),
        Delivery.city.label("city"),
        Delivery.street.label("street"),
        Delivery.zipcode.label("zipcode"),
    )


def _item_columns() -> tuple[sa.ColumnElement[Any], ...]:
    return (
        OrderItem.id.label("order_item_id"),
        Item.id.label("item_key"),
        Item.name.label("item_name"),
        OrderItem.order_price,
        OrderItem.count.label("item_count"),
    )


# Member, Delivery and Item are outer-joined: a dangling foreign key comes
# back as a NULL key column and is raised, never filtered out.


def summary_select() -> sa.Select[Any]:
    """Order columns with member and delivery joined in: one row per order."""
    return (
        sa.select(*_summary_columns())
        .outerjoin(Order.member)
        .outerjoin(Order.delivery)
        .order_by(Order.id)
    )


def order_items_select(order_ids: Sequence[int]) -> sa.Select[Any]:
    """Order item columns, with the item name, for the given orders."""
    return (
        sa.select(OrderItem.order_id, *_item_columns())
        .outerjoin(OrderItem.item)
        .where(OrderItem.order_id.in_(order_ids))
        .order_by(OrderItem.order_id, OrderItem.id)
    )


def flat_select() -> sa.Select[Any]:
    """Order and order item columns fully joined: one row per order item."""
    return (
        sa.select(*_summary_columns(), *_item_columns())
        .outerjoin(Order.member)
        .outerjoin(Order.delivery)
        .join(Order.order_items)
        .outerjoin(OrderItem.item)
        .order_by(Order.id, OrderItem.id)
    )


def _to_summary(row: sa.Row[Any]) -> OrderSummary:
    if row.member_key is None:
        raise AssociationNotFoundError("Order", row.order_id, "member")
    if row.delivery_key is None:
        raise AssociationNotFoundError("Order", row.order_id, "delivery")

    return OrderSummary(
        order_id=row.order_id,
        member_name=row.member_name,
        order_date=row.order_date,
        order_status=row.order_status,
        address=Address(row.city, row.street, row.zipcode),
    )


def _to_item(row: sa.Row[Any]) -> OrderItemProjection:
    if row.item_key is None:
        raise AssociationNotFoundError("OrderItem", row.order_item_id, "item")

    return OrderItemProjection(
        order_id=row.order_id,
        item_name=row.item_name,
        order_price=row.order_price,
        count=row.item_count,
    )


def _to_flat(row: sa.Row[Any]) -> FlatRow:
    summary = _to_summary(row)
    item = _to_item(row)

    return FlatRow(
        order_id=summary.order_id,
        member_name=summary.member_name,
        order_date=summary.order_date,
        order_status=summary.order_status,
        address=summary.address,
        item_name=item.item_name,
        order_price=item.order_price,
        count=item.count,
    )


async def _find_summaries(
    session: AsyncSession,
    search: OrderSearch,
    offset: int | None = None,
    limit: int | None = None,
) -> list[OrderSummary]:
    query = apply_paging(search.apply(summary_select(), member_joined=True), offset, limit)

    return [_to_summary(row) for row in await session.execute(query)]


async def find_order_item_map(
    session: AsyncSession,
    order_ids: Sequence[int],
    *,
    batch_size: int,
) -> dict[int, list[OrderItemProjection]]:
    """Select the order items of *order_ids* and group them by order id.

    Ids are sent ``batch_size`` per ``IN`` clause; an empty id list issues
    nothing.
    """
    if not order_ids:
        return {}

    check_batch_size(session, batch_size)

    items: list[OrderItemProjection] = []
    for chunk in chunked(order_ids, batch_size):
        items.extend(_to_item(row) for row in await session.execute(order_items_select(chunk)))

    return group_by(items, key=lambda item: item.order_id)


async def list_orders_projected(
    session: AsyncSession,
    search: OrderSearch | None = None,
    *,
    offset: int | None = None,
    limit: int | None = None,
    batch_size: int | None = None,
) -> list[OrderProjection]:
    """Two-phase projection: paged order rows, then their items by ``IN``.

    Phase 1 pages the to-one joined order rows, which is correct because
    to-one joins keep one row per order. Phase 2 selects the items of the
    page with ``order_id IN (...)`` and groups them by order id. Orders are
    assembled by lookup; an order whose items vanished between the two
    phases gets an empty tuple.

    Two statements when the page fits one batch.

    Raises:
        AssociationNotFoundError: A member, delivery or item row is missing.
    """
    settings = get_settings()
    search = search or OrderSearch()
    offset = settings.default_offset if offset is None else offset
    limit = settings.default_limit if limit is None else limit
    batch_size = settings.batch_size if batch_size is None else batch_size

    summaries = await _find_summaries(session, search, offset, limit)
    item_map = await find_order_item_map(
        session, [s.order_id for s in summaries], batch_size=batch_size
    )
    logger.debug(
        "projected %d orders, %d with items", len(summaries), len(item_map)
    )

    return [
        OrderProjection.from_summary(summary, item_map.get(summary.order_id, ()))
        for summary in summaries
    ]


async def list_orders_projected_per_order(
    session: AsyncSession,
    search: OrderSearch | None = None,
) -> list[OrderProjection]:
    """Projection that selects the items of each order separately.

    ``1 + N`` statements. Useful for a single order; for lists prefer
    :func:`list_orders_projected`.
    """
    search = search or OrderSearch()
    summaries = await _find_summaries(session, search)

    result: list[OrderProjection] = []
    for summary in summaries:
        rows = await session.execute(order_items_select([summary.order_id]))
        result.append(OrderProjection.from_summary(summary, map(_to_item, rows)))

    return result


async def list_order_summaries(
    session: AsyncSession,
    search: OrderSearch | None = None,
    *,
    offset: int | None = None,
    limit: int | None = None,
) -> list[OrderSummary]:
    """To-one columns only, one statement, pageable."""
    settings = get_settings()
    search = search or OrderSearch()
    offset = settings.default_offset if offset is None else offset
    limit = settings.default_limit if limit is None else limit

    return await _find_summaries(session, search, offset, limit)


async def list_orders_flat(
    session: AsyncSession,
    search: OrderSearch | None = None,
    *,
    offset: int | None = None,
    limit: int | None = None,
) -> list[FlatRow]:
    """One statement, one row per (order, order item), nothing regrouped.

    Order columns repeat on every row of the same order; use
    :func:`regroup_flat` to rebuild ``OrderProjection``s. Paging is refused
    with ``InvalidPagingError`` for the same reason as the collection fetch
    join.
    A missing member, delivery or item raises ``AssociationNotFoundError``.
    """
    search = search or OrderSearch()
    query = apply_paging(
        search.apply(flat_select(), member_joined=True),
        offset,
        limit,
        collection=True,
        strategy="flat projection",
    )

    return [_to_flat(row) for row in await session.execute(query)]
