"""Before/after comparison: raw SQLAlchemy vs fetch_select.

Shows how the same fetch join looks written by hand versus a single
fetch_select call.
"""

from __future__ import annotations

from typing import Any, Literal

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncSession

from sqla_orderloads import fetch_select, unique_scalars
from sqla_orderloads.models import Member, Order, OrderItem


OrderJoin = Literal["member", "delivery", "order_items.item"]


async def get_orders_raw(
    session: AsyncSession,
    *joins: OrderJoin,
) -> list[Order]:
    query = sa.select(Order)
    options: list[Any] = []

    if "member" in joins:
        query = query.outerjoin(Order.member)
        options.append(orm.contains_eager(Order.member))

    if "delivery" in joins:
        query = query.outerjoin(Order.delivery)
        options.append(orm.contains_eager(Order.delivery))

    if "order_items.item" in joins:
        query = query.outerjoin(Order.order_items).outerjoin(OrderItem.item)
        options.append(orm.contains_eager(Order.order_items).contains_eager(OrderItem.item))
        query = query.order_by(Order.id, OrderItem.id)
    else:
        query = query.order_by(Order.id)

    result = await session.execute(query.options(*options))
    return list(result.unique().scalars().all())


async def get_orders(
    session: AsyncSession,
    *joins: OrderJoin,
) -> list[Order]:
    query = fetch_select(model=Order, joins=joins)
    return list(unique_scalars(await session.execute(query)))


async def get_orders_of(session: AsyncSession, name: str) -> list[Order]:
    # filters compose on top of the cached statement
    query = fetch_select(model=Order, joins=("member", "delivery")).where(Member.name == name)
    return list((await session.scalars(query)).all())
