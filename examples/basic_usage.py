"""Basic sqla-orderloads usage examples.

Demonstrates engine setup, the read scope, each loader, filtering,
paging and statement counting.

NOTE: This file is illustrative; it won't run standalone
without a database and seeded data.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from sqla_orderloads import (
    OrderSearch,
    count_statements,
    list_order_summaries,
    list_orders_collection_join,
    list_orders_flat,
    list_orders_projected,
    list_orders_to_one_join,
    regroup_flat,
)
from sqla_orderloads.db import create_engine, create_session_factory, read_scope
from sqla_orderloads.models import Base, Order, OrderStatus


# ── 1. Engine and sessions, once at startup ─────────────────────────

engine = create_engine()  # ORDERLOADS_DATABASE_URL, ORDERLOADS_ECHO_SQL
session_factory = create_session_factory(engine)


async def setup() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── 2. Entities: pageable, items loaded in IN batches ───────────────


async def first_page(session: AsyncSession) -> list[Order]:
    orders = await list_orders_to_one_join(session, offset=0, limit=20)
    for order in orders:
        # already loaded; reading them never queries
        print(order.member.name, [oi.item.name for oi in order.order_items])
    return orders


# ── 3. Entities: one statement, whole result ────────────────────────


async def all_ordered(session: AsyncSession) -> list[Order]:
    search = OrderSearch(order_status=OrderStatus.ORDERED)
    return await list_orders_collection_join(session, search)


# ── 4. Projections for API responses ────────────────────────────────


async def orders_page(page: int, size: int = 10) -> list[dict]:
    async with read_scope(session_factory) as session:
        orders = await list_orders_projected(
            session, OrderSearch(member_name="kim"), offset=page * size, limit=size
        )
    return [
        {
            "order_id": o.order_id,
            "member": o.member_name,
            "items": [(i.item_name, i.count) for i in o.order_items],
        }
        for o in orders
    ]


async def order_headers(session: AsyncSession) -> list[int]:
    return [s.order_id for s in await list_order_summaries(session, limit=50)]


async def flat_report(session: AsyncSession) -> None:
    rows = await list_orders_flat(session)
    for row in rows:
        print(row.order_id, row.item_name, row.order_price * row.count)

    # the same rows folded back per order
    print(len(regroup_flat(rows)))


# ── 5. Counting round trips ─────────────────────────────────────────


async def show_statement_count(session: AsyncSession) -> None:
    async with count_statements(session) as counter:
        await list_orders_projected(session)

    print(counter.count)  # 2 while the page fits one batch
