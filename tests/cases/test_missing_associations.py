from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from sqla_orderloads import (
    AssociationNotFoundError,
    OrderSearch,
    list_order_summaries,
    list_orders_flat,
)
from sqla_orderloads.models import Base, Order, OrderItem

from ..strategies import STRATEGIES

pytestmark = pytest.mark.anyio

MISSING_ID = 999

# (statement leaving a foreign key pointing at no row, owner, association)
DANGLING = {
    "member": (
        sa.update(Order).where(Order.id == 1).values(member_id=MISSING_ID),
        "Order",
        "member",
    ),
    "delivery": (
        sa.update(Order).where(Order.id == 1).values(delivery_id=MISSING_ID),
        "Order",
        "delivery",
    ),
    "item": (
        sa.update(OrderItem).where(OrderItem.id == 2).values(item_id=MISSING_ID),
        "OrderItem",
        "item",
    ),
}


@pytest.fixture
def sqlite_only(db_backend: str) -> None:
    # the other backends enforce foreign keys, so the row cannot dangle there
    if db_backend != "sqlite":
        pytest.skip("needs a backend without foreign key enforcement")


async def _break(session: AsyncSession, association: str) -> tuple[str, str]:
    statement, owner, key = DANGLING[association]
    await session.execute(statement, execution_options={"synchronize_session": False})
    session.expunge_all()

    return owner, key


@pytest.mark.usefixtures("sqlite_only")
class TestDanglingForeignKey:
    @pytest.mark.parametrize("association", list(DANGLING))
    @pytest.mark.parametrize("name", list(STRATEGIES))
    async def test_every_strategy_raises(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        name: str,
        association: str,
    ) -> None:
        owner, key = await _break(session, association)

        with pytest.raises(AssociationNotFoundError) as exc_info:
            await STRATEGIES[name](session, OrderSearch())

        assert exc_info.value.owner == owner
        assert exc_info.value.association == key

    @pytest.mark.parametrize("association", ["member", "delivery"])
    async def test_summaries_raise(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        association: str,
    ) -> None:
        await _break(session, association)

        with pytest.raises(AssociationNotFoundError, match=association):
            await list_order_summaries(session)

    async def test_flat_item_reports_order_item(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        await _break(session, "item")

        with pytest.raises(AssociationNotFoundError) as exc_info:
            await list_orders_flat(session)

        assert exc_info.value.owner_id == 2

    async def test_other_orders_unaffected(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        await _break(session, "member")

        for strategy in STRATEGIES.values():
            result = await strategy(session, OrderSearch(member_name="userB"))
            session.expunge_all()

            assert [o.order_id for o in result] == [2]
