from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from sqla_orderloads import OrderSearch
from sqla_orderloads.models import Base, OrderStatus

from ..strategies import STRATEGIES, Strategy

pytestmark = pytest.mark.anyio

SEARCHES = [
    OrderSearch(),
    OrderSearch(order_status=OrderStatus.ORDERED),
    OrderSearch(order_status=OrderStatus.CANCELED),
    OrderSearch(member_name="userA"),
    OrderSearch(member_name="user"),
    OrderSearch(member_name="nobody"),
    OrderSearch(member_name="userB", order_status=OrderStatus.ORDERED),
]


async def _run(session: AsyncSession, strategy: Strategy, search: OrderSearch) -> list:
    # each strategy starts from an empty identity map
    session.expunge_all()
    result = await strategy(session, search)
    session.expunge_all()

    return result


class TestStrategiesAgree:
    @pytest.mark.parametrize("search", SEARCHES, ids=repr)
    @pytest.mark.parametrize("name", [n for n in STRATEGIES if n != "projected"])
    async def test_same_orders_as_projected(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        name: str,
        search: OrderSearch,
    ) -> None:
        expected = await _run(session, STRATEGIES["projected"], search)
        actual = await _run(session, STRATEGIES[name], search)

        assert actual == expected

    @pytest.mark.parametrize("name", list(STRATEGIES))
    async def test_bulk(
        self,
        session: AsyncSession,
        seed_bulk: dict[str, list[Base]],
        name: str,
    ) -> None:
        expected = await _run(session, STRATEGIES["projected"], OrderSearch())
        actual = await _run(session, STRATEGIES[name], OrderSearch())

        assert len(actual) == 25
        assert actual == expected

    async def test_member_without_orders_absent(
        self, session: AsyncSession, seed_data: dict[str, list[Base]]
    ) -> None:
        for strategy in STRATEGIES.values():
            result = await _run(session, strategy, OrderSearch(member_name="userC"))

            assert result == []

    @pytest.mark.parametrize("name", list(STRATEGIES))
    async def test_repeated_calls_agree(
        self,
        session: AsyncSession,
        seed_data: dict[str, list[Base]],
        name: str,
    ) -> None:
        # same session, identity map left populated between calls
        strategy = STRATEGIES[name]
        first = await strategy(session, OrderSearch())
        second = await strategy(session, OrderSearch())

        assert first == second
        assert [o.order_id for o in first] == [1, 2]
