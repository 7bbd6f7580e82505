from __future__ import annotations

import os
from collections.abc import AsyncIterator, Iterator
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    create_async_engine,
)

from sqla_orderloads import fetch_cache_clear, get_settings
from sqla_orderloads.models import (
    Address,
    Album,
    Base,
    Book,
    Delivery,
    Member,
    Order,
    OrderItem,
    OrderStatus,
)

from .strategies import BULK_BIG_ORDER_ITEMS, BULK_ORDERS, ORDER_DATE

pytestmark = pytest.mark.anyio


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["postgres", "mysql", "mariadb", "sqlite"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def db_config(db_backend: str, tmp_path_factory: pytest.TempPathFactory) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:latest")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+asyncpg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "mysql" | "mariadb":
            from testcontainers.mysql import MySqlContainer

            image = "mysql:8.0" if db_backend == "mysql" else "mariadb:latest"
            my = MySqlContainer(image=image)
            if os.name == "nt":
                my.get_container_host_ip = lambda: "127.0.0.1"
            with my:
                host = my.get_container_host_ip()
                port = my.get_exposed_port(my.port)
                dsn = (
                    f"mysql+asyncmy://{my.username}:{my.password}"
                    f"@{host}:{port}/{my.dbname}"
                )
                yield dsn

        case "sqlite":
            tmp = tmp_path_factory.mktemp("db")
            yield f"sqlite+aiosqlite:///{tmp}/test.db"


@pytest.fixture(scope="session")
def engine(db_config: str) -> AsyncEngine:
    return create_async_engine(db_config, echo=False)


@pytest.fixture(scope="session")
async def _create_tables(engine: AsyncEngine) -> AsyncIterator[None]:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def connection(
    engine: AsyncEngine, _create_tables: None
) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        trans = await conn.begin()
        yield conn
        await trans.rollback()


@pytest.fixture
async def session(connection: AsyncConnection) -> AsyncIterator[AsyncSession]:
    sess = AsyncSession(bind=connection, expire_on_commit=False)
    yield sess
    await sess.close()


@pytest.fixture
async def seed_data(session: AsyncSession) -> dict[str, list[Base]]:
    """Two orders: order 1 (userA) with two items, order 2 (userB) with one.

    Order 2 is canceled; userC has no orders and the album is never ordered.
    """
    user_a = Member(id=1, name="userA", address=Address("Seoul", "1st street", "11111"))
    user_b = Member(id=2, name="userB", address=Address("Busan", "2nd street", "22222"))
    user_c = Member(id=3, name="userC", address=Address("Jeju", "3rd street", "33333"))

    jpa1 = Book(id=1, name="JPA1 BOOK", price=10000, stock_quantity=100, author="kim")
    jpa2 = Book(id=2, name="JPA2 BOOK", price=20000, stock_quantity=100, author="kim")
    spring1 = Book(id=3, name="SPRING1 BOOK", price=20000, stock_quantity=200, author="lee")
    album = Album(id=4, name="ALBUM", price=15000, stock_quantity=10, artist="park")
    session.add_all([user_a, user_b, user_c, jpa1, jpa2, spring1, album])
    await session.flush()

    order_a = Order.create(
        user_a,
        Delivery(id=1, address=user_a.address),
        OrderItem.create(jpa1, 10000, 1, id=1),
        OrderItem.create(jpa2, 20000, 2, id=2),
        id=1,
        order_date=ORDER_DATE,
    )
    order_b = Order.create(
        user_b,
        Delivery(id=2, address=user_b.address),
        OrderItem.create(spring1, 20000, 3, id=3),
        id=2,
        order_date=ORDER_DATE + timedelta(days=1),
    )
    order_b.status = OrderStatus.CANCELED
    session.add_all([order_a, order_b])
    await session.flush()

    session.expunge_all()

    return {
        "members": [user_a, user_b, user_c],
        "items": [jpa1, jpa2, spring1, album],
        "orders": [order_a, order_b],
    }


@pytest.fixture
async def seed_bulk(session: AsyncSession) -> dict[str, list[Base]]:
    """25 orders spread over 5 members; order 1 holds 50 order items,
    every other order holds one or two.
    """
    members = [
        Member(id=i, name=f"member{i}", address=Address("city", f"street {i}", f"{i:05d}"))
        for i in range(1, 6)
    ]
    items = [
        Book(id=i, name=f"book{i:02d}", price=1000 * i, stock_quantity=1000)
        for i in range(1, BULK_BIG_ORDER_ITEMS + 1)
    ]
    session.add_all([*members, *items])
    await session.flush()

    orders: list[Order] = []
    order_item_id = 0
    for order_id in range(1, BULK_ORDERS + 1):
        size = BULK_BIG_ORDER_ITEMS if order_id == 1 else 1 + order_id % 2
        order_items = []
        for item in items[:size]:
            order_item_id += 1
            order_items.append(OrderItem.create(item, item.price, 1, id=order_item_id))
        member = members[(order_id - 1) % len(members)]
        orders.append(
            Order.create(
                member,
                Delivery(id=order_id, address=member.address),
                *order_items,
                id=order_id,
                order_date=ORDER_DATE + timedelta(hours=order_id),
            )
        )
    session.add_all(orders)
    await session.flush()

    session.expunge_all()

    return {"members": members, "items": items, "orders": orders}


@pytest.fixture(autouse=True)
def clear_caches() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    fetch_cache_clear()
    get_settings.cache_clear()
