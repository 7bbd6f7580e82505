from __future__ import annotations

import dataclasses
import enum
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import orm
from sqlalchemy.ext.asyncio import AsyncAttrs

from .exceptions import NotEnoughStockError, OrderStateError


class Base(AsyncAttrs, orm.DeclarativeBase):
    pass


class OrderStatus(enum.Enum):
    ORDERED = "ORDERED"
    CANCELED = "CANCELED"


class DeliveryStatus(enum.Enum):
    READY = "READY"
    COMP = "COMP"


@dataclasses.dataclass(frozen=True, slots=True)
class Address:
    """Value object embedded into Member and Delivery rows."""

    city: str
    street: str
    zipcode: str


# Every relationship uses lazy="raise_on_sql": an unloaded association is
# never fetched behind an attribute read. Loaders ask for what they need.


class Member(Base):
    __tablename__ = "member"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    name: orm.Mapped[str] = orm.mapped_column(sa.String(100))
    city: orm.Mapped[str] = orm.mapped_column(sa.String(100), default="")
    street: orm.Mapped[str] = orm.mapped_column(sa.String(200), default="")
    zipcode: orm.Mapped[str] = orm.mapped_column(sa.String(20), default="")

    address: orm.Mapped[Address] = orm.composite(Address, "city", "street", "zipcode")

    # relationships
    orders: orm.Mapped[list[Order]] = orm.relationship(
        back_populates="member", lazy="raise_on_sql"
    )


class Delivery(Base):
    __tablename__ = "delivery"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    city: orm.Mapped[str] = orm.mapped_column(sa.String(100), default="")
    street: orm.Mapped[str] = orm.mapped_column(sa.String(200), default="")
    zipcode: orm.Mapped[str] = orm.mapped_column(sa.String(20), default="")
    status: orm.Mapped[DeliveryStatus] = orm.mapped_column(
        sa.Enum(DeliveryStatus, native_enum=False, length=10),
        default=DeliveryStatus.READY,
    )

    address: orm.Mapped[Address] = orm.composite(Address, "city", "street", "zipcode")

    # relationships
    order: orm.Mapped[Order | None] = orm.relationship(
        back_populates="delivery", uselist=False, lazy="raise_on_sql"
    )


class Item(Base):
    __tablename__ = "item"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    dtype: orm.Mapped[str] = orm.mapped_column(sa.String(20))
    name: orm.Mapped[str] = orm.mapped_column(sa.String(200))
    price: orm.Mapped[int] = orm.mapped_column(default=0)
    stock_quantity: orm.Mapped[int] = orm.mapped_column(default=0)

    __mapper_args__ = {  # noqa: RUF012
        "polymorphic_on": "dtype",
        "polymorphic_identity": "I",
    }

    def add_stock(self, quantity: int) -> None:
        self.stock_quantity += quantity

    def remove_stock(self, quantity: int) -> None:
        rest = self.stock_quantity - quantity
        if rest < 0:
            raise NotEnoughStockError(
                f"need more stock for item {self.name!r}: have {self.stock_quantity}, "
                f"asked {quantity}"
            )

        self.stock_quantity = rest


# Single-table subclasses: their columns live on ``item`` and are nullable.


class Book(Item):
    author: orm.Mapped[str | None] = orm.mapped_column(sa.String(100), nullable=True)
    isbn: orm.Mapped[str | None] = orm.mapped_column(sa.String(20), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "B"}  # noqa: RUF012


class Album(Item):
    artist: orm.Mapped[str | None] = orm.mapped_column(sa.String(100), nullable=True)
    etc: orm.Mapped[str | None] = orm.mapped_column(sa.String(200), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "A"}  # noqa: RUF012


class Movie(Item):
    director: orm.Mapped[str | None] = orm.mapped_column(sa.String(100), nullable=True)
    actor: orm.Mapped[str | None] = orm.mapped_column(sa.String(100), nullable=True)

    __mapper_args__ = {"polymorphic_identity": "M"}  # noqa: RUF012


class Order(Base):
    __tablename__ = "orders"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    member_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("member.id"))
    delivery_id: orm.Mapped[int] = orm.mapped_column(
        sa.ForeignKey("delivery.id"), unique=True
    )
    order_date: orm.Mapped[datetime] = orm.mapped_column(sa.DateTime)
    status: orm.Mapped[OrderStatus] = orm.mapped_column(
        sa.Enum(OrderStatus, native_enum=False, length=10),
        default=OrderStatus.ORDERED,
    )

    # relationships
    member: orm.Mapped[Member] = orm.relationship(
        back_populates="orders", lazy="raise_on_sql"
    )
    delivery: orm.Mapped[Delivery] = orm.relationship(
        back_populates="order", cascade="all", lazy="raise_on_sql"
    )
    order_items: orm.Mapped[list[OrderItem]] = orm.relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="raise_on_sql",
    )

    @classmethod
    def create(
        cls,
        member: Member,
        delivery: Delivery,
        *order_items: OrderItem,
        order_date: datetime | None = None,
        **kw: object,
    ) -> Order:
        """Build a new ORDERED order owning *delivery* and *order_items*.

        An order without items is rejected.
        """
        if not order_items:
            raise ValueError("an order needs at least one order item")

        order = cls(
            member=member,
            delivery=delivery,
            order_date=order_date or datetime.now(),
            status=OrderStatus.ORDERED,
            **kw,
        )
        order.order_items.extend(order_items)

        return order

    def cancel(self) -> None:
        """ORDERED -> CANCELED, giving the stock back to every item.

        Needs ``delivery`` and ``order_items.item`` loaded.
        """
        if self.status is OrderStatus.CANCELED:
            raise OrderStateError(f"order {self.id} is already canceled")

        if self.delivery.status is DeliveryStatus.COMP:
            raise OrderStateError(f"order {self.id} has already been delivered")

        self.status = OrderStatus.CANCELED
        for order_item in self.order_items:
            order_item.cancel()

    @property
    def total_price(self) -> int:
        return sum(order_item.total_price for order_item in self.order_items)


class OrderItem(Base):
    __tablename__ = "order_item"

    id: orm.Mapped[int] = orm.mapped_column(primary_key=True)
    order_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("orders.id"))
    item_id: orm.Mapped[int] = orm.mapped_column(sa.ForeignKey("item.id"))
    order_price: orm.Mapped[int] = orm.mapped_column()
    count: orm.Mapped[int] = orm.mapped_column()

    # relationships
    order: orm.Mapped[Order] = orm.relationship(
        back_populates="order_items", lazy="raise_on_sql"
    )
    item: orm.Mapped[Item] = orm.relationship(lazy="raise_on_sql")

    @classmethod
    def create(cls, item: Item, order_price: int, count: int, **kw: object) -> OrderItem:
        """Take *count* units out of *item*'s stock and record the unit price."""
        item.remove_stock(count)

        return cls(item=item, order_price=order_price, count=count, **kw)

    def cancel(self) -> None:
        self.item.add_stock(self.count)

    @property
    def total_price(self) -> int:
        return self.order_price * self.count
