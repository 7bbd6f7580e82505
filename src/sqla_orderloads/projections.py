"""Read-model shapes returned by the loaders, and the entity-to-shape mapping."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .exceptions import AssociationNotFoundError
from .models import Address, Member, Order, OrderStatus


if TYPE_CHECKING:
    import sqlalchemy as sa


@dataclass(frozen=True, slots=True)
class OrderSearch:
    """Optional filters shared by every retrieval.

    ``member_name`` is a substring match on the member's name.
    """

    member_name: str | None = None
    order_status: OrderStatus | None = None

    def apply(self, query: sa.Select[Any], *, member_joined: bool) -> sa.Select[Any]:
        """Add the WHERE criteria to *query*.

        When the member is not already joined and a name filter is set, a
        plain join is added; it filters without populating ``Order.member``.
        """
        if self.order_status is not None:
            query = query.where(Order.status == self.order_status)

        if self.member_name:
            if not member_joined:
                query = query.join(Order.member)
            query = query.where(Member.name.contains(self.member_name, autoescape=True))

        return query


@dataclass(frozen=True, slots=True)
class OrderItemProjection:
    order_id: int
    item_name: str
    order_price: int
    count: int


@dataclass(frozen=True, slots=True)
class OrderSummary:
    """To-one part of an order: one row per order, no collection."""

    order_id: int
    member_name: str
    order_date: datetime
    order_status: OrderStatus
    address: Address


@dataclass(frozen=True, slots=True)
class OrderProjection(OrderSummary):
    order_items: tuple[OrderItemProjection, ...] = field(default=())

    @classmethod
    def from_summary(
        cls, summary: OrderSummary, order_items: Iterable[OrderItemProjection] = ()
    ) -> OrderProjection:
        return cls(
            order_id=summary.order_id,
            member_name=summary.member_name,
            order_date=summary.order_date,
            order_status=summary.order_status,
            address=summary.address,
            order_items=tuple(order_items),
        )

    @classmethod
    def from_order(cls, order: Order) -> OrderProjection:
        """Map a loaded ``Order`` aggregate into the projection shape.

        ``member``, ``delivery`` and ``order_items.item`` must already be
        loaded; reading them never issues a query.

        Raises:
            AssociationNotFoundError: A referenced row is missing.
        """
        if order.member is None:
            raise AssociationNotFoundError("Order", order.id, "member")
        if order.delivery is None:
            raise AssociationNotFoundError("Order", order.id, "delivery")

        items: list[OrderItemProjection] = []
        for order_item in order.order_items:
            if order_item.item is None:
                raise AssociationNotFoundError("OrderItem", order_item.id, "item")
            items.append(
                OrderItemProjection(
                    order_id=order.id,
                    item_name=order_item.item.name,
                    order_price=order_item.order_price,
                    count=order_item.count,
                )
            )

        return cls(
            order_id=order.id,
            member_name=order.member.name,
            order_date=order.order_date,
            order_status=order.status,
            address=order.delivery.address,
            order_items=tuple(items),
        )


@dataclass(frozen=True, slots=True)
class FlatRow:
    """One (order, order item) pair; order columns repeat across rows."""

    order_id: int
    member_name: str
    order_date: datetime
    order_status: OrderStatus
    address: Address
    item_name: str
    order_price: int
    count: int


def regroup_flat(rows: Iterable[FlatRow]) -> list[OrderProjection]:
    """Fold flat rows back into ``OrderProjection``s, first-seen order kept."""
    summaries: dict[int, OrderSummary] = {}
    items: dict[int, list[OrderItemProjection]] = {}
    for row in rows:
        if row.order_id not in summaries:
            summaries[row.order_id] = OrderSummary(
                order_id=row.order_id,
                member_name=row.member_name,
                order_date=row.order_date,
                order_status=row.order_status,
                address=row.address,
            )
            items[row.order_id] = []
        items[row.order_id].append(
            OrderItemProjection(
                order_id=row.order_id,
                item_name=row.item_name,
                order_price=row.order_price,
                count=row.count,
            )
        )

    return [
        OrderProjection.from_summary(summary, items[order_id])
        for order_id, summary in summaries.items()
    ]
