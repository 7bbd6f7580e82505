from __future__ import annotations

from collections.abc import Hashable


class OrderQueryError(Exception):
    """Base class for every error raised by sqla_orderloads."""


class AssociationNotFoundError(OrderQueryError, LookupError):
    """A referenced Member, Delivery or Item is missing.

    Consistent data never produces this; it is an integrity fault and must
    not be retried.
    """

    def __init__(self, owner: str, owner_id: Hashable, association: str) -> None:
        self.owner = owner
        self.owner_id = owner_id
        self.association = association
        super().__init__(f"{owner}({owner_id!r}).{association} is missing")


class InvalidPagingError(OrderQueryError, ValueError):
    """Paging requested where it would produce a wrong page, or out of range."""


class ParameterLimitExceededError(OrderQueryError):
    """An IN-clause batch would exceed the backend's bound-parameter limit."""

    def __init__(self, batch_size: int, dialect: str, limit: int) -> None:
        self.batch_size = batch_size
        self.dialect = dialect
        self.limit = limit
        super().__init__(
            f"batch_size={batch_size} exceeds the {dialect} bound parameter limit ({limit})"
        )


class MultipleCollectionFetchError(OrderQueryError, ValueError):
    """More than one to-many association was fetch-joined into one statement."""


class NotEnoughStockError(OrderQueryError):
    """Item stock would drop below zero."""


class OrderStateError(OrderQueryError):
    """Order status transition is not allowed."""
