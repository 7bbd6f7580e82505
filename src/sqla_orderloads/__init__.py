"""Fetch strategies for the order aggregate on async SQLAlchemy.

sqla_orderloads loads ``Order`` → ``Member``, ``Delivery``,
``OrderItem`` → ``Item`` with different round-trip budgets: a naive
row-by-row baseline (``list_orders_naive``), a to-one fetch join with
batched ``IN`` loading of the items (``list_orders_to_one_join``), a single
collection fetch join (``list_orders_collection_join``), a two-phase column
projection (``list_orders_projected``) and a flat one-row-per-item
projection (``list_orders_flat``). No association is ever loaded behind an
attribute read.
"""

from ._version import __version__, __version_tuple__
from .config import FetchSettings, get_settings
from .core import FetchBuilder, fetch_cache_clear, fetch_cache_info, fetch_select
from .exceptions import (
    AssociationNotFoundError,
    InvalidPagingError,
    MultipleCollectionFetchError,
    NotEnoughStockError,
    OrderQueryError,
    OrderStateError,
    ParameterLimitExceededError,
)
from .loaders import (
    batch_load_collection,
    list_orders_collection_join,
    list_orders_naive,
    list_orders_to_one_join,
)
from .projections import (
    FlatRow,
    OrderItemProjection,
    OrderProjection,
    OrderSearch,
    OrderSummary,
    regroup_flat,
)
from .queries import (
    list_order_summaries,
    list_orders_flat,
    list_orders_projected,
    list_orders_projected_per_order,
)
from .tools import count_statements, unique_scalars


__all__ = (
    "AssociationNotFoundError",
    "FetchBuilder",
    "FetchSettings",
    "FlatRow",
    "InvalidPagingError",
    "MultipleCollectionFetchError",
    "NotEnoughStockError",
    "OrderItemProjection",
    "OrderProjection",
    "OrderQueryError",
    "OrderSearch",
    "OrderStateError",
    "OrderSummary",
    "ParameterLimitExceededError",
    "__version__",
    "__version_tuple__",
    "batch_load_collection",
    "count_statements",
    "fetch_cache_clear",
    "fetch_cache_info",
    "fetch_select",
    "get_settings",
    "list_order_summaries",
    "list_orders_collection_join",
    "list_orders_flat",
    "list_orders_naive",
    "list_orders_projected",
    "list_orders_projected_per_order",
    "list_orders_to_one_join",
    "regroup_flat",
    "unique_scalars",
)
