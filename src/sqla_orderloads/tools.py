from __future__ import annotations

import warnings
from collections.abc import AsyncIterator, Callable, Hashable, Iterable, Iterator, Sequence
from contextlib import asynccontextmanager
from itertools import islice
from typing import Any, Final, TypeVar

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from .exceptions import ParameterLimitExceededError


_R = TypeVar("_R")
_K = TypeVar("_K", bound=Hashable)

# Bound parameters a single statement may carry, per dialect name.
PARAMETER_LIMITS: Final[dict[str, int]] = {
    "sqlite": 32766,
    "postgresql": 32767,
    "mysql": 65535,
    "mariadb": 65535,
}
_FALLBACK_PARAMETER_LIMIT: Final[int] = 2100

# Documented safe range for IN-clause batches. Smaller batches bring back
# per-row round trips, larger ones approach backend parameter limits.
SAFE_BATCH_SIZE_RANGE: Final[tuple[int, int]] = (100, 1000)


def unique_scalars(result: sa.Result[tuple[_R]]) -> Sequence[_R]:
    """Shorthand for ``result.unique().scalars().all()``.

    Use after ``session.execute(query)`` on a statement that fetch-joins a
    collection: every root comes back once per child row, and ``unique()``
    keeps the first occurrence of each identity in row order.
    """
    return result.unique().scalars().all()


def chunked(values: Iterable[_R], size: int) -> Iterator[list[_R]]:
    """Split *values* into consecutive lists of at most *size* elements."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")

    it = iter(values)
    while chunk := list(islice(it, size)):
        yield chunk


def group_by(values: Iterable[_R], key: Callable[[_R], _K]) -> dict[_K, list[_R]]:
    """Group *values* by *key* in a single pass, keeping the input order per group."""
    groups: dict[_K, list[_R]] = {}
    for value in values:
        groups.setdefault(key(value), []).append(value)

    return groups


def parameter_limit(session: AsyncSession) -> tuple[str, int]:
    """Return ``(dialect_name, max_bound_parameters)`` for *session*'s bind."""
    name = session.get_bind().dialect.name

    return name, PARAMETER_LIMITS.get(name, _FALLBACK_PARAMETER_LIMIT)


def check_batch_size(session: AsyncSession, batch_size: int) -> None:
    """Raise when one IN-clause batch cannot fit the backend's parameter limit.

    Identity sets larger than *batch_size* are chunked by the callers; only
    a batch size that can never fit is an error. A batch size outside
    ``SAFE_BATCH_SIZE_RANGE`` only warns.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    low, high = SAFE_BATCH_SIZE_RANGE
    if not low <= batch_size <= high:
        warnings.warn(
            f"batch_size={batch_size} is outside the safe range {low}-{high}",
            stacklevel=3,
        )

    dialect, limit = parameter_limit(session)
    if batch_size > limit:
        raise ParameterLimitExceededError(batch_size, dialect, limit)


class StatementCounter:
    """Records every statement sent to the database through *connection*.

    Works as a context manager around synchronous code; for an
    ``AsyncSession`` use :func:`count_statements`.
    """

    __slots__ = ("connection", "statements")

    def __init__(self, connection: sa.Connection | sa.Engine) -> None:
        self.connection = connection
        self.statements: list[str] = []

    def __enter__(self) -> StatementCounter:
        sa.event.listen(self.connection, "before_cursor_execute", self._record)
        return self

    def __exit__(self, *exc_info: object) -> None:
        sa.event.remove(self.connection, "before_cursor_execute", self._record)

    def _record(self, conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        self.statements.append(statement)

    @property
    def count(self) -> int:
        return len(self.statements)

    def __len__(self) -> int:
        return len(self.statements)


@asynccontextmanager
async def count_statements(session: AsyncSession) -> AsyncIterator[StatementCounter]:
    """Count the statements *session* issues inside the block.

    Example::

        async with count_statements(session) as counter:
            await list_orders_projected(session, OrderSearch())

        assert counter.count == 2
    """
    connection = await session.connection()
    with StatementCounter(connection.sync_connection) as counter:  # type: ignore[arg-type]
        yield counter
