"""Per-operation deadlines for lifecycle calls.

Every lifecycle operation runs under an explicit Deadline. API clients are
synchronous, so calls are dispatched to the default executor and bounded
with asyncio.wait_for. Expiry raises OperationTimeoutError; a request that
already reached the remote side is not rolled back, and the next Read or
Exists is responsible for observing its effect.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, TypeVar

from .errors import OperationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OPERATION_TIMEOUT_SECONDS = 300.0


class Operation(str, Enum):
    """Lifecycle operations that carry their own timeout."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class OperationTimeouts:
    """Timeout configuration with a shared default and per-operation overrides.

    Attributes:
        default: Seconds used for any operation without an override.
        create: Create override (None = default).
        read: Read override, also used by Exists.
        update: Update override.
        delete: Delete override.
    """

    default: float = DEFAULT_OPERATION_TIMEOUT_SECONDS
    create: float | None = None
    read: float | None = None
    update: float | None = None
    delete: float | None = None

    def for_operation(self, operation: Operation) -> float:
        """Get the timeout for a single operation."""
        value = getattr(self, operation.value)
        return self.default if value is None else value

    def as_dict(self) -> dict[str, float]:
        """Effective timeout per operation."""
        return {op.value: self.for_operation(op) for op in Operation}

    def merged(self, overrides: Mapping[str, float] | None) -> OperationTimeouts:
        """Return a copy with per-resource overrides applied.

        Args:
            overrides: Mapping of operation name (or "default") to seconds.

        Raises:
            ValueError: If an unknown operation name is given.
        """
        if not overrides:
            return self
        valid = {op.value for op in Operation} | {"default"}
        unknown = set(overrides) - valid
        if unknown:
            raise ValueError(f"Unknown timeout operation(s): {sorted(unknown)}")
        return replace(self, **{key: float(value) for key, value in overrides.items()})


class Deadline:
    """A point in time after which an operation must give up."""

    def __init__(self, seconds: float, operation: Operation | str = "") -> None:
        self._seconds = seconds
        self._expires_at = time.monotonic() + seconds
        self._operation = operation.value if isinstance(operation, Operation) else operation

    @classmethod
    def for_operation(cls, timeouts: OperationTimeouts, operation: Operation) -> Deadline:
        """Create a deadline from the configured timeout of an operation."""
        return cls(timeouts.for_operation(operation), operation)

    @property
    def operation(self) -> str:
        return self._operation

    @property
    def seconds(self) -> float:
        """Total budget the deadline was created with."""
        return self._seconds

    def remaining(self) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0

    def check(self) -> None:
        """Raise OperationTimeoutError if the deadline has passed."""
        if self.expired:
            raise OperationTimeoutError(self._operation, self._seconds)

    def __repr__(self) -> str:
        return f"Deadline(operation={self._operation!r}, remaining={self.remaining():.3f})"


async def run_with_deadline(
    deadline: Deadline,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a blocking API call in the executor, bounded by a deadline.

    Args:
        deadline: Deadline bounding the call.
        func: Blocking callable (typically a resource kind method).
        *args: Positional arguments for func.
        **kwargs: Keyword arguments for func.

    Returns:
        The callable's return value.

    Raises:
        OperationTimeoutError: If the deadline expires first.
    """
    deadline.check()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

    try:
        return await asyncio.wait_for(future, timeout=deadline.remaining())
    except OperationTimeoutError:
        raise
    except TimeoutError as e:
        if not future.cancelled():
            # Raised by the call itself, not by the deadline
            raise
        logger.warning(
            "Operation deadline exceeded",
            extra={"operation": deadline.operation, "timeout_seconds": deadline.seconds},
        )
        raise OperationTimeoutError(deadline.operation, deadline.seconds) from e
