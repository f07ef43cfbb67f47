"""Bounded waits around external calls."""

import asyncio
from typing import Awaitable, TypeVar

from pgtenant_engine.common.exceptions import OperationTimeoutError

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, operation: str) -> T:
    """Await ``awaitable`` for at most ``seconds``.

    Raises OperationTimeoutError naming ``operation`` when the deadline passes.
    A non-positive ``seconds`` disables the limit.
    """
    if seconds <= 0:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise OperationTimeoutError(
            f"{operation} timed out after {seconds:g}s", operation=operation,
        ) from exc
