"""Shared helpers for bounding external calls and slicing work."""

import asyncio
import inspect
from typing import Any, Callable, Iterator, Sequence, TypeVar

from negotiation_intel.exceptions import OperationTimeoutError

T = TypeVar("T")


async def invoke(func: Callable[..., Any], *args: Any) -> Any:
    """
    Call a collaborator that may be blocking or async.

    Blocking functions run in a worker thread so the event loop stays free
    for sibling lookups.
    """
    if inspect.iscoroutinefunction(func):
        result = await func(*args)
    else:
        result = await asyncio.to_thread(func, *args)

    # Sync wrappers around async clients may hand back an awaitable
    if inspect.isawaitable(result):
        result = await result
    return result


async def call_with_timeout(
    func: Callable[..., Any],
    *args: Any,
    timeout: float,
    label: str,
    timeout_error: type[OperationTimeoutError] = OperationTimeoutError,
) -> Any:
    """
    Call a collaborator and wait at most `timeout` seconds for its result.

    A timeout surfaces as `timeout_error`, never as an empty result. A
    blocking call keeps running in its thread after the timeout.
    """
    try:
        return await asyncio.wait_for(invoke(func, *args), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise timeout_error(label, timeout) from e


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Split a sequence into consecutive lists of at most `size` items."""
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


def enum_value(member: object) -> str:
    """Plain string for an enum member or an already-unwrapped enum value."""
    return getattr(member, "value", member)
