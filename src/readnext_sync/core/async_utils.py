"""Async utilities for bridging blocking store calls to async handlers."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Both store backends are blocking (file I/O, pymongo), so every request
    handler funnels its store work through here.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        response = await run_sync(session.run, namespace, request)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
