"""Bridging blocking work (file I/O, codecs, processes) onto the event loop."""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, TypeVar

__all__ = ["run_blocking"]

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None, functools.partial(func, *args, **kwargs)
    )
