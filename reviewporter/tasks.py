"""Fail-fast concurrent awaiting."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await all awaitables concurrently and return their results in order.

    On the first failure every unfinished task is cancelled and awaited, then
    the failure is re-raised unchanged. When several tasks fail, the error of
    the earliest argument wins.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    if not tasks:
        return []

    try:
        _done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks)
        raise

    if pending:
        for task in pending:
            task.cancel()
        await asyncio.wait(pending)

    failures = [
        error
        for task in tasks
        if not task.cancelled() and (error := task.exception()) is not None
    ]
    if failures:
        raise failures[0]
    return [task.result() for task in tasks]
