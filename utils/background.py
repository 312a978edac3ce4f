"""Fire-and-forget background work.

Tasks spawned here never affect the request that started them: failures are
logged and swallowed. References are kept until each task finishes so they
are not garbage collected mid-flight, and `drain` lets shutdown wait for them.
"""

import asyncio

import logfire

from typing import Coroutine, Set

_pending: Set[asyncio.Task] = set()


def _finished(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logfire.error(f"Background task {task.get_name()} failed: {error!r}")


def spawn(coro: Coroutine, name: str) -> asyncio.Task:
    """Schedule `coro` on the running loop without awaiting it."""
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_finished)
    return task


async def drain(timeout: float = 5.0) -> None:
    """Wait up to `timeout` seconds for every pending background task."""
    loop = asyncio.get_running_loop()
    tasks = [task for task in _pending if task.get_loop() is loop and not task.done()]
    if not tasks:
        return
    _, still_running = await asyncio.wait(tasks, timeout=timeout)
    if still_running:
        logfire.warning(f"{len(still_running)} background tasks still running at shutdown")
