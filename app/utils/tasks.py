import asyncio
import logging
from typing import Any, Coroutine

# Strong references so fire-and-forget tasks are not garbage collected mid-run
_background_tasks: set[asyncio.Task] = set()


def _log_task_result(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logging.warning(f"Background task {task.get_name()} was cancelled")
        return
    exc = task.exception()
    if exc is not None:
        logging.error(
            f"Background task {task.get_name()} failed: {exc}",
            exc_info=exc,
        )


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """Runs ``coro`` detached from the caller; failures are logged, not raised."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_result)
    return task


async def wait_for_background_tasks() -> None:
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)
