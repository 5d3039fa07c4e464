"""Small async helpers shared by the read and refresh paths."""

import asyncio
import inspect
from functools import partial
from typing import Any, Callable, Optional


async def run_io(func: Callable[..., Any], *args: Any, timeout: Optional[float] = None, **kwargs: Any) -> Any:
    """
    Call a sync or async collaborator without blocking the loop.

    Plain functions (SQLAlchemy sessions) run in a worker thread.
    With a timeout, asyncio.TimeoutError propagates to the caller.
    """
    if inspect.iscoroutinefunction(func):
        call = func(*args, **kwargs)
    else:
        call = asyncio.to_thread(partial(func, *args, **kwargs))

    if timeout is None:
        return await call
    return await asyncio.wait_for(call, timeout)
