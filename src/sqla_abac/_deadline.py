"""Bounded-latency calls for policy loads and resource fetches.

Sync timeouts use a ThreadPoolExecutor with ``future.result(timeout)``.
Work inside the worker thread keeps running if it ignores the deadline;
the caller stops waiting and fails closed.
"""

from __future__ import annotations

import concurrent.futures
from collections.abc import Callable
from typing import TypeVar

__all__ = ["DeadlineExceeded", "call_with_timeout"]

T = TypeVar("T")

DeadlineExceeded = concurrent.futures.TimeoutError

_executor = concurrent.futures.ThreadPoolExecutor(max_workers=8, thread_name_prefix="sqla-abac")


def call_with_timeout(fn: Callable[[], T], timeout: float | None) -> T:
    """Call *fn*, giving up after *timeout* seconds.

    With ``timeout=None`` the call runs inline on the current thread.

    Raises:
        DeadlineExceeded: If *fn* did not finish in time.
    """
    if timeout is None:
        return fn()
    future = _executor.submit(fn)
    return future.result(timeout=timeout)
