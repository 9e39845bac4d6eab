"""
Join-all helper for the concurrent parts of a run.

Folder snapshots, database backups and collection exports are I/O bound and
independent: each writes to its own path. They are fanned out on a thread
pool and always awaited together. If any task fails, the remaining tasks
still run to completion, every failure is logged, and the first failure in
submission order is raised.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Iterable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')
R = TypeVar('R')

DEFAULT_MAX_WORKERS = 8


def run_all(func: Callable[[T], R], items: Iterable[T], name: str = 'task',
            max_workers: Optional[int] = None) -> List[R]:
    """
    Run ``func`` on every item concurrently and wait for all of them.

    Args:
        func: Callable applied to each item
        items: Work items
        name: Label used in log messages
        max_workers: Pool size (default: one thread per item, capped)

    Returns:
        Results in the order of ``items``

    Raises:
        The first exception raised by any task, after all tasks finished
    """
    items = list(items)
    if not items:
        return []

    workers = max_workers or min(len(items), DEFAULT_MAX_WORKERS)

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name) as pool:
        futures = [pool.submit(func, item) for item in items]
        wait(futures)

    errors = []
    for item, future in zip(items, futures):
        error = future.exception()
        if error is not None:
            logger.error(f"{name} failed for {item!r}: {error}")
            errors.append(error)

    if errors:
        if len(errors) > 1:
            logger.error(f"{len(errors)} of {len(items)} {name} tasks failed")
        raise errors[0]

    return [future.result() for future in futures]
