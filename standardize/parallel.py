"""
Ordered fan-out of independent per-variable work.

Column transforms share no mutable state, so they can run on a thread pool;
results are always returned in input order so the parallel path produces
exactly the same table as the sequential one.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Sequence, TypeVar

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

T = TypeVar('T')
R = TypeVar('R')


def map_ordered(func: Callable[[T], R], items: Sequence[T], n_jobs: int = 1) -> List[R]:
    """
    Apply ``func`` to every item, optionally on ``n_jobs`` threads.

    The first exception raised by any call propagates unchanged.
    """
    if n_jobs <= 1 or len(items) <= 1:
        return [func(item) for item in items]

    n_workers = min(n_jobs, len(items))
    results: List[R] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=n_workers) as executor:
        futures = {executor.submit(func, item): i for i, item in enumerate(items)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    logger.debug(f"Processed {len(items)} items on {n_workers} threads")
    return results
