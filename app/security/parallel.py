"""Bounded parallel mapping of a pure function over a work list."""

import concurrent.futures
import logging
import os
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

from app.reporting.exceptions import DecryptionError

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
R = TypeVar("R")

# Below this many items the pool costs more than it saves
INLINE_THRESHOLD = 8


class ParallelProcessor:
    """
    Maps a function over unique inputs on a bounded thread pool.

    Inputs are split into chunks, one task per chunk. An item whose call
    raises one of ``recoverable`` is logged and left out of the result; any
    other exception propagates to the caller.
    """

    def __init__(
        self,
        max_workers: int = 8,
        chunk_size: Optional[int] = None,
        recoverable: Tuple[Type[BaseException], ...] = (DecryptionError,),
    ):
        self.max_workers = _resolve_workers(max_workers)
        self.chunk_size = chunk_size
        self.recoverable = recoverable

    def map(self, func: Callable[[K], R], items: Iterable[K]) -> Dict[K, R]:
        unique = list(dict.fromkeys(items))
        if not unique:
            return {}

        if len(unique) <= INLINE_THRESHOLD or self.max_workers == 1:
            return self._run_chunk(func, unique)

        chunk_size = self.chunk_size or max(1, -(-len(unique) // self.max_workers))
        chunks = list(_chunk(unique, chunk_size))
        workers = min(self.max_workers, len(chunks))

        results: Dict[K, R] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [executor.submit(self._run_chunk, func, chunk) for chunk in chunks]
            for future in concurrent.futures.as_completed(futures):
                results.update(future.result())
        logger.debug("Processed %d items in %d chunks on %d workers", len(unique), len(chunks), workers)
        return results

    def _run_chunk(self, func: Callable[[K], R], chunk: Sequence[K]) -> Dict[K, R]:
        out: Dict[K, R] = {}
        for item in chunk:
            try:
                out[item] = func(item)
            except self.recoverable as exc:
                logger.warning("Dropping item that failed processing: %s", exc)
        return out


def _resolve_workers(requested: int) -> int:
    cpus = os.cpu_count() or 1
    if requested is None or requested <= 0:
        return cpus
    return max(1, min(int(requested), cpus))


def _chunk(items: List[K], size: int) -> Iterable[List[K]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]
