"""
Concurrent fan-out / join over a set of names.

Used for broker discovery, topic preloading and subtree deletion. Each batch
runs on its own bounded thread pool so nested batches (a topic preload that
reads broker metadata, a delete level inside a delete) can never starve
each other of workers.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)

N = TypeVar("N", bound=Hashable)
K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class ConcurrentFetcher:
    """
    Runs one unit of work per name and joins on all of them.

    Failure is fail-fast: the first unit to raise (in completion order)
    cancels every unit that has not started yet, and its exception is
    re-raised once the units already running have finished. Results of
    those siblings are discarded, so callers either get a mapping whose
    key set is exactly the requested names or an exception.
    """

    def __init__(self, max_workers: int = 16, name: str = "fetch"):
        """
        Initialize fetcher.

        Args:
            max_workers: Upper bound on threads used by a single batch
            name: Thread name prefix, also used in log entries
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.max_workers = max_workers
        self.name = name

    def fetch(
        self,
        names: Iterable[N],
        build: Callable[[N], T],
        key: Optional[Callable[[N], K]] = None,
    ) -> Dict[K, T]:
        """
        Build one object per name concurrently.

        Args:
            names: Names to build objects for (duplicates are ignored)
            build: Performs the remote read and constructs the object
            key: Maps a name to its key in the result, identity by default

        Returns:
            Mapping of key to built object, in the order names were given
        """
        ordered = list(dict.fromkeys(names))
        key = key or (lambda name: name)

        result: Dict[K, T] = {}
        lock = threading.Lock()

        def unit(name: N) -> None:
            value = build(name)
            with lock:
                result[key(name)] = value

        self.run(ordered, unit)

        return {key(name): result[key(name)] for name in ordered}

    def run(self, items: Iterable[N], work: Callable[[N], object]) -> None:
        """
        Run work(item) for every item concurrently and wait for all of them.

        Raises:
            Exception: The first exception raised by any unit
        """
        items = list(items)
        if not items:
            return

        error: Optional[BaseException] = None
        failed_item = None

        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(items)),
            thread_name_prefix=self.name,
        ) as executor:
            futures: Dict[Future, N] = {executor.submit(work, item): item for item in items}

            for future in as_completed(futures):
                if future.exception() is not None:
                    error = future.exception()
                    failed_item = futures[future]
                    cancelled = self._cancel_pending(futures)
                    logger.error(
                        "Fan-out batch failed",
                        batch=self.name,
                        item=str(failed_item),
                        units=len(items),
                        cancelled=cancelled,
                        error=str(error),
                    )
                    break

        if error is not None:
            raise error

        logger.debug("Fan-out batch completed", batch=self.name, units=len(items))

    @staticmethod
    def _cancel_pending(futures: Dict[Future, N]) -> int:
        cancelled: List[Future] = [f for f in futures if f.cancel()]
        return len(cancelled)
