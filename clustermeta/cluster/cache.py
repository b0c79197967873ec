"""
Lazily populated metadata caches.

Each cache moves through UNLOADED -> LOADING -> LOADED. The first caller to
find it UNLOADED performs the load; callers arriving while it is LOADING
wait for that load and share its outcome, value or exception alike. A
cache is only ever cleared by an explicit reset.
"""

import threading
from enum import Enum
from typing import Callable, Dict, Generic, Iterable, Optional, TypeVar

from clustermeta.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CacheState(str, Enum):
    """Population state of a LazyCache."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class _Attempt(Generic[T]):
    """One load of a cache, shared by every caller waiting on it."""

    __slots__ = ("owner", "finished", "value", "error")

    def __init__(self, owner: int):
        self.owner = owner
        self.finished = False
        self.value: Optional[T] = None
        self.error: Optional[BaseException] = None


class LazyCache(Generic[T]):
    """
    A single value computed on first access and kept until reset.

    The loader runs without the lock held so waiters can be woken through
    the condition; the state machine guarantees that at most one load is
    in flight per cache. A reset issued while a load is running waits for
    it to finish and then drops its result.
    """

    def __init__(self, name: str, loader: Callable[..., T]):
        self.name = name
        self._loader = loader
        self._cond = threading.Condition(threading.Lock())
        self._state = CacheState.UNLOADED
        self._value: Optional[T] = None
        self._attempt: Optional[_Attempt[T]] = None
        self.loads = 0

    @property
    def state(self) -> CacheState:
        with self._cond:
            return self._state

    def get(self, *args, **kwargs) -> T:
        """
        Return the cached value, loading it if needed.

        Arguments are passed to the loader and ignored once loaded.

        Raises:
            RuntimeError: If the loader re-enters its own cache
            Exception: Whatever the loader raised, for the loading caller
                and every caller that waited on the same load
        """
        me = threading.get_ident()

        with self._cond:
            if self._state is CacheState.LOADED:
                logger.debug("Cache hit", cache=self.name)
                return self._value

            if self._state is CacheState.LOADING:
                attempt = self._attempt
                if attempt.owner == me:
                    raise RuntimeError(f"re-entrant load of the {self.name} cache")

                while not attempt.finished:
                    self._cond.wait()

                if attempt.error is not None:
                    raise attempt.error
                return attempt.value

            attempt = self._attempt = _Attempt(owner=me)
            self._state = CacheState.LOADING
            self.loads += 1

        try:
            value = self._loader(*args, **kwargs)
        except BaseException as e:
            with self._cond:
                attempt.error = e
                attempt.finished = True
                if self._attempt is attempt:
                    self._attempt = None
                    self._state = CacheState.UNLOADED
                self._cond.notify_all()
            logger.warning("Cache load failed", cache=self.name, error=str(e))
            raise

        with self._cond:
            attempt.value = value
            attempt.finished = True
            if self._attempt is attempt:
                self._attempt = None
                self._value = value
                self._state = CacheState.LOADED
            else:
                logger.debug("Discarded load superseded by reset", cache=self.name)
            self._cond.notify_all()

        return value

    def reset(self) -> None:
        """
        Forget the cached value; the next get() loads again.

        A load running on another thread is waited for and its result
        dropped, so two loads of the same cache never overlap. A reset
        issued by the loader itself discards the in-flight result.
        """
        me = threading.get_ident()

        with self._cond:
            while self._state is CacheState.LOADING and self._attempt.owner != me:
                self._cond.wait()

            self._value = None
            self._attempt = None
            self._state = CacheState.UNLOADED


class MetadataCache:
    """
    The brokers, topics and consumer groups caches of one cluster.

    Each cache has its own lock, so a slow topic discovery never blocks a
    broker lookup.
    """

    def __init__(
        self,
        brokers_loader: Callable[[], Dict],
        topics_loader: Callable[[Iterable[str]], Dict],
        consumergroups_loader: Callable[[], Dict],
    ):
        self._brokers = LazyCache("brokers", brokers_loader)
        self._topics = LazyCache("topics", topics_loader)
        self._consumergroups = LazyCache("consumergroups", consumergroups_loader)

    def brokers(self) -> Dict:
        return self._brokers.get()

    def topics(self, preload: Iterable[str]) -> Dict:
        return self._topics.get(preload)

    def consumergroups(self) -> Dict:
        return self._consumergroups.get()

    def states(self) -> Dict[str, CacheState]:
        """Population state of every cache, keyed by cache name."""
        return {
            cache.name: cache.state
            for cache in (self._brokers, self._topics, self._consumergroups)
        }

    def reset(self) -> None:
        """Clear all three caches, each under its own lock."""
        for cache in (self._brokers, self._topics, self._consumergroups):
            cache.reset()

        logger.debug("Metadata caches reset")
