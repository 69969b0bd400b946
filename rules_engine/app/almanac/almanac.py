"""
Almanac: fact resolution and caching for one evaluation session.
"""

import asyncio
import functools
import inspect
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, TYPE_CHECKING

from shared.errors import ArgumentError, CircularFactError, UndefinedFactError
from shared.logging import get_logger, session_context
from ..rules.path_resolver import JsonPathResolver, PathResolver
from .cache import CacheEntryStore, CacheKey, make_cache_key
from .fact import Fact, FactParams

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


# Keys being computed in the current task chain; a repeat means a cycle.
_resolution_stack: ContextVar[Tuple[CacheKey, ...]] = ContextVar("fact_resolution_stack", default=())


@dataclass
class AlmanacOptions:
    """Construction-time Almanac configuration."""
    allow_undefined_facts: bool = False
    enable_fact_caching: bool = True
    cache_max_size: int = 0
    path_resolver: PathResolver = field(default_factory=JsonPathResolver)


class Almanac:
    """Resolves fact values for one evaluation session.

    Resolution order is runtime facts, then the cache, then the registered
    fact's compute function. Concurrent requests for the same cacheable
    ``(fact_id, params)`` share a single computation.
    """

    def __init__(
        self,
        facts: Optional[Iterable[Fact]] = None,
        options: Optional[AlmanacOptions] = None,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.options = options or AlmanacOptions()
        self.logger = get_logger("rules_engine.almanac")
        self.metrics = metrics
        self.session_id = str(uuid.uuid4())

        self._facts: Dict[str, Fact] = {}
        self._runtime_facts: Dict[str, Any] = {}
        self._cache = CacheEntryStore(max_size=self.options.cache_max_size, clock=clock)
        self._in_flight: Dict[CacheKey, "asyncio.Task[Any]"] = {}

        for fact in facts or []:
            self.add_fact(fact)

    @property
    def path_resolver(self) -> PathResolver:
        return self.options.path_resolver

    async def fact_value(self, fact_id: str, params: Optional[FactParams] = None) -> Any:
        """Return the value of ``fact_id`` for ``params``.

        Raises UndefinedFactError for unknown facts unless undefined facts are
        allowed. Errors raised by a compute function propagate unchanged and
        are not cached.
        """
        with session_context(self.session_id):
            return await self._resolve(fact_id, params)

    async def _resolve(self, fact_id: str, params: Optional[FactParams]) -> Any:
        if fact_id in self._runtime_facts:
            self._record_resolution("runtime")
            return self._runtime_facts[fact_id]

        fact = self._facts.get(fact_id)
        if fact is None:
            if self.options.allow_undefined_facts:
                self._record_resolution("undefined")
                self.logger.debug("Undefined fact resolved to None", fact_id=fact_id)
                return None
            raise UndefinedFactError(fact_id, {"session_id": self.session_id})

        params = dict(params) if params else {}
        key = make_cache_key(fact_id, params)
        # Identity-based rendering is only used while the params are alive on the stack
        stack_key = key or CacheKey(fact_id, "!" + repr(params))

        stack = _resolution_stack.get()
        if stack_key in stack:
            raise CircularFactError(fact_id, [k.fact_id for k in stack] + [fact_id])

        if key is None:
            self.logger.debug("Fact params have no stable cache key, computing uncached", fact_id=fact_id)
            return await self._compute(fact, stack_key, params)

        if not self._is_cacheable(fact):
            return await self._compute(fact, key, params)

        found, value = self._cache.get(key)
        if found:
            self._record_resolution("cache")
            self.logger.debug("Fact cache hit", fact_id=fact_id, params=key.params)
            return value

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._compute_and_store(fact, key, params))
            self._in_flight[key] = task
            task.add_done_callback(functools.partial(self._release_in_flight, key))
        else:
            self._record_resolution("shared")
            self.logger.debug("Joining in-flight fact computation", fact_id=fact_id, params=key.params)

        # A cancelled waiter must not cancel the computation other callers share
        return await asyncio.shield(task)

    def add_runtime_fact(self, fact_id: str, value: Any) -> None:
        """Install a runtime value; it shadows any registered fact with the same id."""
        self._runtime_facts[fact_id] = value
        self.logger.debug("Runtime fact added", fact_id=fact_id)

    def add_fact(self, fact: Fact) -> None:
        """Register a fact definition. Re-registering an id replaces the previous definition."""
        if not isinstance(fact, Fact):
            raise ArgumentError("A Fact instance is required", {"received": type(fact).__name__})

        replaced = fact.id in self._facts
        self._facts[fact.id] = fact
        if replaced:
            # Values computed by the old definition must not leak into the new one
            self._drop_fact_entries(fact.id)

        self.logger.debug("Fact registered", fact_id=fact.id, replaced=replaced,
                          cache_enabled=fact.cache_enabled,
                          cache_expiration_seconds=fact.cache_expiration_seconds)

    def get_fact(self, fact_id: str) -> Optional[Fact]:
        return self._facts.get(fact_id)

    def has_fact(self, fact_id: str) -> bool:
        """True for both runtime facts and registered definitions."""
        return fact_id in self._runtime_facts or fact_id in self._facts

    @property
    def runtime_facts(self) -> Dict[str, Any]:
        return dict(self._runtime_facts)

    def clear_cache(self) -> None:
        """Drop every cached value. Runtime facts and registrations are kept."""
        removed = self._cache.clear()
        self._in_flight.clear()
        self._update_cache_gauge()
        self.logger.info("Fact cache cleared", removed=removed, session_id=self.session_id)

    def invalidate_cache(self, fact_id: str) -> None:
        """Drop cached values for every parameter variant of ``fact_id``."""
        removed = self._drop_fact_entries(fact_id)
        self.logger.info("Fact cache invalidated", fact_id=fact_id, removed=removed,
                         session_id=self.session_id)

    def cache_stats(self) -> Dict[str, Any]:
        stats = self._cache.stats()
        stats["in_flight"] = len(self._in_flight)
        return stats

    def _drop_fact_entries(self, fact_id: str) -> int:
        removed = self._cache.invalidate_fact(fact_id)
        # Detached computations still answer their waiters but no longer write to the cache
        for key in [k for k in self._in_flight if k.fact_id == fact_id]:
            del self._in_flight[key]
        self._update_cache_gauge()
        return removed

    def _is_cacheable(self, fact: Fact) -> bool:
        return self.options.enable_fact_caching and fact.cache_enabled

    async def _compute(self, fact: Fact, key: CacheKey, params: FactParams) -> Any:
        token = _resolution_stack.set(_resolution_stack.get() + (key,))
        start = time.perf_counter()
        try:
            value = fact.compute(dict(params), self)
            if inspect.isawaitable(value):
                value = await value
        except Exception as exc:
            self.logger.warning("Fact compute failed", fact_id=fact.id, params=key.params, error=str(exc))
            raise
        finally:
            _resolution_stack.reset(token)

        duration = time.perf_counter() - start
        self._record_resolution("compute")
        self._record_metric("observe_histogram", "fact_compute_duration_seconds", duration, fact_id=fact.id)
        self.logger.debug("Fact computed", fact_id=fact.id, params=key.params,
                          duration_ms=round(duration * 1000, 3))
        return value

    async def _compute_and_store(self, fact: Fact, key: CacheKey, params: FactParams) -> Any:
        value = await self._compute(fact, key, params)

        if self._in_flight.get(key) is not asyncio.current_task():
            self.logger.debug("Discarding value computed before invalidation", fact_id=fact.id, params=key.params)
            return value

        evicted = self._cache.put(key, value, fact.cache_expiration_seconds)
        if evicted is not None:
            self._record_metric("increment_counter", "fact_cache_evictions_total")
        self._update_cache_gauge()
        return value

    def _release_in_flight(self, key: CacheKey, task: "asyncio.Task[Any]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Mark the outcome as retrieved even when every waiter went away
            task.exception()

    def _record_resolution(self, source: str) -> None:
        self._record_metric("increment_counter", "fact_resolutions_total", source=source)

    def _update_cache_gauge(self) -> None:
        self._record_metric("set_gauge", "fact_cache_entries", len(self._cache))

    def _record_metric(self, method: str, *args, **labels) -> None:
        if not self.metrics:
            return

        try:
            getattr(self.metrics, method)(*args, **labels)
        except Exception as exc:  # pragma: no cover - metrics failures should never break resolution
            self.logger.debug("Failed to record almanac metric", method=method, error=str(exc))
