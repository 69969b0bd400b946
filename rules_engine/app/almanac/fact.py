"""
Fact definitions for the Almanac.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union, TYPE_CHECKING

from shared.errors import ArgumentError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .almanac import Almanac


FactParams = Dict[str, Any]
ComputeFn = Callable[[FactParams, "Almanac"], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class Fact:
    """A named, possibly parameterized value source with its cache policy.

    ``compute`` receives the parameter mapping and the resolving Almanac and
    may return either a value or an awaitable producing one.
    """
    id: str
    compute: ComputeFn
    cache_enabled: bool = True
    cache_expiration_seconds: float = 0
    priority: int = 1

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ArgumentError("Fact id must be a non-empty string", {"fact_id": self.id})
        if not callable(self.compute):
            raise ArgumentError("Fact compute function must be callable", {"fact_id": self.id})
        if self.cache_expiration_seconds < 0:
            raise ArgumentError(
                "Fact cache expiration must not be negative",
                {"fact_id": self.id, "cache_expiration_seconds": self.cache_expiration_seconds}
            )

    @classmethod
    def from_value(
        cls,
        fact_id: str,
        value: Any,
        *,
        cache_enabled: bool = True,
        cache_expiration_seconds: float = 0,
        priority: int = 1,
    ) -> "Fact":
        """Create a fact that always yields ``value``."""

        def constant(params: FactParams, almanac: Optional["Almanac"]) -> Any:
            return value

        return cls(
            id=fact_id,
            compute=constant,
            cache_enabled=cache_enabled,
            cache_expiration_seconds=cache_expiration_seconds,
            priority=priority,
        )
