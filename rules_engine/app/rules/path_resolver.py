"""
Path resolution within fact values.
"""

from typing import Any, Mapping, Optional, Protocol, Sequence


class PathResolver(Protocol):
    """Resolves a nested value out of a fact value."""

    def resolve_value(self, fact: Any, path: Optional[str]) -> Any:
        ...


class JsonPathResolver:
    """Resolve ``$.a.b.0`` style paths over mappings, sequences and attributes."""

    prefix = "$."

    def resolve_value(self, fact: Any, path: Optional[str]) -> Any:
        if fact is None:
            return None

        if not path:
            return fact

        if not path.startswith(self.prefix):
            return None

        current = fact
        for part in path[len(self.prefix):].split("."):
            if current is None:
                return None
            current = self._step(current, part)

        return current

    @staticmethod
    def _step(value: Any, part: str) -> Any:
        if isinstance(value, Mapping):
            return value.get(part)

        if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
            try:
                return value[int(part)]
            except (ValueError, IndexError):
                return None

        return getattr(value, part, None)
