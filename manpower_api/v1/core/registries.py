from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

from manpower_api.config.settings import Settings

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


class RecomputeCallback(Protocol):
    """
    Protocol for the external timekeeping recompute operation.

    Must be idempotent: the queue delivers at least once, so the same
    employee/date pair can be recomputed more than once.
    """

    async def __call__(self, employee_id: str, date: str) -> None:
        """Recompute totals for one employee day, raising on failure."""
        ...


RecomputeFactory = Callable[[Settings], RecomputeCallback]


class RecomputeRegistry(Registry[RecomputeFactory]):
    """Registry for recompute callback factories (log, http)."""

    def __init__(self):
        super().__init__("Recompute")


# Global registry instances
recompute_registry = RecomputeRegistry()
