import pytest

from manpower_api.v1.core.registries import Registry, recompute_registry
from manpower_api.v1.infra.jobs import registry_init  # noqa: F401
from manpower_api.v1.infra.jobs.handlers import (
    HttpRecomputeHandler,
    LoggingRecomputeHandler,
)


def test_registry_basic_operations():
    """Test basic registry register, get, list operations."""
    registry = Registry[str]("Test")

    # Test empty registry
    assert registry.list() == []

    # Test register and get
    registry.register("test_impl", "test_value")
    assert registry.get("test_impl") == "test_value"
    assert registry.list() == ["test_impl"]

    # Test KeyError for missing implementation
    with pytest.raises(KeyError, match="No test implementation registered"):
        registry.get("nonexistent")


def test_registry_overwrite():
    """Registering an existing name replaces the implementation."""
    registry = Registry[str]("Test")

    registry.register("impl", "old")
    registry.register("impl", "new")

    assert registry.get("impl") == "new"
    assert registry.list() == ["impl"]


def test_registry_freeze():
    """Test registry freezing functionality."""
    registry = Registry[str]("Test")

    registry.register("before_freeze", "value")
    assert not registry.is_frozen()

    registry.freeze()
    assert registry.is_frozen()

    with pytest.raises(RuntimeError, match="registry is frozen in production mode"):
        registry.register("after_freeze", "value")

    # Reads still work after freezing
    assert registry.get("before_freeze") == "value"


def test_builtin_recompute_handlers_registered():
    """Built-in handlers are registered as factories."""
    assert {"log", "http"} <= set(recompute_registry.list())
    assert recompute_registry.get("log") is LoggingRecomputeHandler
    assert recompute_registry.get("http") is HttpRecomputeHandler
