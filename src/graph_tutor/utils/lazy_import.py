"""Deferred imports for optional backends (Motor, Redis, Tavily)."""

from collections.abc import Callable
from functools import cache
from importlib import import_module
from typing import Any

__all__ = [
    "lazy_import",
]


def lazy_import(
    module_name: str,
    name: str | None = None,
    distribution: str | None = None,
) -> Callable[[], Any]:
    """Return a loader that imports a module, or one of its attributes, on first call.

    Args:
        module_name: Dotted module path
        name: Attribute to return instead of the module
        distribution: Package to install when the module is missing
            (defaults to the top-level module name)

    Raises:
        ImportError: When called and the module is not installed
    """

    @cache
    def _load() -> Any:
        try:
            mod = import_module(module_name)
        except ModuleNotFoundError as e:
            package = distribution or module_name.split(".")[0]
            raise ImportError(
                f"'{module_name}' is required for this backend, install '{package}'"
            ) from e
        return getattr(mod, name) if name else mod

    return _load
