"""Lazy re-exports for tool modules.

``material_store`` depends on ``upcycle_search.models``, which itself imports
``tools.categories`` and ``tools.geo``; loading submodules on demand keeps
``from upcycle_search.tools import geo`` working without an import cycle.
"""

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = (
    "categories",
    "es_client",
    "geo",
    "http",
    "material_store",
)


if TYPE_CHECKING:  # pragma: no cover - only for static analysis
    from . import (
        categories,
        es_client,
        geo,
        http,
        material_store,
    )


def __getattr__(name: str) -> Any:  # pragma: no cover - thin shim
    if name in __all__:
        module = import_module(f".{name}", __name__)
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:  # pragma: no cover - convenience for REPL/tests
    return sorted(set(__all__) | set(globals().keys()))
