"""Reply candidate generation and flow-ranking engine."""

from importlib import import_module
from typing import Any

from .utils.env import load_repo_dotenv

load_repo_dotenv()

__all__ = (
    "config",
    "context",
    "engine",
    "errors",
    "generation",
    "persona",
    "ranking",
    "types",
    "utils",
)


def __getattr__(name: str) -> Any:
    if name in __all__:
        module = import_module(f"{__name__}.{name}")
        globals()[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
