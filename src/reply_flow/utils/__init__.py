"""Utility helpers for logging, environment loading, and reproducibility."""

from .env import load_repo_dotenv
from .logging import configure_logging
from .random import RandomSource, derive_seeds

__all__ = [
    "configure_logging",
    "load_repo_dotenv",
    "RandomSource",
    "derive_seeds",
]
