"""selfheal command-line interface."""

from . import heal  # noqa: F401  registers commands on main
from .main import main

__all__ = ["main"]
