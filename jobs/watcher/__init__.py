"""Watcher runner package.

Modules:
- config: RunnerConfig dataclass
- runner: una iteración (run_once)
- cli: CLI entry point (main)
"""

from .config import RunnerConfig
from .runner import run_once
from .cli import main

__all__ = ["RunnerConfig", "run_once", "main"]
