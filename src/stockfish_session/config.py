"""
Configuration for a Stockfish session.

All configuration can be set via environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class SessionConfig:
    """Configuration for a single Stockfish session."""

    stockfish_path: Path = field(
        default_factory=lambda: Path(os.environ.get("STOCKFISH_PATH", "stockfish"))
    )
    depth: int = field(default_factory=lambda: int(os.environ.get("STOCKFISH_DEPTH", "15")))
    num_nodes: int = field(
        default_factory=lambda: int(os.environ.get("STOCKFISH_NODES", "1000000"))
    )
    turn_perspective: bool = True  # False reports scores from White's side
    parameters: dict[str, Any] = field(default_factory=dict)  # Applied over the defaults
    startup_timeout: float = 5.0  # seconds to wait for the UCI handshake
    read_timeout: float | None = None  # per-line read timeout, None waits forever
    quit_timeout: float = 2.0  # seconds to wait for the worker to exit
