"""Typed results returned by session operations."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass, field


@dataclass
class Evaluation:
    """Score of a searched position."""

    type: str  # "cp" or "mate"
    value: int  # Centipawns, or moves until mate


@dataclass
class TopMove:
    """One line of a MultiPV search."""

    move: str
    centipawn: int | None = None  # None when the line is a forced mate
    mate: int | None = None  # Mate in N, None when not a mate score
    # Filled in for verbose requests only
    selective_depth: int | None = None
    time: int | None = None
    nodes: int | None = None
    nodes_per_second: int | None = None
    multipv_line: int | None = None
    wdl: tuple[int, int, int] | None = None


@dataclass
class PerftResult:
    """Leaf node counts of a perft run."""

    nodes: int = 0  # Total leaf nodes
    moves: dict[str, int] = field(default_factory=dict)  # Leaf nodes per legal move


class Capture(enum.Enum):
    """How a move captures, if at all."""

    DIRECT_CAPTURE = "direct capture"
    EN_PASSANT = "en passant"
    NO_CAPTURE = "no capture"


@dataclass
class BenchmarkParameters:
    """Arguments of the non-UCI `bench` command.

    Out-of-range values fall back to their defaults.
    """

    tt_size: int = 16
    threads: int = 1
    limit: int = 13
    fen_file: str = "default"
    limit_type: str = "depth"
    eval_type: str = "mixed"

    def __post_init__(self) -> None:
        self.tt_size = self.tt_size if self.tt_size in range(1, 128001) else 16
        self.threads = self.threads if self.threads in range(1, 513) else 1
        self.limit = self.limit if self.limit in range(1, 10001) else 13
        self.fen_file = (
            self.fen_file
            if self.fen_file.endswith(".fen") and os.path.isfile(self.fen_file)
            else "default"
        )
        if self.limit_type not in ("depth", "perft", "nodes", "movetime"):
            self.limit_type = "depth"
        if self.eval_type not in ("mixed", "classical", "NNUE"):
            self.eval_type = "mixed"

    def command(self) -> str:
        return (
            f"bench {self.tt_size} {self.threads} {self.limit} {self.fen_file} "
            f"{self.limit_type} {self.eval_type}"
        )
