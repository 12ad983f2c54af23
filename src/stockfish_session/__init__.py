"""
stockfish-session

Asynchronous client for the Stockfish chess engine over the UCI protocol.
Serializes commands to a single worker process and parses its text output
into best moves, evaluations, top moves, perft counts and version info.
"""

from .config import SessionConfig
from .exceptions import (
    BrokenChannelError,
    DuplicateMoveError,
    EngineStartupError,
    IllegalMoveError,
    InvalidMoveError,
    InvalidParameterValueError,
    InvalidSquareError,
    MoveError,
    ParameterError,
    ReadTimeoutError,
    StockfishSessionError,
    StreamEndedUnexpectedlyError,
    TransportError,
    UnknownParameterError,
    UnresolvedVersionError,
    UnsupportedFeatureError,
    WorkerCrashedError,
)
from .parameters import DEFAULT_PARAMETERS, PARAM_RESTRICTIONS, StockfishParameters
from .position import STARTING_FEN, is_fen_syntax_valid
from .protocol import CommandFamily, ProtocolEngine
from .results import BenchmarkParameters, Capture, Evaluation, PerftResult, TopMove
from .session import StockfishSession
from .transport import BaseTransport, LineBuffer, SubprocessTransport
from .version import RELEASES, VersionInfo, parse_version

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Config
    "SessionConfig",
    # Session
    "StockfishSession",
    "StockfishParameters",
    "DEFAULT_PARAMETERS",
    "PARAM_RESTRICTIONS",
    "STARTING_FEN",
    "is_fen_syntax_valid",
    # Results
    "BenchmarkParameters",
    "Capture",
    "Evaluation",
    "PerftResult",
    "TopMove",
    "VersionInfo",
    "RELEASES",
    "parse_version",
    # Protocol
    "CommandFamily",
    "ProtocolEngine",
    "BaseTransport",
    "LineBuffer",
    "SubprocessTransport",
    # Errors
    "StockfishSessionError",
    "EngineStartupError",
    "UnsupportedFeatureError",
    "ParameterError",
    "UnknownParameterError",
    "InvalidParameterValueError",
    "TransportError",
    "BrokenChannelError",
    "WorkerCrashedError",
    "StreamEndedUnexpectedlyError",
    "ReadTimeoutError",
    "MoveError",
    "IllegalMoveError",
    "InvalidMoveError",
    "InvalidSquareError",
    "DuplicateMoveError",
    "UnresolvedVersionError",
]
