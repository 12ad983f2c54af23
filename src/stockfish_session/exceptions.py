"""
Exception hierarchy for stockfish-session.

Groups the errors a session can raise by the layer that detects them:
parameter validation, the worker transport, move handling, and parsing.
"""

from __future__ import annotations


class StockfishSessionError(Exception):
    """Base exception for all stockfish-session errors."""


class EngineStartupError(StockfishSessionError):
    """Worker failed to start or complete the handshake."""


class UnsupportedFeatureError(StockfishSessionError):
    """The running worker version does not support the requested feature."""


# =============================================================================
# Parameter Exceptions
# =============================================================================


class ParameterError(StockfishSessionError):
    """Base exception for engine parameter errors."""


class UnknownParameterError(ParameterError):
    """Parameter name is not a declared engine option."""

    def __init__(self, name: str) -> None:
        super().__init__(f"'{name}' is not a key that exists.")
        self.name = name


class InvalidParameterValueError(ParameterError):
    """Parameter value has the wrong type or is out of bounds."""

    def __init__(self, name: str, value: object, reason: str) -> None:
        super().__init__(f"Invalid value {value!r} for '{name}': {reason}")
        self.name = name
        self.value = value
        self.reason = reason


# =============================================================================
# Transport Exceptions
# =============================================================================


class TransportError(StockfishSessionError):
    """Base exception for worker I/O errors."""


class BrokenChannelError(TransportError):
    """Worker input stream is unavailable."""


class WorkerCrashedError(TransportError):
    """Worker process exited unexpectedly."""


class StreamEndedUnexpectedlyError(TransportError):
    """Worker output closed before a quit command was sent."""


class ReadTimeoutError(TransportError):
    """Timed out waiting for a line from the worker."""


# =============================================================================
# Move Exceptions
# =============================================================================


class MoveError(StockfishSessionError):
    """Base exception for move errors."""

    def __init__(self, message: str, move: str) -> None:
        super().__init__(message)
        self.move = move


class IllegalMoveError(MoveError):
    """A move in a move list is illegal in the position reached so far."""

    def __init__(self, move: str) -> None:
        super().__init__(f"Cannot make move: {move}", move)


class InvalidMoveError(MoveError):
    """The proposed move is not valid in the current position."""

    def __init__(self, move: str) -> None:
        super().__init__(f"The proposed move is not valid in the current position: {move}", move)


# =============================================================================
# Parsing Exceptions
# =============================================================================


class InvalidSquareError(StockfishSessionError):
    """Square name is not a file a-h followed by a rank 1-8."""


class DuplicateMoveError(StockfishSessionError):
    """A move appeared twice in perft output."""


class UnresolvedVersionError(StockfishSessionError):
    """Worker version could not be parsed or mapped to a known release."""
