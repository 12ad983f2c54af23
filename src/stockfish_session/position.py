"""
Position tracking and move checks against the worker.

The position lives inside the worker. This facade only remembers the last
position command it sent and otherwise asks the worker: the FEN and the
board come from the `d` dump, and legality is probed with a one-ply search
restricted to the move in question.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence

import chess

from .exceptions import IllegalMoveError, InvalidMoveError, InvalidSquareError
from .parameters import ParameterManager
from .parsers import parse_best_move, parse_board_visual, parse_fen
from .protocol import CommandFamily, ProtocolEngine
from .results import Capture

logger = logging.getLogger(__name__)

STARTING_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
PIECE_CHARS = "PNBRQKpnbrqk"

FEN_PATTERN = re.compile(
    r"\s*^(((?:[rnbqkpRNBQKP1-8]+\/){7})[rnbqkpRNBQKP1-8]+)"
    r"\s([b|w])\s(-|[K|Q|k|q]{1,4})\s(-|[a-h][1-8])\s(\d+\s\d+)$"
)


def is_fen_syntax_valid(fen: str) -> bool:
    """Check the shape of a FEN string without consulting the worker."""
    if not FEN_PATTERN.match(fen):
        return False

    fields = fen.split()
    if any(
        (
            len(fields) != 6,
            len(fields[0].split("/")) != 8,
            any(king not in fields[0] for king in "Kk"),
            any(not fields[index].isdigit() for index in (4, 5)),
        )
    ):
        return False
    if int(fields[4]) >= int(fields[5]) * 2:
        return False

    for rank in fields[0].split("/"):
        width = 0
        previous_was_digit = False
        for char in rank:
            if "1" <= char <= "8":
                if previous_was_digit:
                    return False  # Two digits next to each other
                width += int(char)
                previous_was_digit = True
            elif char in PIECE_CHARS:
                width += 1
                previous_was_digit = False
            else:
                return False
        if width != 8:
            return False
    return True


def validate_square(square: str) -> str:
    """Return the lowercase square name.

    Raises:
        InvalidSquareError: If `square` is not a file a-h followed by a rank 1-8.
    """
    name = square.lower() if isinstance(square, str) else ""
    if len(name) != 2 or not ("a" <= name[0] <= "h") or not ("1" <= name[1] <= "8"):
        raise InvalidSquareError(f"'{square}' is not a valid square")
    return name


class PositionFacade:
    """
    Sets positions on the worker and answers questions about them.

    Usage:
        facade = PositionFacade(protocol, parameters)
        await facade.set_by_notation(STARTING_FEN)
        await facade.apply_moves(["e2e4", "e7e5"])
        piece = await facade.what_is_on("e4")
    """

    def __init__(
        self,
        protocol: ProtocolEngine,
        parameters: ParameterManager,
        on_new_position: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the facade.

        Args:
            protocol: Engine used to talk to the worker.
            parameters: Live options (Chess960 affects capture detection).
            on_new_position: Called whenever a new position is about to be set.
        """
        self._protocol = protocol
        self._parameters = parameters
        self._on_new_position = on_new_position
        self.last_position_command: str | None = None

    async def _prepare_for_new_position(self, reset_transposition_state: bool) -> None:
        if reset_transposition_state:
            await self._protocol.send("ucinewgame")
        await self._protocol.await_ready()
        if self._on_new_position is not None:
            self._on_new_position()

    async def _send_position(self, command: str) -> None:
        await self._protocol.send(command)
        self.last_position_command = command

    async def set_by_notation(self, fen: str, reset_transposition_state: bool = True) -> None:
        """Set the position from a FEN string.

        Args:
            fen: Position in FEN notation.
            reset_transposition_state: Send `ucinewgame` first, clearing the
                worker's transposition table. Use it when the new position is
                unrelated to the current one.
        """
        async with self._protocol.queue.admit():
            await self._prepare_for_new_position(reset_transposition_state)
            await self._send_position(f"position fen {fen}")

    async def apply_moves(self, moves: Sequence[str] | None) -> None:
        """Play moves from the current position.

        The transposition table is kept since the new position follows from
        the current one.

        Raises:
            IllegalMoveError: On the first illegal move. Moves before it stay
                applied.
        """
        if not moves:
            return
        async with self._protocol.queue.admit():
            await self._prepare_for_new_position(False)
            for move in moves:
                if not await self.is_move_correct(move):
                    raise IllegalMoveError(move)
                fen = await self.current_fen()
                await self._send_position(f"position fen {fen} moves {move}")

    async def is_move_correct(self, move: str) -> bool:
        """Check whether `move` is legal in the current position."""
        lines = await self._protocol.run(f"go depth 1 searchmoves {move}", CommandFamily.SEARCH)
        return parse_best_move(lines) is not None

    async def board_lines(self) -> list[str]:
        """Return the raw `d` dump."""
        return await self._protocol.run("d", CommandFamily.BOARD)

    async def current_fen(self) -> str:
        """Return the worker's current position in FEN notation."""
        return parse_fen(await self.board_lines())

    async def board_visual(self, perspective_white: bool = True) -> str:
        """Return a text drawing of the board."""
        return parse_board_visual(await self.board_lines(), perspective_white)

    async def what_is_on(self, square: str) -> chess.Piece | None:
        """Return the piece on `square`, or None if it is empty.

        Raises:
            InvalidSquareError: If the square name is malformed.
        """
        name = validate_square(square)
        rows = (await self.board_visual()).splitlines()
        rank_row = rows[17 - 2 * int(name[1])]
        piece_char = rank_row[2 + (ord(name[0]) - ord("a")) * 4]
        return None if piece_char == " " else chess.Piece.from_symbol(piece_char)

    async def move_capture_kind(self, move: str) -> Capture:
        """Classify a legal move as a direct capture, en passant, or neither.

        Raises:
            InvalidMoveError: If the move is not legal in the current position.
        """
        async with self._protocol.queue.admit():
            if not await self.is_move_correct(move):
                raise InvalidMoveError(move)
            mover = await self.what_is_on(move[:2])
            target = await self.what_is_on(move[2:4])

            if target is not None:
                is_castling = (
                    self._parameters.value("UCI_Chess960")
                    and mover is not None
                    and mover.color == target.color
                    and mover.piece_type == chess.KING
                    and target.piece_type == chess.ROOK
                )
                return Capture.NO_CAPTURE if is_castling else Capture.DIRECT_CAPTURE

            en_passant_square = (await self.current_fen()).split()[3]
            if (
                move[2:4] == en_passant_square
                and mover is not None
                and mover.piece_type == chess.PAWN
            ):
                return Capture.EN_PASSANT
            return Capture.NO_CAPTURE
