"""
Asynchronous Stockfish session.

A session owns one worker process and exposes typed operations on top of
the UCI text protocol: best moves, evaluations, MultiPV top moves, perft,
static evaluation, option management and position handling. Every public
operation is admitted through the protocol engine's command queue, so
concurrent callers are served one at a time in arrival order.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import chess

from .config import SessionConfig
from .exceptions import EngineStartupError, TransportError, UnsupportedFeatureError
from .parameters import ParameterManager, StockfishParameters
from .parsers import (
    parse_best_move,
    parse_evaluation,
    parse_handshake,
    parse_perft,
    parse_static_eval,
    parse_status_line,
    parse_top_moves,
    parse_wdl_stats,
    score_multiplier,
    side_to_move,
)
from .position import STARTING_FEN, PositionFacade, is_fen_syntax_valid
from .protocol import CommandFamily, ProtocolEngine
from .results import BenchmarkParameters, Capture, Evaluation, PerftResult, TopMove
from .transport import BaseTransport, SubprocessTransport
from .version import VersionInfo, parse_version

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _serialized(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Run a session operation as a single unit on the command queue."""

    @functools.wraps(method)
    async def wrapper(self: StockfishSession, *args: Any, **kwargs: Any) -> T:
        async with self._protocol.queue.admit():
            return await method(self, *args, **kwargs)

    return wrapper


class StockfishSession:
    """
    A running Stockfish worker and the client-side state that mirrors it.

    Usage:
        async with await StockfishSession.start(SessionConfig(depth=12)) as session:
            await session.set_position(["e2e4", "e7e5"])
            move = await session.get_best_move()
            evaluation = await session.get_evaluation()
    """

    def __init__(self, transport: BaseTransport, config: SessionConfig | None = None) -> None:
        """Wrap an already started transport. Use `start()` to spawn a worker."""
        self._config = config or SessionConfig()
        self._transport = transport
        self._protocol = ProtocolEngine(transport, read_timeout=self._config.read_timeout)
        self._parameters = ParameterManager(self._protocol, resync=self._resync_position)
        self._position = PositionFacade(
            self._protocol, self._parameters, on_new_position=self._clear_info
        )

        self._depth = 15
        self._num_nodes = 1000000
        self._turn_perspective = True
        self.depth = self._config.depth
        self.num_nodes = self._config.num_nodes
        self.turn_perspective = self._config.turn_perspective

        self._version: VersionInfo | None = None
        self._has_wdl_option = False
        self.info = ""  # Last status line printed before a best move

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @classmethod
    async def start(
        cls, config: SessionConfig | None = None, transport: BaseTransport | None = None
    ) -> StockfishSession:
        """Start a worker, perform the UCI handshake and apply the options.

        Args:
            config: Session configuration. Uses defaults if not provided.
            transport: Pre-built transport; spawns `config.stockfish_path` if None.

        Raises:
            EngineStartupError: If the worker cannot be started or handshaken.
            ParameterError: If `config.parameters` is invalid.
        """
        config = config or SessionConfig()
        if transport is None:
            try:
                transport = await SubprocessTransport.spawn(config.stockfish_path)
            except FileNotFoundError as e:
                raise EngineStartupError(
                    f"Stockfish binary not found at {config.stockfish_path}"
                ) from e
            except OSError as e:
                raise EngineStartupError(f"Failed to start engine: {e}") from e

        session = cls(transport, config)
        try:
            await session._initialize()
        except TransportError as e:
            await transport.close(config.quit_timeout)
            raise EngineStartupError(f"Failed to start engine: {e}") from e
        except Exception:
            await transport.close(config.quit_timeout)
            raise
        return session

    async def _initialize(self) -> None:
        lines = await self._protocol.run(
            "uci", CommandFamily.HANDSHAKE, timeout=self._config.startup_timeout
        )
        version_text, self._has_wdl_option = parse_handshake(lines)
        self._version = parse_version(version_text)
        logger.info(f"Engine started: Stockfish {version_text}")

        await self._parameters.reset()
        await self._parameters.update(self._config.parameters)
        if self._has_wdl_option:
            await self._parameters.set_option("UCI_ShowWDL", True, remember=False)
        await self._position.set_by_notation(STARTING_FEN)

    async def quit(self) -> None:
        """Send `quit` and wait for the worker to exit."""
        await self._transport.close(self._config.quit_timeout)

    async def __aenter__(self) -> StockfishSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.quit()

    def is_alive(self) -> bool:
        """Check if the worker process is running."""
        return self._transport.is_alive()

    @property
    def version(self) -> VersionInfo:
        """Version the worker reported during the handshake."""
        if self._version is None:
            raise RuntimeError("Session has not completed the handshake")
        return self._version

    # -------------------------------------------------------------------------
    # Search settings
    # -------------------------------------------------------------------------

    @property
    def depth(self) -> int:
        """Search depth used by depth-limited operations."""
        return self._depth

    @depth.setter
    def depth(self, depth: int) -> None:
        if not isinstance(depth, int) or isinstance(depth, bool):
            raise TypeError("depth must be an integer")
        if depth < 1:
            raise ValueError("depth must be an integer higher than 0")
        self._depth = depth

    @property
    def num_nodes(self) -> int:
        """Node budget used by node-limited searches."""
        return self._num_nodes

    @num_nodes.setter
    def num_nodes(self, num_nodes: int) -> None:
        if not isinstance(num_nodes, int) or isinstance(num_nodes, bool):
            raise TypeError("num_nodes must be an integer")
        if num_nodes < 1:
            raise ValueError("num_nodes must be an integer higher than 0")
        self._num_nodes = num_nodes

    @property
    def turn_perspective(self) -> bool:
        """True for scores relative to the side to move, False for White's side."""
        return self._turn_perspective

    @turn_perspective.setter
    def turn_perspective(self, turn_perspective: bool) -> None:
        self._turn_perspective = bool(turn_perspective)

    # -------------------------------------------------------------------------
    # Engine parameters
    # -------------------------------------------------------------------------

    def get_engine_parameters(self) -> StockfishParameters:
        """Return a copy of the current engine options."""
        return self._parameters.get()

    @_serialized
    async def update_engine_parameters(self, parameters: dict[str, Any] | None) -> None:
        """Update engine options. See `ParameterManager.update`."""
        await self._parameters.update(parameters)

    @_serialized
    async def reset_engine_parameters(self) -> None:
        """Restore every engine option to its default."""
        await self._parameters.reset()

    async def set_skill_level(self, skill_level: int = 20) -> None:
        """Limit strength with a skill level between 0 (weakest) and 20 (full strength)."""
        await self.update_engine_parameters(
            {"UCI_LimitStrength": False, "Skill Level": skill_level}
        )

    async def set_elo_rating(self, elo_rating: int = 1350) -> None:
        """Limit strength to an Elo rating, ignoring the skill level."""
        await self.update_engine_parameters({"UCI_LimitStrength": True, "UCI_Elo": elo_rating})

    async def resume_full_strength(self) -> None:
        """Undo a previous skill level or Elo limit."""
        await self.update_engine_parameters({"UCI_LimitStrength": False, "Skill Level": 20})

    def does_current_engine_version_have_wdl_option(self) -> bool:
        """Whether the worker offered the UCI_ShowWDL option during the handshake."""
        return self._has_wdl_option

    # -------------------------------------------------------------------------
    # Position
    # -------------------------------------------------------------------------

    @_serialized
    async def set_fen_position(self, fen: str, send_ucinewgame_token: bool = True) -> None:
        """Set the position from a FEN string.

        Args:
            fen: Position in FEN notation.
            send_ucinewgame_token: Clear the transposition table first. Do this
                when the new position is unrelated to the current one.
        """
        await self._position.set_by_notation(fen, send_ucinewgame_token)

    @_serialized
    async def set_position(self, moves: Sequence[str] | None = None) -> None:
        """Set the position reached by playing `moves` from the standard start."""
        await self._position.set_by_notation(STARTING_FEN, True)
        await self._position.apply_moves(moves)

    @_serialized
    async def make_moves_from_current_position(self, moves: Sequence[str] | None) -> None:
        """Play moves in the current position.

        Raises:
            IllegalMoveError: On the first illegal move; earlier moves stay played.
        """
        await self._position.apply_moves(moves)

    @_serialized
    async def get_fen_position(self) -> str:
        """Return the current position in FEN notation."""
        return await self._position.current_fen()

    @_serialized
    async def get_board_visual(self, perspective_white: bool = True) -> str:
        """Return a text drawing of the current board."""
        return await self._position.board_visual(perspective_white)

    @_serialized
    async def get_what_is_on_square(self, square: str) -> chess.Piece | None:
        """Return the piece on `square` (e.g. "e4"), or None if it is empty."""
        return await self._position.what_is_on(square)

    @_serialized
    async def will_move_be_a_capture(self, move: str) -> Capture:
        """Classify `move` as a direct capture, en passant, or no capture."""
        return await self._position.move_capture_kind(move)

    @_serialized
    async def is_move_correct(self, move: str) -> bool:
        """Check whether `move` is legal in the current position."""
        return await self._position.is_move_correct(move)

    async def is_fen_valid(self, fen: str) -> bool:
        """Check whether `fen` describes a position the worker can search.

        A disposable session is used since an illegal position may crash the
        worker.
        """
        if not is_fen_syntax_valid(fen):
            return False

        config = SessionConfig(
            stockfish_path=self._config.stockfish_path,
            parameters={"Hash": 1},
            startup_timeout=self._config.startup_timeout,
            read_timeout=self._config.read_timeout,
        )
        probe = await StockfishSession.start(config)
        try:
            await probe.set_fen_position(fen, False)
            lines = await probe._protocol.run("go depth 10", CommandFamily.SEARCH)
            return parse_best_move(lines) is not None
        except TransportError:
            # The worker crashing is the sign of an illegal position
            return False
        finally:
            await probe.quit()

    @_serialized
    async def flip(self) -> None:
        """Switch the side to move."""
        await self._protocol.send("flip")

    # -------------------------------------------------------------------------
    # Search
    # -------------------------------------------------------------------------

    @_serialized
    async def get_best_move(self, wtime: int | None = None, btime: int | None = None) -> str | None:
        """Return the best move, or None if the side to move is mated or stalemated.

        Args:
            wtime: White's remaining clock in milliseconds.
            btime: Black's remaining clock in milliseconds.
                Without either, the search runs to `depth`.
        """
        if wtime is not None or btime is not None:
            command = "go"
            if wtime is not None:
                command += f" wtime {wtime}"
            if btime is not None:
                command += f" btime {btime}"
        else:
            command = f"go depth {self._depth}"
        return await self._best_move(command)

    @_serialized
    async def get_best_move_time(self, time: int = 1000) -> str | None:
        """Return the best move found in `time` milliseconds."""
        return await self._best_move(f"go movetime {time}")

    async def _best_move(self, command: str) -> str | None:
        lines = await self._search(command)
        return parse_best_move(lines)

    async def _search(self, command: str) -> list[str]:
        lines = await self._protocol.run(command, CommandFamily.SEARCH)
        self.info = parse_status_line(lines)
        return lines

    @_serialized
    async def get_evaluation(self, searchtime: int | None = None) -> Evaluation:
        """Search the current position and return its score.

        Args:
            searchtime: Search time in milliseconds; searches to `depth` if None.
        """
        self._weaker_setting_warning("get_evaluation will still return full strength evaluations")
        multiplier = await self._multiplier()
        command = f"go depth {self._depth}" if searchtime is None else f"go movetime {searchtime}"
        lines = await self._search(command)
        return parse_evaluation(lines, multiplier)

    @_serialized
    async def get_static_eval(self) -> float | None:
        """Evaluate the position without searching.

        Returns:
            The evaluation in pawns, or None when the side to move is in check.
        """
        multiplier = await self._multiplier(white_relative=True)
        lines = await self._protocol.run("eval", CommandFamily.STATIC_EVAL)
        return parse_static_eval(lines, multiplier)

    @_serialized
    async def get_top_moves(
        self, num_top_moves: int = 5, verbose: bool = False, num_nodes: int = 0
    ) -> list[TopMove]:
        """Return the best `num_top_moves` moves of the position.

        Args:
            num_top_moves: Number of moves to return (fewer if fewer are legal).
            verbose: Also fill in depth, time, node and WDL details.
            num_nodes: Search this many nodes instead of searching to `depth`.

        Returns:
            Moves ordered best first; empty if there are no legal moves.
        """
        if num_top_moves <= 0:
            raise ValueError("num_top_moves is not a positive number.")
        self._weaker_setting_warning("get_top_moves will still return full strength top moves")

        old_multipv = self._parameters.value("MultiPV")
        old_num_nodes = self._num_nodes
        try:
            if num_top_moves != old_multipv:
                await self._parameters.set_option("MultiPV", num_top_moves)
            if num_nodes == 0:
                command = f"go depth {self._depth}"
            else:
                self.num_nodes = num_nodes
                command = f"go nodes {self._num_nodes}"

            multiplier = await self._multiplier()
            lines = await self._search(command)
            return parse_top_moves(
                lines, multiplier, depth=self._depth, num_nodes=num_nodes, verbose=verbose
            )
        finally:
            if self._transport.is_alive() and self._parameters.value("MultiPV") != old_multipv:
                await self._parameters.set_option("MultiPV", old_multipv)
            self._num_nodes = old_num_nodes

    @_serialized
    async def get_wdl_stats(self, get_as_tuple: bool = False) -> list[int] | tuple[int, ...] | None:
        """Return win/draw/loss permille, or None if the game is over.

        Raises:
            UnsupportedFeatureError: If the worker lacks the UCI_ShowWDL option.
        """
        if not self._has_wdl_option:
            raise UnsupportedFeatureError(
                "Your version of Stockfish isn't recent enough to have the UCI_ShowWDL option."
            )
        self._weaker_setting_warning("get_wdl_stats will still return full strength WDL stats")

        multiplier = await self._multiplier()
        lines = await self._search(f"go depth {self._depth}")
        wdl_stats = parse_wdl_stats(lines, multiplier)
        if wdl_stats is None or not get_as_tuple:
            return wdl_stats
        return tuple(wdl_stats)

    @_serialized
    async def get_perft(self, depth: int) -> PerftResult:
        """Count leaf nodes `depth` plies below the current position."""
        if not isinstance(depth, int) or isinstance(depth, bool):
            raise TypeError("depth must be an integer")
        if depth < 1:
            raise ValueError("depth must be an integer higher than 0")
        lines = await self._protocol.run(f"go perft {depth}", CommandFamily.PERFT)
        return parse_perft(lines)

    @_serialized
    async def benchmark(self, params: BenchmarkParameters | None = None) -> str:
        """Run the non-UCI `bench` command and return its Nodes/second line.

        Do not use this during a search.
        """
        params = params if isinstance(params, BenchmarkParameters) else BenchmarkParameters()
        lines = await self._protocol.run(params.command(), CommandFamily.BENCHMARK)
        return lines[-1]

    async def interrupt(self) -> None:
        """Ask the worker to stop the current search.

        Bypasses the command queue; the running operation still completes
        with the worker's `bestmove`.
        """
        await self._protocol.interrupt()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _multiplier(self, white_relative: bool = False) -> int:
        fen = await self._position.current_fen()
        return score_multiplier(side_to_move(fen), self._turn_perspective, white_relative)

    async def _resync_position(self) -> None:
        fen = await self._position.current_fen()
        await self._position.set_by_notation(fen, False)

    def _clear_info(self) -> None:
        self.info = ""

    def _weaker_setting_warning(self, message: str) -> None:
        if self._parameters.on_weaker_setting():
            logger.warning(
                "Stockfish is set to a weaker Elo or skill level, but " + message + "."
            )
