"""
Parsers for raw Stockfish output batches.

Each function takes the lines collected for one command and turns them
into a typed value. Scores are multiplied by a perspective multiplier
computed once per call (see `score_multiplier`).

Example `go depth 10` tail:
    info depth 10 seldepth 14 multipv 1 score cp 35 wdl 62 916 22 nodes 12110 nps 605500 time 20 pv e2e4 e7e5
    bestmove e2e4 ponder e7e5
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from .exceptions import DuplicateMoveError
from .protocol import BEST_MOVE_TOKEN, STATIC_EVAL_PREFIXES
from .results import Evaluation, PerftResult, TopMove

logger = logging.getLogger(__name__)

NO_MOVE_TOKEN = "(none)"
WHITE_TO_MOVE = "w"
BOARD_GRID_LINES = 17  # 9 borders + 8 ranks
BOARD_WIDTH = 33  # "| r | n | b | q | k | b | n | r |"

# Matches: "e2e4: 600" and "e7e8q: 1"
PERFT_LINE_PATTERN = re.compile(r"^([a-h][1-8][a-h][1-8][qrbn]?):\s*(\d+)$")


def side_to_move(fen: str) -> str:
    """Return the side-to-move field ("w" or "b") of a FEN."""
    fields = fen.split()
    return fields[1] if len(fields) > 1 else WHITE_TO_MOVE


def score_multiplier(side: str, turn_perspective: bool, white_relative: bool = False) -> int:
    """Sign to apply to every score parsed from one response.

    Args:
        side: Side to move in the searched position ("w" or "b").
        turn_perspective: True for scores relative to the side to move,
            False for scores relative to White.
        white_relative: Whether the worker reports this score from White's
            side (static eval) instead of the side to move (search).
    """
    if side == WHITE_TO_MOVE:
        return 1
    if white_relative:
        return -1 if turn_perspective else 1
    return 1 if turn_perspective else -1


def pick(tokens: Sequence[str], marker: str, offset: int = 1) -> str:
    """Return the token `offset` places after `marker`."""
    return tokens[tokens.index(marker) + offset]


def parse_best_move(lines: Sequence[str]) -> str | None:
    """Extract the best move from a search batch (None on mate or stalemate)."""
    tokens = lines[-1].split()
    if len(tokens) < 2 or tokens[0] != BEST_MOVE_TOKEN or tokens[1] == NO_MOVE_TOKEN:
        return None
    return tokens[1]


def parse_status_line(lines: Sequence[str]) -> str:
    """Return the last line printed before `bestmove`."""
    return lines[-2] if len(lines) > 1 else ""


def parse_evaluation(lines: Sequence[str], multiplier: int) -> Evaluation:
    """Read the score of the last `info ... score` line of a search batch."""
    scored = [line.split() for line in lines if line.startswith("info") and " score " in line]
    if not scored:
        raise ValueError("No score found in search output")
    tokens = scored[-1]
    score_type, value = pick(tokens, "score"), pick(tokens, "score", 2)
    return Evaluation(type=score_type, value=int(value) * multiplier)


def parse_top_moves(
    lines: Sequence[str],
    multiplier: int,
    *,
    depth: int,
    num_nodes: int = 0,
    verbose: bool = False,
) -> list[TopMove]:
    """Collect the MultiPV lines of the final iteration of a search.

    Lines are scanned backwards from `bestmove`. Scanning stops at the first
    line that is not a MultiPV line, or when searching by depth and the
    line's depth differs from `depth`, or when searching by nodes and the
    line covers fewer than `num_nodes` nodes.
    """
    top_moves: list[TopMove] = []

    for line in reversed(lines):
        tokens = line.split()
        if not tokens:
            break
        if tokens[0] == BEST_MOVE_TOKEN:
            if len(tokens) > 1 and tokens[1] == NO_MOVE_TOKEN:
                return []
            continue

        if "multipv" not in tokens or "depth" not in tokens or "pv" not in tokens:
            break
        if num_nodes == 0 and int(pick(tokens, "depth")) != depth:
            break
        if num_nodes > 0 and int(pick(tokens, "nodes")) < num_nodes:
            break

        move = TopMove(
            move=pick(tokens, "pv"),
            centipawn=int(pick(tokens, "cp")) * multiplier if "cp" in tokens else None,
            mate=int(pick(tokens, "mate")) * multiplier if "mate" in tokens else None,
        )
        if verbose:
            move.selective_depth = int(pick(tokens, "seldepth"))
            move.time = int(pick(tokens, "time"))
            move.nodes = int(pick(tokens, "nodes"))
            move.nodes_per_second = int(pick(tokens, "nps"))
            move.multipv_line = int(pick(tokens, "multipv"))
            if "wdl" in tokens:
                wdl = tuple(int(pick(tokens, "wdl", i)) for i in (1, 2, 3))
                move.wdl = wdl if multiplier == 1 else wdl[::-1]

        top_moves.insert(0, move)

    return top_moves


def parse_wdl_stats(lines: Sequence[str], multiplier: int = 1) -> list[int] | None:
    """Read win/draw/loss permille from the last principal-variation line.

    Returns None when the game is over.
    """
    if lines[-1].startswith(f"{BEST_MOVE_TOKEN} {NO_MOVE_TOKEN}"):
        return None
    candidates = [line.split() for line in lines if " multipv 1 " in line and " wdl " in line]
    if not candidates:
        return None
    tokens = candidates[-1]
    wdl = [int(pick(tokens, "wdl", i)) for i in (1, 2, 3)]
    return wdl if multiplier == 1 else wdl[::-1]


def parse_perft(lines: Sequence[str]) -> PerftResult:
    """Collect per-move counts and the total from `go perft` output.

    Raises:
        DuplicateMoveError: If a move is reported twice.
    """
    result = PerftResult()
    for line in lines:
        if "searched" in line:
            result.nodes = int(line.split(":")[1])
            break
        match = PERFT_LINE_PATTERN.match(line)
        if match is None:
            logger.debug(f"Ignoring perft line: {line}")
            continue
        move, count = match.group(1), int(match.group(2))
        if move in result.moves:
            raise DuplicateMoveError(f"Move {move} reported twice in perft output")
        result.moves[move] = count
    return result


def parse_static_eval(lines: Sequence[str], multiplier: int) -> float | None:
    """Read the final static evaluation in pawns (None when in check)."""
    for line in lines:
        if line.startswith(STATIC_EVAL_PREFIXES):
            static_eval = line.split()[2]
            if static_eval == "none":
                return None
            return float(static_eval) * multiplier
    raise ValueError("No final evaluation found in eval output")


def parse_fen(lines: Sequence[str]) -> str:
    """Return the FEN printed by the `d` command."""
    for line in lines:
        tokens = line.split(" ")
        if tokens[0] == "Fen:":
            return " ".join(tokens[1:])
    raise ValueError("No FEN found in board output")


def parse_board_visual(lines: Sequence[str], perspective_white: bool = True) -> str:
    """Render the board printed by the `d` command.

    From Black's perspective each row is mirrored and the row order is
    reversed; rank numbers stay on the right.
    """
    grid: list[str] = []
    coordinates: str | None = None

    for line in lines:
        if len(grid) < BOARD_GRID_LINES:
            if "+" in line or "|" in line:
                if perspective_white:
                    grid.append(line)
                else:
                    board_part, number_part = line[:BOARD_WIDTH], line[BOARD_WIDTH:]
                    grid.append(f"{board_part[::-1]}{number_part}")
        elif "a   b   c" in line:
            coordinates = line if perspective_white else line[::-1]
            break
        else:
            break

    if not perspective_white:
        grid.reverse()
    if coordinates is not None:
        grid.append(f"  {coordinates}")
    return "\n".join(grid) + "\n"


def parse_handshake(lines: Sequence[str]) -> tuple[str, bool]:
    """Read the version token and WDL support from the `uci` response.

    Returns:
        (version token, whether the UCI_ShowWDL option is offered)
    """
    version_text = ""
    has_wdl = False
    for line in lines:
        tokens = line.split(" ")
        if line.startswith("id name") and len(tokens) > 3:
            version_text = tokens[3]
        elif "UCI_ShowWDL" in tokens:
            has_wdl = True
    return version_text, has_wdl
