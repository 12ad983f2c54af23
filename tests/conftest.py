"""Pytest configuration for stockfish-session tests."""

import os
import shutil
import sys
from pathlib import Path

import pytest

# Add the src directory to the Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from fake_stockfish import FakeStockfish, ScriptedTransport  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires a Stockfish binary)"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless --integration flag is passed."""
    run_integration = config.getoption("--integration", default=False)
    if not run_integration:
        skip_integration = pytest.mark.skip(reason="need --integration option to run")
        for item in items:
            if "integration" in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom command line options."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests (requires a Stockfish binary)",
    )


@pytest.fixture
def stockfish_available() -> bool:
    """Check if Stockfish binary is available."""
    stockfish_path = os.environ.get("STOCKFISH_PATH", "stockfish")
    return shutil.which(stockfish_path) is not None


@pytest.fixture
def fake_worker() -> FakeStockfish:
    """A scripted Stockfish 16.1 worker."""
    return FakeStockfish()


@pytest.fixture
def scripted_transport() -> ScriptedTransport:
    """Transport answering uci, isready and a depth-1 search."""
    return ScriptedTransport(
        {
            "uci": ["id name Stockfish 16", "uciok"],
            "isready": ["readyok"],
            "go depth 1": ["info depth 1 score cp 20 pv e2e4", "bestmove e2e4"],
            "go depth 2": ["info depth 2 score cp 30 pv d2d4", "bestmove d2d4"],
        }
    )

