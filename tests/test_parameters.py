"""
Unit tests for engine option validation and update ordering.
"""

import asyncio

import pytest

from fake_stockfish import ScriptedTransport
from stockfish_session.exceptions import (
    InvalidParameterValueError,
    ReadTimeoutError,
    UnknownParameterError,
)
from stockfish_session.parameters import (
    DEFAULT_PARAMETERS,
    ParameterManager,
    format_option_value,
    validate_parameter,
)
from stockfish_session.protocol import ProtocolEngine


def make_manager() -> tuple[ParameterManager, ScriptedTransport]:
    transport = ScriptedTransport({"isready": ["readyok"]})
    return ParameterManager(ProtocolEngine(transport)), transport


def setoption_commands(transport: ScriptedTransport) -> list[str]:
    return [command for command in transport.sent if command.startswith("setoption")]


class TestValidateParameter:
    """Tests for single-value validation."""

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("Threads", 4),
            ("Hash", 2048),
            ("Skill Level", 0),
            ("UCI_Elo", 1320),
            ("UCI_Chess960", True),
            ("Debug Log File", "/tmp/sf.log"),
            ("Contempt", -100),
        ],
    )
    def test_accepts_valid_values(self, name: str, value: object) -> None:
        """Values of the right type within bounds pass."""
        validate_parameter(name, value)

    def test_unknown_name(self) -> None:
        """Undeclared option names are rejected."""
        with pytest.raises(UnknownParameterError, match="'Nonsense' is not a key that exists."):
            validate_parameter("Nonsense", 1)

    def test_bool_is_not_int(self) -> None:
        """A bool is rejected for an integer option."""
        with pytest.raises(InvalidParameterValueError, match="not of type int"):
            validate_parameter("Threads", True)

    def test_int_is_not_bool(self) -> None:
        """An int is rejected for a boolean option."""
        with pytest.raises(InvalidParameterValueError, match="not of type bool"):
            validate_parameter("Ponder", 1)

    def test_below_minimum(self) -> None:
        """Values under the lower bound are rejected."""
        with pytest.raises(InvalidParameterValueError, match="below minimum value of 1320"):
            validate_parameter("UCI_Elo", 1000)

    def test_over_maximum(self) -> None:
        """Values over the upper bound are rejected."""
        with pytest.raises(InvalidParameterValueError, match="over maximum value of 20") as error:
            validate_parameter("Skill Level", 21)

        assert error.value.name == "Skill Level"
        assert error.value.value == 21

    def test_format_option_value(self) -> None:
        """Booleans are written in lowercase."""
        assert format_option_value(True) == "true"
        assert format_option_value(False) == "false"
        assert format_option_value(64) == "64"


class TestPlanUpdate:
    """Tests for resolving the order and implied values of an update."""

    def test_threads_before_hash(self) -> None:
        """Threads is written first, followed by Hash."""
        manager, _ = make_manager()

        plan = manager.plan_update({"Hash": 64, "MultiPV": 3, "Threads": 4})

        assert plan == [("Threads", 4), ("Hash", 64), ("MultiPV", 3)]

    def test_threads_rewrites_live_hash(self) -> None:
        """Changing only Threads re-sends the current Hash value."""
        manager, _ = make_manager()
        asyncio.run(manager.reset())

        plan = manager.plan_update({"Threads": 2})

        assert plan == [("Threads", 2), ("Hash", DEFAULT_PARAMETERS["Hash"])]

    def test_skill_level_alone_disables_limit_strength(self) -> None:
        """Setting only Skill Level turns off UCI_LimitStrength."""
        manager, _ = make_manager()

        plan = manager.plan_update({"Skill Level": 5})

        assert ("UCI_LimitStrength", False) in plan

    def test_elo_alone_enables_limit_strength(self) -> None:
        """Setting only UCI_Elo turns on UCI_LimitStrength."""
        manager, _ = make_manager()

        plan = manager.plan_update({"UCI_Elo": 1500})

        assert ("UCI_LimitStrength", True) in plan

    def test_explicit_limit_strength_wins(self) -> None:
        """An explicit UCI_LimitStrength is not overridden."""
        manager, _ = make_manager()

        plan = manager.plan_update({"UCI_Elo": 1500, "UCI_LimitStrength": False})

        assert dict(plan)["UCI_LimitStrength"] is False

    def test_both_strength_options_leave_limit_alone(self) -> None:
        """Setting both Skill Level and UCI_Elo implies nothing."""
        manager, _ = make_manager()

        plan = manager.plan_update({"UCI_Elo": 1500, "Skill Level": 10})

        assert "UCI_LimitStrength" not in dict(plan)


class TestParameterManager:
    """Tests for writing options to the worker."""

    def test_reset_sends_defaults(self) -> None:
        """reset writes every default and records it."""
        manager, transport = make_manager()

        asyncio.run(manager.reset())

        assert manager.get() == DEFAULT_PARAMETERS
        commands = setoption_commands(transport)
        assert commands[0] == "setoption name Threads value 1"
        assert commands[1] == "setoption name Hash value 16"
        assert "setoption name UCI_Chess960 value false" in commands
        assert len(commands) == len(DEFAULT_PARAMETERS)

    def test_each_write_waits_for_ready(self) -> None:
        """Every setoption is followed by an isready round trip."""
        manager, transport = make_manager()

        asyncio.run(manager.set_option("MultiPV", 2))

        assert transport.log == [
            "> setoption name MultiPV value 2",
            "> isready",
            "< readyok",
        ]

    def test_unconfirmed_write_not_recorded(self) -> None:
        """A value is only recorded once the worker has acknowledged it."""
        transport = ScriptedTransport()
        manager = ParameterManager(ProtocolEngine(transport))

        with pytest.raises(ReadTimeoutError):
            asyncio.run(manager.set_option("MultiPV", 2))

        assert transport.sent == ["setoption name MultiPV value 2", "isready"]
        assert "MultiPV" not in manager.get()

    def test_get_returns_copy(self) -> None:
        """Mutating the returned mapping does not change the live set."""
        manager, _ = make_manager()
        asyncio.run(manager.reset())

        snapshot = manager.get()
        snapshot["Threads"] = 64

        assert manager.value("Threads") == 1

    def test_unknown_key_after_reset(self) -> None:
        """Options outside the live set are rejected without writing anything."""
        manager, transport = make_manager()
        asyncio.run(manager.reset())
        transport.sent.clear()

        with pytest.raises(UnknownParameterError):
            asyncio.run(manager.update({"Threads": 2, "UCI_ShowWDL": True}))

        assert transport.sent == []

    def test_invalid_value_writes_nothing(self) -> None:
        """Validation happens before the first command is sent."""
        manager, transport = make_manager()
        asyncio.run(manager.reset())
        transport.sent.clear()

        with pytest.raises(InvalidParameterValueError):
            asyncio.run(manager.update({"MultiPV": 2, "Skill Level": 99}))

        assert transport.sent == []
        assert manager.value("MultiPV") == 1

    def test_unremembered_option(self) -> None:
        """Options written with remember=False stay out of the live set."""
        manager, transport = make_manager()
        asyncio.run(manager.reset())

        asyncio.run(manager.set_option("UCI_ShowWDL", True, remember=False))

        assert "setoption name UCI_ShowWDL value true" in transport.sent
        assert "UCI_ShowWDL" not in manager.get()

    def test_update_calls_resync(self) -> None:
        """The resync hook runs after the options are written."""
        transport = ScriptedTransport({"isready": ["readyok"]})
        calls: list[str] = []

        async def resync() -> None:
            calls.append(transport.sent[-2])

        manager = ParameterManager(ProtocolEngine(transport), resync=resync)
        asyncio.run(manager.update({"UCI_Chess960": True}))

        assert calls == ["setoption name UCI_Chess960 value true"]

    def test_empty_update_is_noop(self) -> None:
        """An empty or missing update sends nothing."""
        manager, transport = make_manager()

        asyncio.run(manager.update({}))
        asyncio.run(manager.update(None))

        assert transport.sent == []

    def test_weaker_setting(self) -> None:
        """Skill below 20 or a strength limit counts as weaker."""
        manager, _ = make_manager()
        asyncio.run(manager.reset())
        assert not manager.on_weaker_setting()

        asyncio.run(manager.update({"Skill Level": 10}))
        assert manager.on_weaker_setting()

        asyncio.run(manager.update({"Skill Level": 20}))
        assert not manager.on_weaker_setting()

        asyncio.run(manager.update({"UCI_Elo": 2000}))
        assert manager.on_weaker_setting()
