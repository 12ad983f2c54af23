"""
Engine option (UCI `setoption`) state and validation.

Keeps the client-side copy of the worker's options, validates proposed
values against each option's declared type and bounds, and applies the
cross-option rules Stockfish needs: the strength-limiting mode follows
whichever of `Skill Level` / `UCI_Elo` was changed, and `Threads` is always
written before `Hash`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, NamedTuple, TypedDict

from .exceptions import InvalidParameterValueError, UnknownParameterError
from .protocol import ProtocolEngine

logger = logging.getLogger(__name__)

StockfishParameters = TypedDict(
    "StockfishParameters",
    {
        "Debug Log File": str,
        "Contempt": int,
        "Min Split Depth": int,
        "Threads": int,
        "Ponder": bool,
        "Hash": int,
        "MultiPV": int,
        "Skill Level": int,
        "Move Overhead": int,
        "Minimum Thinking Time": int,
        "Slow Mover": int,
        "UCI_Chess960": bool,
        "UCI_LimitStrength": bool,
        "UCI_Elo": int,
        "UCI_ShowWDL": bool,
    },
    total=False,
)


class ParamSpec(NamedTuple):
    """Declared type and inclusive bounds of an engine option."""

    type: type
    minimum: int | None = None
    maximum: int | None = None


# Based off the Stockfish source code (src/ucioption.cpp)
PARAM_RESTRICTIONS: dict[str, ParamSpec] = {
    "Debug Log File": ParamSpec(str),
    "Threads": ParamSpec(int, 1, 1024),
    "Hash": ParamSpec(int, 1, 2048),
    "Ponder": ParamSpec(bool),
    "MultiPV": ParamSpec(int, 1, 500),
    "Skill Level": ParamSpec(int, 0, 20),
    "Move Overhead": ParamSpec(int, 0, 5000),
    "Slow Mover": ParamSpec(int, 10, 1000),
    "UCI_Chess960": ParamSpec(bool),
    "UCI_LimitStrength": ParamSpec(bool),
    "UCI_Elo": ParamSpec(int, 1320, 3190),
    "Contempt": ParamSpec(int, -100, 100),
    "Min Split Depth": ParamSpec(int, 0, 12),
    "Minimum Thinking Time": ParamSpec(int, 0, 5000),
    "UCI_ShowWDL": ParamSpec(bool),
}

DEFAULT_PARAMETERS: StockfishParameters = {
    "Debug Log File": "",
    "Contempt": 0,
    "Min Split Depth": 0,
    "Threads": 1,
    "Ponder": False,
    "Hash": 16,
    "MultiPV": 1,
    "Skill Level": 20,
    "Move Overhead": 10,
    "Minimum Thinking Time": 20,
    "Slow Mover": 100,
    "UCI_Chess960": False,
    "UCI_LimitStrength": False,
    "UCI_Elo": 1350,
}

FULL_STRENGTH_SKILL_LEVEL = 20


def validate_parameter(name: str, value: Any) -> None:
    """Check a single option value against its declared type and bounds.

    Raises:
        UnknownParameterError: If the option is not declared.
        InvalidParameterValueError: On a type mismatch or bound violation.
    """
    spec = PARAM_RESTRICTIONS.get(name)
    if spec is None:
        raise UnknownParameterError(name)
    # bool is a subclass of int, so compare exact types
    if type(value) is not spec.type:
        raise InvalidParameterValueError(name, value, f"not of type {spec.type.__name__}")
    if spec.minimum is not None and value < spec.minimum:
        raise InvalidParameterValueError(name, value, f"below minimum value of {spec.minimum}")
    if spec.maximum is not None and value > spec.maximum:
        raise InvalidParameterValueError(name, value, f"over maximum value of {spec.maximum}")


def format_option_value(value: Any) -> str:
    """Render a value the way `setoption` expects it (booleans lowercase)."""
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


class ParameterManager:
    """
    Client-side view of the worker's options.

    Every value in the live set passed validation when it was written.
    Unknown names are rejected once the live set has been populated.
    """

    def __init__(
        self,
        protocol: ProtocolEngine,
        resync: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            protocol: Engine used to send `setoption` commands.
            resync: Called after an update to re-send the current position.
        """
        self._protocol = protocol
        self._resync = resync
        self._parameters: StockfishParameters = {}

    def get(self) -> StockfishParameters:
        """Return a copy of the live option set."""
        return copy.deepcopy(self._parameters)

    def value(self, name: str) -> Any:
        """Return the live value of one option."""
        return self._parameters[name]

    def plan_update(self, parameters: Mapping[str, Any]) -> list[tuple[str, Any]]:
        """Validate an update batch and resolve the order of writes.

        No command is sent; errors are raised before anything changes.

        Returns:
            (name, value) pairs in the order they must be written.
        """
        new_values = dict(parameters)

        for name, value in new_values.items():
            if self._parameters and name not in self._parameters:
                raise UnknownParameterError(name)
            validate_parameter(name, value)

        # Changing only one of Skill Level / UCI_Elo selects that strength mode
        if ("Skill Level" in new_values) != ("UCI_Elo" in new_values) and (
            "UCI_LimitStrength" not in new_values
        ):
            new_values["UCI_LimitStrength"] = "UCI_Elo" in new_values

        ordered: list[tuple[str, Any]] = []
        if "Threads" in new_values:
            # Hash is allocated per thread, so it must follow Threads
            ordered.append(("Threads", new_values.pop("Threads")))
            hash_value = new_values.pop("Hash", self._parameters.get("Hash"))
            if hash_value is not None:
                ordered.append(("Hash", hash_value))
        ordered.extend(new_values.items())
        return ordered

    async def update(self, parameters: Mapping[str, Any] | None) -> None:
        """Update the worker's options and re-send the current position.

        Args:
            parameters: Option names mapped to their new values.

        Raises:
            UnknownParameterError: If a name is not a known option.
            InvalidParameterValueError: If a value has the wrong type or range.
        """
        if not parameters:
            return
        plan = self.plan_update(parameters)

        async with self._protocol.queue.admit():
            for name, value in plan:
                await self.set_option(name, value)
            # Some options (e.g. UCI_Chess960) change how the position is read
            if self._resync is not None:
                await self._resync()

    async def reset(self) -> None:
        """Restore every option to its default value."""
        await self.update(DEFAULT_PARAMETERS)

    async def set_option(self, name: str, value: Any, remember: bool = True) -> None:
        """Write a single option and wait until the worker has applied it.

        Args:
            name: Option name.
            value: New value.
            remember: Whether to record the value in the live set.
        """
        validate_parameter(name, value)
        async with self._protocol.queue.admit():
            await self._protocol.send(f"setoption name {name} value {format_option_value(value)}")
            await self._protocol.await_ready()
        if remember:
            self._parameters[name] = value

    def on_weaker_setting(self) -> bool:
        """Whether the worker is configured below full strength."""
        return bool(
            self._parameters.get("UCI_LimitStrength")
            or self._parameters.get("Skill Level", FULL_STRENGTH_SKILL_LEVEL)
            < FULL_STRENGTH_SKILL_LEVEL
        )
