"""
Data-entry and confirmation dialogs as an explicit state machine.

A treatment is entered as carbs, then insulin; a profile switch as
percentage, then duration. Confirming the last entry sends a pre-check
command to the phone, which answers with a ConfirmAction prompt that the
wearer confirms or cancels. ``DialogFlow.dispatch`` is the only way the
state changes and returns the commands the transition wants sent.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from .constants import (
    DEFAULT_CONFIRM_TIMEOUT,
    CommandType,
    EntryRange,
    TempTargetPreset,
)
from .exceptions import InvalidTransitionError
from .models import Command, ConfirmPrompt

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    IDLE = "idle"
    ENTERING_CARBS = "entering_carbs"
    ENTERING_INSULIN = "entering_insulin"
    ENTERING_PERCENT = "entering_percent"
    ENTERING_DURATION = "entering_duration"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DONE = "done"
    CANCELLED = "cancelled"


class EventKind(str, Enum):
    START_TREATMENT = "start_treatment"
    START_PROFILE_SWITCH = "start_profile_switch"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    OK = "ok"
    BACK = "back"
    PROMPT_RECEIVED = "prompt_received"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    TICK = "tick"


class MenuAction(str, Enum):
    """Entries of the main menu."""

    TREATMENT = "treatment"
    TEMP_TARGET = "temp_target"
    PROFILE_SWITCH = "profile_switch"
    REFRESH_DATA = "refresh_data"


@dataclass(frozen=True)
class FlowEvent:
    kind: EventKind
    prompt: Optional[ConfirmPrompt] = None
    now: Optional[float] = None


@dataclass(frozen=True)
class NumberEntry:
    """One number entry dialog."""
    title: str
    unit: str
    field: str
    initial: float
    minimum: float
    maximum: float
    step: float

    def clamp(self, value: float) -> float:
        return min(self.maximum, max(self.minimum, value))


NUMBER_ENTRIES: Dict[FlowState, NumberEntry] = {
    FlowState.ENTERING_CARBS: NumberEntry("Carbs (g)", "g", "carbs", *EntryRange.CARBS),
    FlowState.ENTERING_INSULIN: NumberEntry("Insulin (U)", "U", "insulin", *EntryRange.INSULIN),
    FlowState.ENTERING_PERCENT: NumberEntry("Percent (%)", "%", "percentage", *EntryRange.PERCENT),
    FlowState.ENTERING_DURATION: NumberEntry("Duration (min)", "min", "duration", *EntryRange.DURATION),
}

TREATMENT_STEPS = [FlowState.ENTERING_CARBS, FlowState.ENTERING_INSULIN]
PROFILE_SWITCH_STEPS = [FlowState.ENTERING_PERCENT, FlowState.ENTERING_DURATION]

_FINISHED = (FlowState.IDLE, FlowState.DONE, FlowState.CANCELLED)


def temp_target_command(preset: TempTargetPreset) -> Command:
    """Pre-check command for a temp target preset."""
    return Command(
        command_type=CommandType.TEMP_TARGET_PRECHECK.value,
        payload={"command": TempTargetPreset(preset).value},
    )


def _json_number(value: float):
    return int(value) if float(value).is_integer() else value


class DialogFlow:
    """
    State machine for the wearer's dialogs.

    Back-navigation steps to the previous entry (or cancels from the first
    one). A pending confirmation is cancelled once ``confirm_timeout``
    seconds pass without an answer, checked on every TICK.
    """

    def __init__(
        self,
        confirm_timeout: float = DEFAULT_CONFIRM_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.confirm_timeout = confirm_timeout
        self._clock = clock
        self.state = FlowState.IDLE
        self.values: Dict[str, float] = {}
        self.steps: List[FlowState] = []
        self.command_type: Optional[str] = None
        self.prompt: Optional[ConfirmPrompt] = None
        self.awaiting_since: Optional[float] = None

    @property
    def active(self) -> bool:
        """True while a dialog covers the watch face."""
        return self.state not in _FINISHED

    @property
    def entry(self) -> Optional[NumberEntry]:
        return NUMBER_ENTRIES.get(self.state)

    @property
    def value(self) -> Optional[float]:
        entry = self.entry
        return self.values[entry.field] if entry else None

    # =========================================================================
    # Dispatch
    # =========================================================================

    def dispatch(self, event: FlowEvent) -> List[Command]:
        """
        Apply one event.

        Returns:
            Commands to send to the phone as a result of the transition

        Raises:
            InvalidTransitionError: If the event is not accepted in the current state
        """
        now = event.now if event.now is not None else self._clock()
        handler = getattr(self, f"_on_{event.kind.value}")
        previous = self.state
        commands = handler(event, now)
        if self.state != previous:
            logger.debug(
                "Dialog transition",
                extra={"from": previous.value, "to": self.state.value, "event": event.kind.value},
            )
        return commands

    def _reject(self, event: FlowEvent) -> InvalidTransitionError:
        return InvalidTransitionError(self.state.value, event.kind.value)

    def _start(self, event: FlowEvent, steps: List[FlowState], command_type: CommandType) -> List[Command]:
        if self.active:
            raise self._reject(event)
        self.steps = steps
        self.command_type = command_type.value
        self.values = {NUMBER_ENTRIES[s].field: NUMBER_ENTRIES[s].initial for s in steps}
        self.prompt = None
        self.awaiting_since = None
        self.state = steps[0]
        return []

    def _on_start_treatment(self, event: FlowEvent, now: float) -> List[Command]:
        return self._start(event, TREATMENT_STEPS, CommandType.BOLUS_PRECHECK)

    def _on_start_profile_switch(self, event: FlowEvent, now: float) -> List[Command]:
        return self._start(event, PROFILE_SWITCH_STEPS, CommandType.PROFILE_SWITCH_PRECHECK)

    def _adjust(self, event: FlowEvent, direction: int) -> List[Command]:
        entry = self.entry
        if entry is None:
            raise self._reject(event)
        self.values[entry.field] = entry.clamp(self.values[entry.field] + direction * entry.step)
        return []

    def _on_increment(self, event: FlowEvent, now: float) -> List[Command]:
        return self._adjust(event, 1)

    def _on_decrement(self, event: FlowEvent, now: float) -> List[Command]:
        return self._adjust(event, -1)

    def _on_ok(self, event: FlowEvent, now: float) -> List[Command]:
        if self.entry is None:
            raise self._reject(event)

        index = self.steps.index(self.state)
        if index + 1 < len(self.steps):
            self.state = self.steps[index + 1]
            return []

        payload = {field: _json_number(value) for field, value in self.values.items()}
        if self.command_type == CommandType.PROFILE_SWITCH_PRECHECK.value:
            payload["timeShift"] = 0
        self.state = FlowState.AWAITING_CONFIRMATION
        self.awaiting_since = now
        return [Command(command_type=self.command_type, payload=payload)]

    def _on_back(self, event: FlowEvent, now: float) -> List[Command]:
        if self.state == FlowState.AWAITING_CONFIRMATION:
            return self._on_cancel(event, now)
        if self.entry is None:
            raise self._reject(event)

        index = self.steps.index(self.state)
        self.state = self.steps[index - 1] if index > 0 else FlowState.CANCELLED
        return []

    def _on_prompt_received(self, event: FlowEvent, now: float) -> List[Command]:
        if event.prompt is None:
            raise self._reject(event)
        self.prompt = event.prompt
        self.state = FlowState.AWAITING_CONFIRMATION
        self.awaiting_since = now
        logger.info("Confirmation requested by phone", extra={"return_command": event.prompt.return_command_type})
        return []

    def _on_confirm(self, event: FlowEvent, now: float) -> List[Command]:
        if self.state != FlowState.AWAITING_CONFIRMATION or self.prompt is None:
            raise self._reject(event)
        prompt = self.prompt
        self.state = FlowState.DONE
        self.prompt = None
        return [Command(command_type=prompt.return_command_type, payload=prompt.return_command_json)]

    def _on_cancel(self, event: FlowEvent, now: float) -> List[Command]:
        if not self.active:
            raise self._reject(event)
        self.state = FlowState.CANCELLED
        self.prompt = None
        return []

    def _on_tick(self, event: FlowEvent, now: float) -> List[Command]:
        if (
            self.state == FlowState.AWAITING_CONFIRMATION
            and self.awaiting_since is not None
            and now - self.awaiting_since >= self.confirm_timeout
        ):
            logger.info("Confirmation timed out")
            self.state = FlowState.CANCELLED
            self.prompt = None
        return []
