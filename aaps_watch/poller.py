"""
Mailbox polling loop for the watch face.

Every poll cycle drains the event files, refreshes the status snapshot and
merges any pending history batches into the watch face state. A slower
housekeeping cycle ages samples out of the window and writes optional
debug logs. All state mutation happens inside these calls, one at a time.
"""

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .command_client import CommandClient
from .config import Settings
from .constants import (
    CONFIRM_ACTION_EVENT,
    DEBUG_FILE_PREFIX,
    STATUS_FILE,
    CommandType,
    TempTargetPreset,
)
from .exceptions import MailboxReadError
from .face_formatter import format_face_view
from .flows import DialogFlow, EventKind, FlowEvent, MenuAction, temp_target_command
from .mailbox import FileMailbox
from .models import Command, ConfirmPrompt, FaceView, SampleKind
from .state import WatchFaceState

logger = logging.getLogger(__name__)


@dataclass
class PollerStatistics:
    """Statistics for polling loop monitoring."""
    total_cycles: int = 0
    events_processed: int = 0
    prompts_received: int = 0
    snapshot_updates: int = 0
    history_batches: int = 0
    samples_merged: int = 0
    read_errors: int = 0
    redraws: int = 0
    last_cycle_time: Optional[str] = None
    last_error: Optional[str] = None


class WatchFacePoller:
    """
    Drives the watch face: polls the mailbox, owns the state and dialogs.

    Args:
        settings: Application settings
        state: Watch face state (a new one is created if omitted)
        mailbox: Mailbox to poll (defaults to ``settings.storage_dir``)
        commands: Client for the phone's command bridge
        flow: Dialog state machine
        on_redraw: Called with the face view whenever the face needs redrawing
        clock: Returns the current time in seconds since the epoch
    """

    def __init__(
        self,
        settings: Settings,
        state: Optional[WatchFaceState] = None,
        mailbox: Optional[FileMailbox] = None,
        commands: Optional[CommandClient] = None,
        flow: Optional[DialogFlow] = None,
        on_redraw: Optional[Callable[[FaceView], None]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.state = state or WatchFaceState(settings.retention_window_ms)
        self.mailbox = mailbox or FileMailbox(settings.storage_dir)
        self.commands = commands or CommandClient(settings)
        self.flow = flow or DialogFlow(settings.confirm_timeout_seconds, clock=clock)
        self.on_redraw = on_redraw
        self.stats = PollerStatistics()
        self._clock = clock
        self._last_draw_minute: Optional[int] = None
        self._debug_trace: List[str] = []
        self._debug_log_index = 0

        logger.info(
            "Poller initialized",
            extra={
                "storage_dir": str(self.mailbox.directory),
                "bridge_url": settings.bridge_url,
                "poll_interval": settings.poll_interval,
            }
        )

    def now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    def trace(self, line: str) -> None:
        """Add a line to the debug trace written by housekeeping."""
        if self.settings.debug_logs > 0:
            self._debug_trace.append(line)

    # =========================================================================
    # Poll Cycle
    # =========================================================================

    def start(self) -> None:
        """Request a full resync from the phone and run a first cycle."""
        if self.settings.request_initial_data:
            self.commands.request_initial_data()
        self.run_once()

    def run_once(self) -> bool:
        """
        Execute a single poll cycle.

        Returns:
            True if the face was redrawn
        """
        self.stats.total_cycles += 1
        self.stats.last_cycle_time = datetime.now().isoformat()
        now_ms = self.now_ms()

        needs_redraw = self._minute() != self._last_draw_minute
        self.process_events()
        needs_redraw = self.update_current_data(now_ms) or needs_redraw
        needs_redraw = self.check_for_new_history(now_ms) or needs_redraw
        self.dispatch(FlowEvent(EventKind.TICK))

        if needs_redraw:
            return self.draw()
        return False

    def process_events(self) -> int:
        """
        Drain the event files and handle each event.

        Returns:
            Number of events handled
        """
        events = self.mailbox.drain_events()
        for event in events:
            self._handle_event(event)
        self.stats.events_processed += len(events)
        return len(events)

    def _handle_event(self, event: Dict[str, Any]) -> None:
        event_type = event.get("eventType")
        if event_type != CONFIRM_ACTION_EVENT:
            logger.info("Ignoring unexpected event", extra={"event_type": event_type})
            return

        try:
            prompt = ConfirmPrompt.model_validate(event)
        except ValidationError as e:
            logger.warning("Ignoring malformed confirmation event", extra={"error": str(e)})
            return

        self.stats.prompts_received += 1
        self.dispatch(FlowEvent(EventKind.PROMPT_RECEIVED, prompt=prompt))

    def update_current_data(self, now_ms: int) -> bool:
        """
        Refresh the status snapshot from the status file.

        Returns:
            True if the snapshot was replaced
        """
        try:
            record = self.mailbox.read_json(STATUS_FILE)
        except MailboxReadError as e:
            self._read_failed(e)
            return False

        if not isinstance(record, dict):
            return False

        old_ts = self.state.snapshot.ts
        if not self.state.update_snapshot(record, now_ms):
            return False

        self.stats.snapshot_updates += 1
        self.trace(f"snapshot: old ts: {old_ts}, new ts: {self.state.snapshot.ts}")
        return True

    def check_for_new_history(self, now_ms: int) -> bool:
        """
        Read-and-clear the history files and merge their batches.

        A history file is ``{"data": [...]}`` (a bare list is accepted too).

        Returns:
            True if any history file was consumed
        """
        consumed = False
        for kind in SampleKind:
            try:
                content = self.mailbox.take_json(kind.history_file)
            except MailboxReadError as e:
                self._read_failed(e)
                continue
            if content is None:
                continue

            records = content.get("data", []) if isinstance(content, dict) else content
            if not isinstance(records, list):
                logger.warning("History file has no data list", extra={"file": kind.history_file})
                continue

            merged = self.state.merge_history(kind, records, now_ms)
            consumed = True
            self.stats.history_batches += 1
            self.stats.samples_merged += merged
            self.trace(f"history: {kind.value} merged {merged}, buffered {len(self.state.buffer(kind))}")
        return consumed

    def _read_failed(self, error: MailboxReadError) -> None:
        # Treated as "no new data"; the next cycle reads again
        logger.error(error.full_message)
        self.stats.read_errors += 1
        self.stats.last_error = error.full_message

    # =========================================================================
    # Drawing
    # =========================================================================

    def _minute(self) -> int:
        return int(self._clock() // 60)

    def face_view(self) -> FaceView:
        return format_face_view(self.state, self.settings, self.now_ms(), self.flow.active)

    def draw(self) -> bool:
        """
        Redraw the face unless a dialog covers it.

        Returns:
            True if the face was redrawn
        """
        if self.flow.active:
            return False

        self._last_draw_minute = self._minute()
        view = self.face_view()
        self.stats.redraws += 1
        if self.on_redraw is not None:
            self.on_redraw(view)
        return True

    # =========================================================================
    # User Actions
    # =========================================================================

    def dispatch(self, event: FlowEvent) -> List[Command]:
        """Feed an event to the dialog flow and send the commands it emits."""
        was_active = self.flow.active
        commands = self.flow.dispatch(event)
        for command in commands:
            self.commands.send_command(command)
        if was_active and not self.flow.active:
            self.draw()
        return commands

    def select_menu(self, action: MenuAction, preset: Optional[TempTargetPreset] = None) -> List[Command]:
        """
        Handle a main menu selection.

        Args:
            action: Selected menu entry
            preset: Temp target preset, required for ``MenuAction.TEMP_TARGET``

        Returns:
            Commands sent directly by the selection
        """
        action = MenuAction(action)
        if action == MenuAction.TREATMENT:
            return self.dispatch(FlowEvent(EventKind.START_TREATMENT))
        if action == MenuAction.PROFILE_SWITCH:
            return self.dispatch(FlowEvent(EventKind.START_PROFILE_SWITCH))
        if action == MenuAction.TEMP_TARGET:
            if preset is None:
                raise ValueError("A temp target preset is required")
            command = temp_target_command(preset)
            self.commands.send_command(command)
            return [command]

        self.refresh_data()
        return [Command(command_type=CommandType.REQUEST_INITIAL_DATA.value, payload={})]

    def refresh_data(self) -> None:
        """Mark history stale and ask the phone for a full resync."""
        self.state.mark_stale()
        self.commands.request_initial_data()
        self.draw()

    # =========================================================================
    # Housekeeping
    # =========================================================================

    def housekeeping(self) -> None:
        """Age samples out of the window and write the rotating debug log."""
        now_ms = self.now_ms()
        self.state.evict(now_ms)

        if self.settings.debug_logs <= 0:
            return

        self._debug_log_index = (self._debug_log_index + 1) % self.settings.debug_logs
        name = f"{DEBUG_FILE_PREFIX}{self._debug_log_index}"
        basals = json.dumps(self.state.history(SampleKind.BASALS))
        trace = "\n".join(self._debug_trace)
        self.mailbox.write_text(name, f"{now_ms}\n\n{basals} \n\n{trace}\n")
        self._debug_trace = []
        logger.debug("Wrote debug log", extra={"file": name})

    def get_statistics(self) -> dict:
        stats = dict(vars(self.stats))
        stats["commands"] = dict(vars(self.commands.stats))
        return stats

    def run(self) -> None:
        """
        Run the polling loop until interrupted.

        Polls every ``poll_interval`` seconds and runs housekeeping every
        ``housekeeping_interval`` seconds.
        """
        logger.info(f"Starting watch face poller on {self.mailbox.directory}")
        logger.info(f"Poll interval: {self.settings.poll_interval} seconds")

        self.start()
        last_housekeeping = self._clock()

        while True:
            try:
                time.sleep(self.settings.poll_interval)
                self.run_once()

                if self._clock() - last_housekeeping >= self.settings.housekeeping_interval:
                    self.housekeeping()
                    last_housekeeping = self._clock()

            except KeyboardInterrupt:
                logger.info("Shutting down poller...")
                self._log_final_stats()
                break

            except Exception as e:
                logger.error(f"Unexpected error in poll loop: {e}", exc_info=True)
                self.stats.last_error = str(e)

    def _log_final_stats(self) -> None:
        """Log final statistics on shutdown."""
        logger.info("Poller statistics", extra=self.get_statistics())
