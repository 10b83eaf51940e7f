"""
HTTP client for the phone application's local command bridge.

Commands are fire-and-forget: the reply is logged and failures are logged
and reported as ``False``; the next user action or poll simply tries again.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

from .config import Settings
from .constants import MIN_HEART_RATE_CONFIDENCE, CommandType
from .exceptions import CommandSendError
from .models import Command

logger = logging.getLogger(__name__)


@dataclass
class CommandStatistics:
    """Statistics for command delivery monitoring."""
    total_sent: int = 0
    successful: int = 0
    failed: int = 0
    last_error: Optional[str] = None


class CommandClient:
    """
    Sends commands and sensor uploads to the phone application.

    Endpoints (relative to ``settings.bridge_url``):
    - ``/command?commandType=<name>&commandJson=<json>``
    - ``/heartrate?bpm=<bpm>``
    - ``/steps?steps=<steps>``
    """

    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.stats = CommandStatistics()
        self._last_heart_rate: Optional[int] = None
        self._last_step_count: Optional[int] = None

    def _get(self, path: str, params: dict, description: str) -> bool:
        """
        Issue a GET request to the bridge.

        Returns:
            True if the bridge answered with a success status
        """
        url = f"{self.settings.bridge_url}{path}"
        self.stats.total_sent += 1

        try:
            response = self.session.get(url, params=params, timeout=self.settings.http_timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            error = CommandSendError(description, original_error=e)
            logger.error(error.full_message)
            self.stats.failed += 1
            self.stats.last_error = error.full_message
            return False

        self.stats.successful += 1
        logger.info("Phone replied", extra={"request": description, "reply": response.text})
        return True

    def send(self, command_type: str, payload: Any = None) -> bool:
        """
        Send a command to the phone application.

        Args:
            command_type: Command name, e.g. "ActionBolusPreCheck"
            payload: JSON-serializable payload (defaults to an empty object).
                A string payload is assumed to already be encoded JSON.

        Returns:
            True if the command was delivered
        """
        if payload is None:
            payload = {}
        command_json = payload if isinstance(payload, str) else json.dumps(payload)

        logger.info("Sending command", extra={"command_type": command_type, "command_json": command_json})
        return self._get(
            "/command",
            {"commandType": str(command_type), "commandJson": command_json},
            str(command_type),
        )

    def send_command(self, command: Command) -> bool:
        return self.send(command.command_type, command.payload)

    def request_initial_data(self) -> bool:
        """Ask the phone to resend the full status and history."""
        return self.send(CommandType.REQUEST_INITIAL_DATA.value, {})

    def upload_heart_rate(self, bpm: int, confidence: int) -> bool:
        """
        Upload a heart-rate reading if enabled, confident and changed.

        Returns:
            True if a reading was uploaded
        """
        if not self.settings.upload_hr:
            return False
        if confidence <= MIN_HEART_RATE_CONFIDENCE or bpm == self._last_heart_rate:
            return False

        self._last_heart_rate = bpm
        logger.debug("Sending heart rate", extra={"bpm": bpm})
        return self._get("/heartrate", {"bpm": bpm}, "heartrate")

    def upload_steps(self, steps: int) -> bool:
        """
        Upload today's step count if enabled and changed.

        Returns:
            True if the count was uploaded
        """
        if not self.settings.upload_steps or steps == self._last_step_count:
            return False

        self._last_step_count = steps
        logger.debug("Sending steps", extra={"steps": steps})
        return self._get("/steps", {"steps": steps}, "steps")
