"""
File-based mailbox shared with the phone application.

The phone drops status, history and event files into a storage directory;
the watch face polls the directory and consumes them. History and event
files are consumed with an atomic read-and-clear so a file written while
being drained is never half-read or lost.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .constants import EVENT_FILE_PREFIX, MAX_NUMBER_OF_EVENT_FILES
from .exceptions import MailboxReadError

logger = logging.getLogger(__name__)

DRAINING_SUFFIX = ".draining"


def event_file_names(count: int = MAX_NUMBER_OF_EVENT_FILES) -> List[str]:
    """Names of the event queue files, aaps.events.00 onwards."""
    return [f"{EVENT_FILE_PREFIX}{i:02d}" for i in range(count)]


class FileMailbox:
    """Key-value file store rooted at a directory."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def path(self, name: str) -> Path:
        return self.directory / name

    def exists(self, name: str) -> bool:
        return self.path(name).exists()

    # =========================================================================
    # Reading
    # =========================================================================

    def read_text(self, name: str) -> Optional[str]:
        """
        Read a file without removing it.

        Returns:
            File contents, or None if the file does not exist

        Raises:
            MailboxReadError: If the file exists but cannot be read
        """
        path = self.path(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise MailboxReadError(name, original_error=e)

    def read_json(self, name: str) -> Optional[Any]:
        """Read and decode a JSON file without removing it."""
        content = self.read_text(name)
        if content is None:
            return None
        return self._decode(name, content)

    def take_text(self, name: str) -> Optional[str]:
        """
        Read a file and remove it in one step.

        The file is first renamed aside, so anything the producer writes
        afterwards lands in a new file and is picked up on the next drain.

        Returns:
            File contents, or None if the file does not exist
        """
        path = self.path(name)
        draining = path.with_name(path.name + DRAINING_SUFFIX)
        try:
            os.replace(path, draining)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise MailboxReadError(name, message="Failed to claim mailbox file", original_error=e)

        try:
            return draining.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise MailboxReadError(name, original_error=e)
        finally:
            draining.unlink(missing_ok=True)

    def take_json(self, name: str) -> Optional[Any]:
        """Read-and-clear a JSON file."""
        content = self.take_text(name)
        if content is None:
            return None
        return self._decode(name, content)

    def drain_events(self) -> List[Dict[str, Any]]:
        """
        Read-and-clear every event file.

        Each file holds one JSON event per line. Lines that are blank are
        ignored; lines that are not JSON objects are logged and skipped.

        Returns:
            Events in file order, then line order
        """
        events: List[Dict[str, Any]] = []
        for name in event_file_names():
            try:
                content = self.take_text(name)
            except MailboxReadError as e:
                logger.error("Failed to read event file", extra={"error": e.full_message})
                continue
            if content is None:
                continue

            logger.debug("Event file found", extra={"file": name})
            for line in content.strip().splitlines():
                line = line.strip()
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.warning("Skipping malformed event", extra={"file": name, "error": str(e)})
                    continue
                if not isinstance(event, dict):
                    logger.warning("Skipping non-object event", extra={"file": name})
                    continue
                events.append(event)
        return events

    # =========================================================================
    # Writing
    # =========================================================================

    def write_text(self, name: str, content: str) -> None:
        """Write a file atomically (write to a temp name, then rename)."""
        path = self.path(name)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)

    def write_json(self, name: str, data: Any) -> None:
        self.write_text(name, json.dumps(data))

    def append_line(self, name: str, line: str) -> None:
        with open(self.path(name), "a", encoding="utf-8") as f:
            f.write(line.rstrip("\n") + "\n")

    def erase(self, name: str) -> None:
        self.path(name).unlink(missing_ok=True)

    @staticmethod
    def _decode(name: str, content: str) -> Any:
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise MailboxReadError(name, message="Mailbox file is not valid JSON", original_error=e)
