"""ScriptedGenerationClient: a deterministic stand-in for the generation service.

Replies and errors are queued ahead of time and handed out in FIFO order. All state sits behind a
lock because several workers may call ``generate`` at the same time.
"""

import threading
from collections import deque
from collections.abc import Callable

from sapp.agents.base import BaseGenerationClient
from sapp.core.errors import GenerationUnavailable
from sapp.core.settings import Settings


class ScriptedGenerationClient(BaseGenerationClient):
    """Generation client that replays canned replies and errors."""

    def __init__(
        self,
        override: Callable[[str], str] | None = None,
        default_reply: str | None = None,
        default_error: Exception | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._script: deque[str | Exception] = deque()
        self._history: list[str] = []
        self.override = override
        self.default_reply = default_reply
        self.default_error = default_error

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScriptedGenerationClient":
        _ = settings
        return cls()

    def add_reply(self, reply: str) -> None:
        """Queue a reply."""
        with self._lock:
            self._script.append(reply)

    def add_error(self, error: Exception) -> None:
        """Queue an exception to be raised by a later call."""
        with self._lock:
            self._script.append(error)

    def generate(self, instruction_text: str) -> str:
        with self._lock:
            self._history.append(instruction_text)
            if self.override is not None:
                return self.override(instruction_text)
            if self._script:
                item = self._script.popleft()
            elif self.default_error is not None:
                item = self.default_error
            elif self.default_reply is not None:
                item = self.default_reply
            else:
                msg = "scripted generation client has no reply or error queued"
                raise GenerationUnavailable(msg)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def history(self) -> list[str]:
        """Prompts received so far, oldest first."""
        with self._lock:
            return list(self._history)

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self._history)

    @property
    def pending(self) -> int:
        """Number of queued replies and errors not yet handed out."""
        with self._lock:
            return len(self._script)

    def clear(self) -> None:
        """Drop queued items and history."""
        with self._lock:
            self._script.clear()
            self._history.clear()
