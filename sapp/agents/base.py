"""Base abstraction for text-generation clients.

This module defines the abstract base class for all generation clients: send one instruction text,
receive the raw reply text. Implementations make exactly one attempt per call; retry policy belongs
to the worker.
"""

from abc import ABC, abstractmethod

from sapp.core.settings import Settings


class BaseGenerationClient(ABC):
    """Abstract base class for all generation clients."""

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: Settings) -> "BaseGenerationClient":
        """Build a client from the application settings."""

    @abstractmethod
    def generate(self, instruction_text: str) -> str:
        """Send the instruction text and return the raw reply text.

        Raises GenerationUnavailable or GenerationMalformed.
        """
