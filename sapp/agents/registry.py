"""Registry for generation client implementations.

Backends are registered by name so the configured ``generation_backend`` setting picks the
implementation at startup.
"""

from typing import ClassVar

from sapp.agents.base import BaseGenerationClient
from sapp.core.errors import ConfigurationFailure
from sapp.core.settings import Settings


class GenerationClientRegistry:
    """Registry for generation client classes."""

    _registry: ClassVar[dict[str, type[BaseGenerationClient]]] = {}

    @classmethod
    def register(cls, name: str, client_cls: type[BaseGenerationClient]) -> None:
        """Register a generation client class with a given name."""
        cls._registry[name] = client_cls

    @classmethod
    def get(cls, name: str) -> type[BaseGenerationClient]:
        """Retrieve a generation client class by name."""
        try:
            return cls._registry[name]
        except KeyError:
            msg = f"unknown generation backend '{name}', available: {cls.available()}"
            raise ConfigurationFailure(msg) from None

    @classmethod
    def available(cls) -> list[str]:
        """List all available backend names."""
        return sorted(cls._registry.keys())


def build_generation_client(settings: Settings) -> BaseGenerationClient:
    """Instantiate the generation client selected by the settings."""
    return GenerationClientRegistry.get(settings.generation_backend).from_settings(settings)
