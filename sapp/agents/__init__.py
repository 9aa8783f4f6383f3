"""Agents package: prompt building, generation clients, their registry, and reply validation."""

from .base import BaseGenerationClient  # noqa: F401
from .groq_client import GroqGenerationClient
from .registry import GenerationClientRegistry, build_generation_client  # noqa: F401
from .scripted_client import ScriptedGenerationClient

GenerationClientRegistry.register("groq", GroqGenerationClient)
GenerationClientRegistry.register("scripted", ScriptedGenerationClient)
