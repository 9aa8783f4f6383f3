"""GroqGenerationClient: the production generation client backed by the Groq chat completions API.

One call to ``generate`` is one HTTP request. The SDK's own retries are disabled so the worker can
tell "service down" from "reply rejected" and apply its own retry budget.
"""

from typing import Any

import groq
from groq import Groq

from sapp.agents.base import BaseGenerationClient
from sapp.agents.prompts import SYSTEM_PROMPT
from sapp.core.errors import ConfigurationFailure, GenerationMalformed, GenerationUnavailable
from sapp.core.settings import Settings
from sapp.core.utils import get_logger, truncate

MAX_REPLY_LOG_LEN = 300

logger = get_logger("sapp.agent")


class GroqGenerationClient(BaseGenerationClient):
    """Generation client that sends a system prompt plus the built prompt and returns the first choice."""

    def __init__(self, llm_client: Any, settings: Settings) -> None:
        """Initialize the client with a Groq SDK client and settings."""
        self.llm_client = llm_client
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "GroqGenerationClient":
        if not settings.groq_api_key:
            msg = "GROQ_API_KEY is not configured"
            raise ConfigurationFailure(msg)
        client = Groq(
            api_key=settings.groq_api_key,
            timeout=settings.generation_timeout_seconds,
            max_retries=0,
        )
        return cls(client, settings)

    def generate(self, instruction_text: str) -> str:
        """Send one chat completion request and return the first reply's content."""
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": instruction_text},
        ]
        kwargs: dict[str, Any] = {
            "model": self.settings.generation_model,
            "messages": messages,
            "temperature": self.settings.generation_temperature,
            "max_completion_tokens": self.settings.generation_max_completion_tokens,
            "top_p": self.settings.generation_top_p,
            "stream": False,
            "stop": self.settings.generation_stop,
        }
        if self.settings.generation_json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            completion = self.llm_client.chat.completions.create(**kwargs)
        except groq.APIResponseValidationError as exc:
            msg = f"Groq returned an unexpected response body: {exc}"
            raise GenerationMalformed(msg) from exc
        except (groq.APIConnectionError, groq.APIStatusError) as exc:
            msg = f"Groq API call failed: {exc}"
            raise GenerationUnavailable(msg) from exc
        return self._extract_reply(completion)

    def _extract_reply(self, completion: Any) -> str:
        """Pull the first choice's message content out of the completion envelope."""
        choices = getattr(completion, "choices", None)
        if not choices:
            msg = "Groq response contained no choices"
            raise GenerationMalformed(msg)
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if not content:
            msg = f"Groq response choice has no content (finish_reason={getattr(choices[0], 'finish_reason', None)})"
            raise GenerationMalformed(msg)
        logger.debug(f"Generation reply: {truncate(content, MAX_REPLY_LOG_LEN)}")
        return content
