"""OpenAI chat-completions provider"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import openai

from ..config import get_config
from ..errors import ProviderError
from ..models import MessageType, Session
from .base import LLMProvider, LLMResponse

logger = logging.getLogger(__name__)

_ROLE_BY_TYPE = {
    MessageType.USER: "user",
    MessageType.ASSISTANT: "assistant",
    MessageType.SYSTEM: "system",
}


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions LLM provider

    The async OpenAI client is safe to share across concurrent requests.
    """

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        # Use provided values or fall back to configuration
        config = get_config()
        self.api_key = api_key or config.openai_api_key
        self.model = model or config.openai_model
        self._client = None
        if self.api_key:
            self._client = openai.AsyncOpenAI(api_key=self.api_key)

    @staticmethod
    def format_messages(session: Session) -> List[Dict[str, Any]]:
        """Convert a session into chat-completions messages.

        The system prompt leads; diagnostics recorded as system-type messages
        are sent in place with the system role.
        """
        messages = []
        if session.system_prompt and session.system_prompt.strip():
            messages.append({"role": "system", "content": session.system_prompt})
        for message in session.messages:
            messages.append({"role": _ROLE_BY_TYPE[message.type], "content": message.content})
        return messages

    async def process_message(self, session: Session) -> LLMResponse:
        if self._client is None:
            raise ProviderError("OPENAI_API_KEY is not set")

        messages = self.format_messages(session)
        logger.debug(f"Requesting completion from {self.model} ({len(messages)} message(s))")
        try:
            completion = await self._client.chat.completions.create(
                model=self.model, messages=messages
            )
        except openai.OpenAIError as e:
            raise ProviderError(
                f"OpenAI request failed: {e}", details={"model": self.model}
            ) from e

        text = None
        if completion.choices:
            text = completion.choices[0].message.content

        usage = {}
        if getattr(completion, "usage", None) is not None:
            usage = {
                "prompt_tokens": completion.usage.prompt_tokens,
                "completion_tokens": completion.usage.completion_tokens,
                "total_tokens": completion.usage.total_tokens,
            }

        return LLMResponse(
            id=completion.id or f"resp_{uuid.uuid4().hex}",
            text=text,
            model=getattr(completion, "model", None) or self.model,
            usage=usage,
        )
