"""Base classes for LLM providers

This module defines the interface the session orchestrator uses to obtain
completions. Providers see the whole session and return a single reply.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..models import Session


@dataclass(frozen=True)
class LLMResponse:
    """A completed reply.

    Attributes:
        id: Provider-assigned unique id
        text: Generated text; None or empty means the reply carried no text
        model: Model that produced the reply, if known
        usage: Token usage as reported by the provider
    """

    id: str
    text: Optional[str]
    model: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers"""

    name = "base"

    @abstractmethod
    async def process_message(self, session: Session) -> LLMResponse:
        """Request a completion over the session transcript

        Args:
            session: Current session. MUST NOT be modified by the implementation
                     (it is immutable; build a provider-specific copy instead).

        Returns:
            LLMResponse: The reply

        Raises:
            ProviderError: If the backend call fails
        """
        pass
