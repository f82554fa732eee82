"""
LLM Provider Base - Abstract base for all LLM API providers.
Supports multimodal messages (text + inline images).
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field


@dataclass
class InlineImage:
    """Raw image bytes with their media type."""
    data: bytes
    media_type: str = "image/jpeg"


@dataclass
class LLMMessage:
    """
    Represents a message in a conversation.
    Roles are "system", "user" and "model"; providers translate them to
    their own vocabulary.
    """
    role: str
    content: str
    images: List[InlineImage] = field(default_factory=list)

    @staticmethod
    def system(text: str) -> "LLMMessage":
        return LLMMessage(role="system", content=text)

    @staticmethod
    def user(text: str, images: Optional[List[InlineImage]] = None) -> "LLMMessage":
        """Create a user message, optionally with inline images."""
        return LLMMessage(role="user", content=text, images=list(images or []))

    @staticmethod
    def model(text: str) -> "LLMMessage":
        return LLMMessage(role="model", content=text)


@dataclass
class LLMResponse:
    """Response from an LLM API call."""
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    raw: Optional[Dict[str, Any]] = None


class LLMProvider(ABC):
    """
    Abstract base class for LLM API providers.
    All providers must implement chat_completion.
    """

    name: str = "base"

    def __init__(self, api_key: str, model: str, base_url: Optional[str] = None,
                 default_temperature: float = 0.7, default_max_tokens: int = 2048,
                 timeout: float = 120.0):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/") if base_url else base_url
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens
        self.timeout = timeout

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[LLMMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: Conversation so far, system instruction first
            temperature: Sampling temperature override
            max_tokens: Max tokens override
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with the generated content
        """
        pass

    @staticmethod
    def _split_system(messages: List[LLMMessage]) -> tuple:
        """Separate system instructions from the dialogue turns."""
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        return system, [m for m in messages if m.role != "system"]
