"""
LLM Provider Module

Chat completions for scenario generation, persona chat, prompt testing and
post-call analysis.

Architecture:
- LLMProvider: Abstract base class defining the interface
- OpenAIChatProvider: Concrete implementation for the OpenAI REST API
- Message/response dataclasses for type safety

Usage:
    from retailiq.core.llm import OpenAIChatProvider, Message

    llm = OpenAIChatProvider()
    response = llm.chat([Message(role="user", content="Hello!")])
    print(response.content)
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from retailiq.config import OpenAIConfig, settings
from retailiq.errors import raise_for_upstream
from retailiq.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Message:
    """
    Represents a chat message.

    Attributes:
        role: Message role (system, user, assistant)
        content: Message content text
    """
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to API-compatible dictionary."""
        return {"role": self.role, "content": self.content}


@dataclass
class ChatResponse:
    """
    Response from LLM chat completion.

    Attributes:
        content: Generated text content
        model: Model name used
        usage: Token usage statistics
        finish_reason: Why generation stopped
    """
    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    finish_reason: str = ""

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)

    def json(self) -> Any:
        """Parse the content as JSON.

        Raises:
            ValueError: If the content is not valid JSON
        """
        return json.loads(self.content)


class LLMProvider(ABC):
    """Interface for chat completion providers."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """
        Generate a chat completion.

        Args:
            messages: List of conversation messages
            temperature: Sampling temperature override
            max_tokens: Max response tokens override

        Returns:
            ChatResponse with generated content
        """


class OpenAIChatProvider(LLMProvider):
    """
    OpenAI chat completions over plain HTTPS.

    Every call is attempted once; a slow upstream simply delays the caller.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.config = OpenAIConfig(
            api_key=api_key or settings.openai.api_key,
            model=model or settings.openai.model,
            base_url=base_url or settings.openai.base_url,
        )
        self.timeout = timeout or settings.http_timeout

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    def chat(
        self,
        messages: List[Message],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """
        Generate a chat completion.

        Raises:
            ValueError: If no API key is configured
            UpstreamError: If the API answers with an error status
        """
        self.config.validate()

        body: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
        }
        if temperature is not None:
            body["temperature"] = temperature
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        response = requests.post(self.config.chat_url, headers=self._headers, json=body, timeout=self.timeout)
        raise_for_upstream(response, "Chat completion failed")

        data = response.json()
        choices = data.get("choices") or [{}]
        choice = choices[0]
        content = (choice.get("message") or {}).get("content") or ""
        logger.debug("Chat completion: model=%s tokens=%s", data.get("model"), data.get("usage", {}).get("total_tokens"))

        return ChatResponse(
            content=content,
            model=data.get("model", self.config.model),
            usage=data.get("usage", {}),
            finish_reason=choice.get("finish_reason") or "",
        )
