"""
LLM Client Infrastructure
==========================

Wrapper for the OpenAI chat completions API providing a clean interface
for LLM operations, including image inputs for photo triage.

This module abstracts the LLM client implementation following the
Dependency Inversion Principle - the domain layer depends on abstractions,
not concrete implementations.
"""

import json
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI

from src.config import settings
from src.core import LLMException, ConfigurationException


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Messages follow the chat completions format; a message content may be
    a list of text and image_url parts.
    """

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        max_tokens: int = 128,
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """Generate chat completion."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation for GPT models with vision support.

    Provides async wrapper around OpenAI SDK operations.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = AsyncOpenAI(api_key=self._api_key)
        self._model = model or settings.vision_model

    @property
    def model(self) -> str:
        return self._model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        max_tokens: int = 128,
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            json_mode: Ask the model for a JSON object response

        Returns:
            ChatCompletionResult with generated text

        Raises:
            LLMException: If completion fails
        """
        start_time = time.perf_counter()

        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception as e:
            raise LLMException(f"Chat completion failed: {str(e)}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        usage = response.usage

        return ChatCompletionResult(
            content=response.choices[0].message.content or "",
            model=self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for testing.

    Returns a predictable triage answer without calling external APIs.
    """

    def __init__(self, category: str = "PLUMBING", priority: str = "HIGH"):
        self._category = category
        self._priority = priority
        self.calls: List[List[dict]] = []

    @property
    def model(self) -> str:
        return "mock-model"

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        max_tokens: int = 128,
        json_mode: bool = False
    ) -> ChatCompletionResult:
        """Return a fenced JSON triage response."""
        self.calls.append(messages)
        payload = {
            "category": self._category,
            "priority": self._priority,
            "short_reason": "Mock: visible water damage under the sink."
        }
        content = f"```json\n{json.dumps(payload, indent=2)}\n```"

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=100,
            completion_tokens=len(content.split()),
            latency_ms=1
        )
