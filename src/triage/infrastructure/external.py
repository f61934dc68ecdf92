"""
Triage External Service Adapters
==================================

Adapters for external services (LLM, HTTP image hosts) used by the triage
module.

Implements the interfaces defined in the application layer using concrete
external service implementations.
"""

from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from src.triage.application import ILLMClient, IImageFetcher
from src.triage.domain import ImagePart
from src.infrastructure.llm import (
    ChatCompletionResult, MockLLMClient, OpenAILLMClient
)
from src.config import settings

TWILIO_API_HOST = "api.twilio.com"


class LLMClientAdapter(ILLMClient):
    """
    Adapter that wraps the infrastructure LLM client.

    Implements the application layer ILLMClient interface using
    OpenAILLMClient, or MockLLMClient when settings.mock_llm is set.
    """

    def __init__(self, api_key: Optional[str] = None, client=None):
        if client is not None:
            self._client = client
        elif settings.mock_llm:
            self._client = MockLLMClient()
        else:
            self._client = OpenAILLMClient(api_key)

    @property
    def model(self) -> str:
        return self._client.model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.0,
        max_tokens: int = 128,
        json_mode: bool = False
    ) -> ChatCompletionResult:
        return await self._client.chat_completion(messages, temperature, max_tokens, json_mode)


class HttpImageFetcher(IImageFetcher):
    """
    Loads photos over HTTP.

    Twilio media URLs require the account credentials; every other host
    is fetched anonymously. Redirects are followed since Twilio serves media
    from a signed storage URL.
    """

    def __init__(
        self,
        twilio_auth: Optional[Tuple[str, str]] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self._twilio_auth = twilio_auth
        self._timeout = timeout or settings.twilio_timeout_seconds
        self._transport = transport

    async def fetch(self, url: str) -> Optional[ImagePart]:
        auth = None
        if urlparse(url).hostname == TWILIO_API_HOST:
            auth = self._twilio_auth

        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport
        ) as client:
            response = await client.get(url, auth=auth)

        if response.status_code != 200:
            return None

        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        if not mime_type.startswith("image/"):
            return None

        return ImagePart(data=response.content, mime_type=mime_type)
