"""
Kimi Provider - Moonshot's OpenAI-compatible chat API.

When KIMI_API_URL is configured the request goes to that exact URL, which
may be any OpenAI-compatible chat completions endpoint.
"""

from __future__ import annotations

import time

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.providers.base import (
    GenerationRequest,
    GenerationResult,
    MalformedResponse,
    ProviderAdapter,
    ProviderConfig,
)
from ai_media_flow.providers.openai import chat_messages, chat_text


class KimiProvider(ProviderAdapter):
    """Kimi text generation."""

    id = "kimi"
    name = "Kimi"
    base_url = "https://api.moonshot.ai/v1"
    kinds = frozenset({HandleKind.TEXT})

    def __init__(self, config: ProviderConfig):
        super().__init__(config)
        self.endpoint = config.base_url or f"{self.base_url}/chat/completions"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.monotonic()
        body = {
            "model": request.model.backend_model,
            "messages": chat_messages(request),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        data = await self._post(self.endpoint, body)

        # Custom endpoints sometimes answer with a bare text/message field
        text = chat_text(data)
        if text is None:
            for key in ("text", "message"):
                if isinstance(data.get(key), str) and data[key]:
                    text = data[key]
                    break
        if text is None:
            raise MalformedResponse(f"{self.name} returned no text")

        return GenerationResult(
            model_id=request.model.id,
            text=text,
            generation_time=time.monotonic() - start,
        )
