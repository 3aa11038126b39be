"""
Anthropic Provider - Claude text generation.

API Reference: https://docs.anthropic.com/en/api/messages
"""

from __future__ import annotations

import time
from typing import Any

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.providers.base import (
    GenerationRequest,
    GenerationResult,
    MalformedResponse,
    ProviderAdapter,
)

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(ProviderAdapter):
    """Claude models via the Messages API."""

    id = "claude"
    name = "Anthropic"
    base_url = "https://api.anthropic.com/v1"
    kinds = frozenset({HandleKind.TEXT})

    def get_headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.monotonic()

        content: list[dict[str, Any]] = []
        for img in request.images:
            content.append({
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": "image/png",
                    "data": img.to_base64(),
                },
            })
        content.append({"type": "text", "text": request.prompt})

        body = {
            "model": request.model.backend_model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": content}],
        }
        data = await self._post(f"{self.base_url}/messages", body)

        texts = [
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        ]
        text = "".join(texts)
        if not text:
            raise MalformedResponse(f"{self.name} returned no text")

        usage = data.get("usage") or {}
        return GenerationResult(
            model_id=request.model.id,
            text=text,
            generation_time=time.monotonic() - start,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )
