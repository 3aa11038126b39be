"""
OpenAI Provider - Chat completions and GPT Image models.

Supports:
- GPT-4.1 family: Text generation with optional image inputs
- GPT Image 1: Text-to-image and reference-image edits

API References:
- https://platform.openai.com/docs/api-reference/chat
- https://platform.openai.com/docs/api-reference/images
"""

from __future__ import annotations

import time
from typing import Any

import aiohttp

from ai_media_flow.core.data_types import HandleKind, ImageMetadata
from ai_media_flow.providers.base import (
    GenerationRequest,
    GenerationResult,
    MalformedResponse,
    ProviderAdapter,
    decode_image,
)


def chat_messages(request: GenerationRequest) -> list[dict[str, Any]]:
    """Build an OpenAI-style user message, with images as data URLs."""
    if not request.images:
        return [{"role": "user", "content": request.prompt}]
    content: list[dict[str, Any]] = [{"type": "text", "text": request.prompt}]
    for img in request.images:
        content.append({
            "type": "image_url",
            "image_url": {"url": img.to_data_url()},
        })
    return [{"role": "user", "content": content}]


def chat_text(data: dict) -> str | None:
    """Extract the reply text of a chat completion response."""
    choices = data.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0] or {}
        message = choice.get("message") or {}
        content = message.get("content")
        if isinstance(content, str) and content:
            return content
        if isinstance(choice.get("text"), str) and choice["text"]:
            return choice["text"]
    return None


class OpenAIProvider(ProviderAdapter):
    """
    OpenAI provider.

    Text models use /chat/completions; image models use
    /images/generations, or /images/edits when reference images are given.
    """

    id = "openai"
    name = "OpenAI"
    base_url = "https://api.openai.com/v1"
    kinds = frozenset({HandleKind.TEXT, HandleKind.IMAGE})

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.monotonic()
        if request.model.kind is HandleKind.IMAGE:
            if request.images:
                result = await self._generate_edit(request)
            else:
                result = await self._generate_create(request)
        else:
            result = await self._generate_text(request)
        result.generation_time = time.monotonic() - start
        return result

    async def _generate_text(self, request: GenerationRequest) -> GenerationResult:
        body = {
            "model": request.model.backend_model,
            "messages": chat_messages(request),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        data = await self._post(f"{self.base_url}/chat/completions", body)
        text = chat_text(data)
        if text is None:
            raise MalformedResponse(f"{self.name} returned no text")

        usage = data.get("usage") or {}
        return GenerationResult(
            model_id=request.model.id,
            text=text,
            input_tokens=usage.get("prompt_tokens"),
            output_tokens=usage.get("completion_tokens"),
        )

    async def _generate_create(self, request: GenerationRequest) -> GenerationResult:
        """Standard text-to-image generation."""
        body: dict[str, Any] = {
            "model": request.model.backend_model,
            "prompt": request.prompt,
            "n": 1,
        }
        if request.resolution in (request.model.resolutions or []):
            body["size"] = request.resolution

        extra = request.model.validate_params(request.extra_params)
        body.update(extra)

        data = await self._post(f"{self.base_url}/images/generations", body)
        return self._parse_image_response(data, request)

    async def _generate_edit(self, request: GenerationRequest) -> GenerationResult:
        """Image generation guided by reference images (multipart)."""
        form = aiohttp.FormData()
        form.add_field("model", request.model.backend_model)
        form.add_field("prompt", request.prompt)
        if request.resolution in (request.model.resolutions or []):
            form.add_field("size", request.resolution)
        for key, value in request.model.validate_params(request.extra_params).items():
            form.add_field(key, str(value))

        for i, img in enumerate(request.images[: request.model.max_reference_images or None]):
            form.add_field(
                "image[]", img.to_png_bytes(),
                filename=f"image_{i}.png", content_type="image/png",
            )

        data = await self._request(
            "POST", f"{self.base_url}/images/edits",
            data=form, headers_override={"Authorization": f"Bearer {self.api_key}"},
        )
        return self._parse_image_response(data, request)

    def _parse_image_response(self, data: dict, request: GenerationRequest) -> GenerationResult:
        """Parse an images response into GenerationResult."""
        images = []
        revised_prompt = None

        for item in data.get("data") or []:
            if item.get("b64_json"):
                meta = ImageMetadata(prompt=request.prompt, model=request.model.id)
                images.append(decode_image(item["b64_json"], self.name, meta))
            if item.get("revised_prompt") and not revised_prompt:
                revised_prompt = item["revised_prompt"]

        if not images:
            raise MalformedResponse(f"{self.name} returned no image")

        usage = data.get("usage") or {}
        return GenerationResult(
            model_id=request.model.id,
            images=images,
            revised_prompt=revised_prompt,
            input_tokens=usage.get("input_tokens"),
            output_tokens=usage.get("output_tokens"),
        )
