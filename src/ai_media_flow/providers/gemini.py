"""
Google Gemini Provider - Text and image generation.

Supports:
- Gemini 2.5 Flash / 3 Flash / 3 Pro: Multimodal text generation
- Gemini 2.5 Flash Image (Nano Banana): Fast generation and editing
- Gemini 3 Pro Image (Nano Banana Pro): High-quality generation up to 4K

API References:
- https://ai.google.dev/gemini-api/docs/text-generation
- https://ai.google.dev/gemini-api/docs/image-generation
"""

from __future__ import annotations

import time
from typing import Any

from ai_media_flow.core.data_types import HandleKind, ImageMetadata
from ai_media_flow.providers.base import (
    GenerationRequest,
    GenerationResult,
    MalformedResponse,
    ProviderAdapter,
    decode_image,
)


class GeminiProvider(ProviderAdapter):
    """
    Google Gemini provider.

    Both text and image models use the :generateContent endpoint; image
    models are asked for an IMAGE response modality.
    """

    id = "gemini"
    name = "Google Gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta"
    kinds = frozenset({HandleKind.TEXT, HandleKind.IMAGE})

    def get_headers(self) -> dict[str, str]:
        """Gemini takes the key in a header rather than a bearer token."""
        return {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        url = f"{self.base_url}/models/{request.model.backend_model}:generateContent"
        start = time.monotonic()

        if request.model.kind is HandleKind.IMAGE:
            body = self._image_body(request)
        else:
            body = self._text_body(request)

        response = await self._post(url, body)
        result = self._parse_response(response, request)
        result.generation_time = time.monotonic() - start
        return result

    def _parts(self, request: GenerationRequest) -> list[dict[str, Any]]:
        # Reference images first, then the prompt
        parts: list[dict[str, Any]] = []
        for img in request.images[: request.model.max_reference_images or None]:
            parts.append({
                "inlineData": {
                    "mimeType": "image/png",
                    "data": img.to_base64(),
                }
            })
        parts.append({"text": request.prompt})
        return parts

    def _text_body(self, request: GenerationRequest) -> dict[str, Any]:
        return {
            "contents": [{"parts": self._parts(request)}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
        }

    def _image_body(self, request: GenerationRequest) -> dict[str, Any]:
        extra = request.model.validate_params(request.extra_params)

        image_config: dict[str, Any] = {}
        if request.aspect_ratio in (request.model.aspect_ratios or []):
            image_config["aspectRatio"] = request.aspect_ratio
        if request.resolution in (request.model.resolutions or []):
            image_config["imageSize"] = request.resolution

        generation_config: dict[str, Any] = {"responseModalities": ["IMAGE"]}
        if image_config:
            generation_config["imageConfig"] = image_config

        body: dict[str, Any] = {
            "contents": [{"parts": self._parts(request)}],
            "generationConfig": generation_config,
        }
        if extra.get("useGoogleSearch"):
            body["tools"] = [{"googleSearch": {}}]
        return body

    def _parse_response(self, data: dict, request: GenerationRequest) -> GenerationResult:
        """Parse a :generateContent response into GenerationResult."""
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponse(f"{self.name} returned no candidates")

        images = []
        texts = []
        for candidate in candidates:
            content = candidate.get("content") or {}
            for part in content.get("parts", []):
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    meta = ImageMetadata(prompt=request.prompt, model=request.model.id)
                    images.append(decode_image(inline["data"], self.name, meta))
                elif part.get("text"):
                    texts.append(part["text"])

        usage = data.get("usageMetadata", {})
        result = GenerationResult(
            model_id=request.model.id,
            input_tokens=usage.get("promptTokenCount"),
            output_tokens=usage.get("candidatesTokenCount"),
        )

        if request.model.kind is HandleKind.IMAGE:
            if not images:
                raise MalformedResponse(f"{self.name} returned no image")
            result.images = images
            result.revised_prompt = texts[0] if texts else None
        else:
            if not texts:
                raise MalformedResponse(f"{self.name} returned no text")
            result.text = "".join(texts)
        return result
