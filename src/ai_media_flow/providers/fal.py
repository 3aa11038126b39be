"""
fal.ai Provider - Video generation through the fal queue.

Jobs are submitted to the queue and polled until they complete, then the
result is fetched from the response URL.

API Reference: https://docs.fal.ai/model-apis/model-endpoints/queue
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ai_media_flow.core.data_types import HandleKind, VideoData
from ai_media_flow.providers.base import (
    BackendUnavailable,
    GenerationRequest,
    GenerationResult,
    InvalidInput,
    MalformedResponse,
    ProviderAdapter,
)

logger = logging.getLogger(__name__)


class FalProvider(ProviderAdapter):
    """
    fal.ai video provider.

    The first input image, if any, is sent as ``image_url`` (a data URL)
    for image-to-video models.
    """

    id = "fal"
    name = "fal.ai"
    base_url = "https://queue.fal.run"
    kinds = frozenset({HandleKind.VIDEO})

    poll_interval = 2.0

    def get_headers(self) -> dict[str, str]:
        """fal uses the Key scheme rather than Bearer."""
        return {
            "Authorization": f"Key {self.api_key}",
            "Content-Type": "application/json",
        }

    async def validate_credentials(self) -> bool:
        # fal has no cheap authenticated listing endpoint
        return self.is_configured

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        start = time.monotonic()
        model = request.model.backend_model

        body: dict[str, Any] = {"prompt": request.prompt}
        if request.images:
            body["image_url"] = request.images[0].to_data_url()
        elif request.model.max_reference_images:
            raise InvalidInput(f"{request.model.name} needs an input image")
        if request.aspect_ratio in (request.model.aspect_ratios or []):
            body["aspect_ratio"] = request.aspect_ratio
        body.update(request.model.validate_params(request.extra_params))

        submitted = await self._post(f"{self.base_url}/{model}", body)
        request_id = submitted.get("request_id")
        if not request_id:
            raise MalformedResponse(f"{self.name} returned no request id")

        status_url = submitted.get("status_url") or (
            f"{self.base_url}/{model}/requests/{request_id}/status"
        )
        response_url = submitted.get("response_url") or (
            f"{self.base_url}/{model}/requests/{request_id}"
        )
        logger.debug("fal request %s submitted for %s", request_id, model)

        await self._poll(status_url)
        data = await self._get(response_url)
        return self._parse_result(data, request, time.monotonic() - start)

    async def _poll(self, status_url: str) -> None:
        """Poll until the job completes. The dispatch timeout bounds the wait."""
        while True:
            data = await self._get(status_url)
            status = data.get("status")

            if status == "COMPLETED":
                if data.get("error"):
                    raise BackendUnavailable(f"{self.name} job failed")
                return
            if status in ("IN_QUEUE", "IN_PROGRESS"):
                await asyncio.sleep(self.poll_interval)
                continue
            raise MalformedResponse(f"{self.name} returned unknown job status")

    def _parse_result(
        self, data: dict, request: GenerationRequest, elapsed: float
    ) -> GenerationResult:
        video = data.get("video")
        if isinstance(video, dict) and video.get("url"):
            clip = VideoData(
                url=video["url"],
                mime_type=video.get("content_type") or "video/mp4",
                model=request.model.id,
            )
        elif isinstance(data.get("video_url"), str):
            clip = VideoData(url=data["video_url"], model=request.model.id)
        else:
            raise MalformedResponse(f"{self.name} returned no video")

        return GenerationResult(
            model_id=request.model.id,
            videos=[clip],
            generation_time=elapsed,
        )
