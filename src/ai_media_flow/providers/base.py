"""
Provider Base - Abstract base classes, model cards and the error taxonomy.

This module provides the foundation for all generation backends:
- ModelCard: Specification of a model's capabilities
- ProviderAdapter: Abstract base class for backend adapters
- GenerationRequest/Result: Uniform request/response data structures
- DispatchError and subclasses: The shared failure taxonomy every adapter
  maps its backend-specific errors into
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import aiohttp

from ai_media_flow.core.data_types import HandleKind, ImageData, ImageMetadata, VideoData

logger = logging.getLogger(__name__)


# ============================================================================
# Errors
# ============================================================================

class DispatchError(Exception):
    """
    Base exception for dispatch failures.

    Messages are short and derived from the error kind; raw backend bodies
    and credentials never appear in them.
    """
    kind: str = "dispatch_error"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class MissingCredential(DispatchError):
    """No credential could be resolved for the provider."""
    kind = "missing_credential"


class InvalidInput(DispatchError):
    """The node's configuration or inputs were rejected."""
    kind = "invalid_input"


class Unauthorized(DispatchError):
    """API key invalid or not permitted."""
    kind = "unauthorized"


class RateLimited(DispatchError):
    """Rate limit or quota exceeded."""
    kind = "rate_limited"

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        status: int | None = 429,
    ):
        super().__init__(message, status)
        self.retry_after = retry_after


class BackendUnavailable(DispatchError):
    """Network failure, timeout or backend 5xx."""
    kind = "backend_unavailable"


class MalformedResponse(DispatchError):
    """The backend returned a shape the adapter cannot parse."""
    kind = "malformed_response"


# ============================================================================
# Model cards and requests
# ============================================================================

@dataclass
class ModelCard:
    """
    Specification of a generation model.

    Attributes:
        id: Identifier selected in node data (e.g., "nano-banana")
        provider: Provider ID this model belongs to (e.g., "gemini")
        name: Human-readable display name
        kind: Kind of content the model generates
        api_model: Model identifier sent to the backend (defaults to id)
        aspect_ratios: Aspect ratio options, if the model takes one
        max_reference_images: Max input images (0 = text only)
        params: Names of extra parameters passed through to the backend
        param_options: Valid options for dropdown parameters
        param_defaults: Default values for parameters
    """
    id: str
    provider: str
    name: str
    kind: HandleKind
    description: str = ""
    api_model: str | None = None

    aspect_ratios: list[str] | None = None
    resolutions: list[str] | None = None
    max_reference_images: int = 0

    params: set[str] = field(default_factory=set)
    param_options: dict[str, list[str]] = field(default_factory=dict)
    param_defaults: dict[str, Any] = field(default_factory=dict)

    tags: list[str] = field(default_factory=list)

    @property
    def backend_model(self) -> str:
        return self.api_model or self.id

    def validate_params(self, params: dict[str, Any]) -> dict[str, Any]:
        """Filter parameters against this model's capabilities."""
        validated = dict(self.param_defaults)
        for key, value in params.items():
            if key in self.params:
                if key in self.param_options:
                    if value in self.param_options[key]:
                        validated[key] = value
                else:
                    validated[key] = value
        return validated


@dataclass
class GenerationRequest:
    """Uniform request handed to an adapter."""
    model: ModelCard
    prompt: str
    images: list[ImageData] = field(default_factory=list)

    # Text generation
    temperature: float = 0.7
    max_tokens: int = 1024

    # Image / video generation
    aspect_ratio: str | None = None
    resolution: str | None = None

    # Model-specific extra parameters
    extra_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Uniform result returned by an adapter."""
    model_id: str
    text: str | None = None
    images: list[ImageData] = field(default_factory=list)
    videos: list[VideoData] = field(default_factory=list)

    revised_prompt: str | None = None
    generation_time: float = 0.0

    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass
class ProviderConfig:
    """Configuration for one adapter instance. The key is hidden from repr."""
    api_key: str = field(default="", repr=False)
    base_url: str | None = None
    timeout: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Adapter base class
# ============================================================================

def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


class ProviderAdapter(ABC):
    """
    Abstract base class for generation backends.

    Each adapter handles communication with one API and normalises it to
    GenerationResult / DispatchError. Adapters are created per dispatch
    with the resolved credential and are not cached.
    """

    id: str = ""
    name: str = ""
    base_url: str = ""
    kinds: frozenset[HandleKind] = frozenset()

    # False when cancelling the task would not stop the backend call
    supports_abort: bool = True

    def __init__(self, config: ProviderConfig):
        self.config = config
        if config.base_url:
            self.base_url = config.base_url

    @property
    def api_key(self) -> str:
        return self.config.api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r})"

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Run one generation.

        Raises:
            Unauthorized: Invalid API key
            RateLimited: Rate limit exceeded
            InvalidInput: Request rejected
            BackendUnavailable: Network error or backend 5xx
            MalformedResponse: Response could not be parsed
        """
        ...

    async def validate_credentials(self) -> bool:
        """Check the API key with a lightweight authenticated request."""
        try:
            await self._request("GET", f"{self.base_url}/models")
        except DispatchError:
            return False
        return True

    def get_headers(self) -> dict[str, str]:
        """Get default headers for API requests."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _post(self, url: str, body: dict) -> dict:
        """Make POST request with JSON body."""
        return await self._request("POST", url, json=body)

    async def _get(self, url: str) -> dict:
        return await self._request("GET", url)

    async def _request(
        self,
        method: str,
        url: str,
        headers_override: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> dict:
        headers = headers_override or self.get_headers()
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=headers, **kwargs
                ) as resp:
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError:
                        data = None
                    self._check_error(resp.status, data, resp.headers)
                    if not isinstance(data, dict):
                        raise MalformedResponse(
                            f"{self.name} returned a non-JSON response", resp.status
                        )
                    return data
        except aiohttp.ClientError as e:
            raise BackendUnavailable(
                f"{self.name} network error: {type(e).__name__}"
            ) from None
        except asyncio.TimeoutError:
            raise BackendUnavailable(f"{self.name} request timed out") from None

    def _check_error(
        self,
        status: int,
        data: Any,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Map an HTTP status to the shared taxonomy."""
        if status < 400:
            return

        logger.debug("%s returned HTTP %s: %s", self.name, status, _error_detail(data))

        if status in (401, 403):
            raise Unauthorized(f"{self.name} rejected the API key", status)
        if status == 429:
            retry_after = parse_retry_after((headers or {}).get("Retry-After"))
            raise RateLimited(f"{self.name} rate limit exceeded", retry_after, status)
        if status >= 500:
            raise BackendUnavailable(f"{self.name} is unavailable (HTTP {status})", status)
        raise InvalidInput(f"{self.name} rejected the request (HTTP {status})", status)


def _error_detail(data: Any) -> str:
    if isinstance(data, dict):
        error = data.get("error", data)
        if isinstance(error, dict):
            error = error.get("message", "")
        return str(error)[:200]
    return ""


def decode_image(
    payload: str, provider_name: str, metadata: ImageMetadata | None = None
) -> ImageData:
    """Decode a base64 image from a backend response."""
    try:
        return ImageData.from_base64(payload, metadata)
    except (ValueError, OSError):
        raise MalformedResponse(f"{provider_name} returned an undecodable image") from None
