"""
Provider Registry - Central registry for adapters and model cards.

This module manages:
- Registration of adapter implementations
- Built-in model cards for supported backends
- Selection of a model card from a node's configuration
"""

from __future__ import annotations

from typing import Any

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.providers.base import (
    InvalidInput,
    ModelCard,
    ProviderAdapter,
    ProviderConfig,
)


# ============================================================================
# Built-in Model Cards
# ============================================================================

_IMAGE_ASPECT_RATIOS = ["1:1", "2:3", "3:2", "3:4", "4:3", "4:5", "5:4", "9:16", "16:9", "21:9"]

BUILTIN_MODEL_CARDS: dict[str, ModelCard] = {
    # -------------------------------------------------------------------------
    # Text generation
    # -------------------------------------------------------------------------
    "gemini-2.5-flash": ModelCard(
        id="gemini-2.5-flash",
        provider="gemini",
        name="Gemini 2.5 Flash",
        kind=HandleKind.TEXT,
        max_reference_images=8,
        tags=["fast"],
    ),
    "gemini-3-flash-preview": ModelCard(
        id="gemini-3-flash-preview",
        provider="gemini",
        name="Gemini 3 Flash",
        kind=HandleKind.TEXT,
        max_reference_images=8,
    ),
    "gemini-3-pro-preview": ModelCard(
        id="gemini-3-pro-preview",
        provider="gemini",
        name="Gemini 3 Pro",
        kind=HandleKind.TEXT,
        max_reference_images=8,
        tags=["high-quality"],
    ),
    "gpt-4.1-mini": ModelCard(
        id="gpt-4.1-mini",
        provider="openai",
        name="GPT-4.1 Mini",
        kind=HandleKind.TEXT,
        max_reference_images=4,
    ),
    "gpt-4.1-nano": ModelCard(
        id="gpt-4.1-nano",
        provider="openai",
        name="GPT-4.1 Nano",
        kind=HandleKind.TEXT,
        max_reference_images=4,
        tags=["fast"],
    ),
    "claude-haiku": ModelCard(
        id="claude-haiku",
        provider="claude",
        name="Claude Haiku",
        kind=HandleKind.TEXT,
        api_model="claude-3-5-haiku-latest",
    ),
    "kimi": ModelCard(
        id="kimi",
        provider="kimi",
        name="Kimi",
        kind=HandleKind.TEXT,
        api_model="moonshot-v1-8k",
    ),

    # -------------------------------------------------------------------------
    # Image generation
    # -------------------------------------------------------------------------
    "nano-banana": ModelCard(
        id="nano-banana",
        provider="gemini",
        name="Nano Banana",
        description="Fast Gemini image generation and editing",
        kind=HandleKind.IMAGE,
        api_model="gemini-2.5-flash-image",
        aspect_ratios=_IMAGE_ASPECT_RATIOS,
        max_reference_images=3,
        tags=["fast"],
    ),
    "nano-banana-pro": ModelCard(
        id="nano-banana-pro",
        provider="gemini",
        name="Nano Banana Pro",
        description="High quality Gemini image generation up to 4K",
        kind=HandleKind.IMAGE,
        api_model="gemini-3-pro-image-preview",
        aspect_ratios=_IMAGE_ASPECT_RATIOS,
        resolutions=["1K", "2K", "4K"],
        max_reference_images=14,
        params={"useGoogleSearch"},
        param_defaults={"useGoogleSearch": False},
        tags=["high-quality"],
    ),
    "gpt-image-1": ModelCard(
        id="gpt-image-1",
        provider="openai",
        name="GPT Image 1",
        kind=HandleKind.IMAGE,
        resolutions=["auto", "1024x1024", "1024x1536", "1536x1024"],
        max_reference_images=1,
        params={"quality", "background"},
        param_options={
            "quality": ["low", "medium", "high"],
            "background": ["auto", "opaque", "transparent"],
        },
        param_defaults={"quality": "low"},
    ),

    # -------------------------------------------------------------------------
    # Video generation (fal.ai queue)
    # -------------------------------------------------------------------------
    "kling-2.1": ModelCard(
        id="kling-2.1",
        provider="fal",
        name="Kling 2.1",
        description="Image-to-video",
        kind=HandleKind.VIDEO,
        api_model="fal-ai/kling-video/v2.1/standard/image-to-video",
        aspect_ratios=["16:9", "9:16", "1:1"],
        max_reference_images=1,
        params={"duration", "negative_prompt", "cfg_scale"},
        param_options={"duration": ["5", "10"]},
        param_defaults={"duration": "5"},
    ),
    "veo-3": ModelCard(
        id="veo-3",
        provider="fal",
        name="Veo 3",
        description="Text-to-video with audio",
        kind=HandleKind.VIDEO,
        api_model="fal-ai/veo3",
        aspect_ratios=["16:9", "9:16"],
        params={"duration", "generate_audio"},
        param_defaults={"duration": "8s"},
    ),
}

DEFAULT_MODELS: dict[HandleKind, str] = {
    HandleKind.TEXT: "gemini-2.5-flash",
    HandleKind.IMAGE: "nano-banana",
    HandleKind.VIDEO: "kling-2.1",
}


class ProviderRegistry:
    """
    Central registry for adapters and model cards.

    Handles:
    - Adapter registration
    - Model card lookup
    - Base URL overrides
    """

    _instance: ProviderRegistry | None = None

    def __new__(cls) -> ProviderRegistry:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._init()
        return cls._instance

    @classmethod
    def instance(cls) -> ProviderRegistry:
        return cls()

    def _init(self) -> None:
        """Initialize the registry."""
        self._providers: dict[str, type[ProviderAdapter]] = {}
        self._model_cards: dict[str, ModelCard] = dict(BUILTIN_MODEL_CARDS)
        self._base_urls: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Adapter registration
    # -------------------------------------------------------------------------

    def register_provider(self, provider_class: type[ProviderAdapter]) -> None:
        """Register an adapter implementation."""
        self._providers[provider_class.id] = provider_class

    def get_provider_class(self, provider_id: str) -> type[ProviderAdapter] | None:
        return self._providers.get(provider_id)

    def list_providers(self) -> list[str]:
        """Get list of registered provider IDs."""
        return list(self._providers.keys())

    def create_provider(
        self,
        provider_id: str,
        api_key: str,
        timeout: float | None = None,
        base_url: str | None = None,
    ) -> ProviderAdapter:
        """
        Instantiate an adapter for one dispatch.

        Instances are never cached so a resolved key lives no longer than
        the call that uses it.
        """
        provider_class = self._providers.get(provider_id)
        if provider_class is None:
            raise InvalidInput(f"Unknown provider: {provider_id}")
        config = ProviderConfig(
            api_key=api_key,
            base_url=base_url or self._base_urls.get(provider_id),
            timeout=timeout,
        )
        return provider_class(config)

    def set_base_url(self, provider_id: str, base_url: str | None) -> None:
        if base_url:
            self._base_urls[provider_id] = base_url
        else:
            self._base_urls.pop(provider_id, None)

    def configure(self, base_urls: dict[str, str]) -> None:
        """Apply base URL overrides from engine settings."""
        for provider_id, base_url in base_urls.items():
            self.set_base_url(provider_id, base_url)

    # -------------------------------------------------------------------------
    # Model cards
    # -------------------------------------------------------------------------

    def register_model(self, card: ModelCard) -> None:
        """Register a model card."""
        self._model_cards[card.id] = card

    def get_model(self, model_id: str) -> ModelCard | None:
        """Get a model card by ID."""
        return self._model_cards.get(model_id)

    def list_models(
        self,
        provider_id: str | None = None,
        kind: HandleKind | None = None,
    ) -> list[ModelCard]:
        """List model cards, optionally filtered by provider and kind."""
        return [
            m for m in self._model_cards.values()
            if (provider_id is None or m.provider == provider_id)
            and (kind is None or m.kind == kind)
        ]

    def resolve_model(self, kind: HandleKind, data: dict[str, Any]) -> ModelCard:
        """
        Select the model card a generation node is configured with.

        Accepts either ``selectedModel`` ({provider, modelId, displayName},
        as set by the editor's model picker) or a plain ``model`` id.
        A selectedModel naming an unknown model on a registered provider
        yields an ad-hoc card so external catalog models can be used.

        Raises:
            InvalidInput: If the model is unknown or generates another kind
        """
        selected = data.get("selectedModel")
        card: ModelCard | None = None

        if isinstance(selected, dict) and selected.get("modelId"):
            model_id = str(selected["modelId"])
            card = self.get_model(model_id)
            provider_id = selected.get("provider")
            if card is None and provider_id in self._providers:
                card = ModelCard(
                    id=model_id,
                    provider=provider_id,
                    name=selected.get("displayName") or model_id,
                    kind=kind,
                    max_reference_images=8,
                )
            if card is None:
                raise InvalidInput(f"Unknown model: {model_id}")
        else:
            model_id = data.get("model") or DEFAULT_MODELS[kind]
            card = self.get_model(str(model_id))
            if card is None:
                raise InvalidInput(f"Unknown model: {model_id}")

        if card.kind != kind:
            raise InvalidInput(
                f"Model {card.id} generates {card.kind.value}, not {kind.value}"
            )
        return card

    def display_name(self, data: dict[str, Any]) -> str | None:
        """Display name of the model configured in node data, if any."""
        selected = data.get("selectedModel")
        if isinstance(selected, dict):
            name = selected.get("displayName") or selected.get("modelId")
            if name:
                return str(name)
        model_id = data.get("model")
        if not model_id:
            return None
        card = self.get_model(str(model_id))
        return card.name if card else str(model_id)


# ============================================================================
# Module-level convenience functions
# ============================================================================

def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return ProviderRegistry.instance()


def get_model(model_id: str) -> ModelCard | None:
    """Get a model card by ID."""
    return get_registry().get_model(model_id)
