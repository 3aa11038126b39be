"""
Generation Providers and the Dispatch Layer.

This package provides integrations with the generation backends:
- Google Gemini: Text, Nano Banana image models
- OpenAI: GPT-4.1 text, GPT Image
- Anthropic: Claude text
- Kimi: OpenAI-compatible text
- fal.ai: Queue-based video models

and the Dispatcher that runs a node against them with credential
resolution, timeouts and retries.

Usage:
    from ai_media_flow.providers import Dispatcher, get_registry

    registry = get_registry()
    models = registry.list_models("gemini")

    dispatcher = Dispatcher()
    outputs = await dispatcher.dispatch(node_type, node.data, inputs)
"""

from ai_media_flow.providers.base import (
    BackendUnavailable,
    DispatchError,
    GenerationRequest,
    GenerationResult,
    InvalidInput,
    MalformedResponse,
    MissingCredential,
    ModelCard,
    ProviderAdapter,
    ProviderConfig,
    RateLimited,
    Unauthorized,
)

from ai_media_flow.providers.registry import (
    BUILTIN_MODEL_CARDS,
    ProviderRegistry,
    get_model,
    get_registry,
)

from ai_media_flow.providers.credentials import (
    CachedSecretStore,
    CredentialResolver,
    SecretStore,
    hash_key_for_logging,
    is_valid_key_format,
    resolve_credential,
)
from ai_media_flow.providers.retry import RETRY_POLICY, RetryRule
from ai_media_flow.providers.dispatch import DispatchContext, Dispatcher

# Import providers to register them
from ai_media_flow.providers.anthropic import AnthropicProvider
from ai_media_flow.providers.fal import FalProvider
from ai_media_flow.providers.gemini import GeminiProvider
from ai_media_flow.providers.kimi import KimiProvider
from ai_media_flow.providers.openai import OpenAIProvider


# Auto-register providers
def _register_providers():
    registry = get_registry()
    registry.register_provider(GeminiProvider)
    registry.register_provider(OpenAIProvider)
    registry.register_provider(AnthropicProvider)
    registry.register_provider(KimiProvider)
    registry.register_provider(FalProvider)

_register_providers()


__all__ = [
    # Base classes
    "ProviderAdapter",
    "ModelCard",
    "ProviderConfig",
    "GenerationRequest",
    "GenerationResult",
    # Exceptions
    "DispatchError",
    "MissingCredential",
    "InvalidInput",
    "Unauthorized",
    "RateLimited",
    "BackendUnavailable",
    "MalformedResponse",
    # Registry
    "ProviderRegistry",
    "get_registry",
    "get_model",
    "BUILTIN_MODEL_CARDS",
    # Credentials
    "CredentialResolver",
    "CachedSecretStore",
    "SecretStore",
    "resolve_credential",
    "hash_key_for_logging",
    "is_valid_key_format",
    # Dispatch
    "Dispatcher",
    "DispatchContext",
    "RETRY_POLICY",
    "RetryRule",
    # Providers
    "GeminiProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "KimiProvider",
    "FalProvider",
]
