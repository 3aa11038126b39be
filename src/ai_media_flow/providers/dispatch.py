"""
Dispatcher - Executes one node with timeout, retry and credential handling.

Every node variant goes through the same entry point. Local variants run
their in-process executor; generation variants reach a backend through the
DispatchContext handed to their executor.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.core.node_types import NodeType
from ai_media_flow.core.settings import EngineSettings
from ai_media_flow.providers.base import (
    BackendUnavailable,
    DispatchError,
    GenerationRequest,
    GenerationResult,
    InvalidInput,
    MissingCredential,
)
from ai_media_flow.providers.credentials import (
    CachedSecretStore,
    CredentialResolver,
    SecretStore,
)
from ai_media_flow.providers.registry import ProviderRegistry
from ai_media_flow.providers.retry import backoff_delay, should_retry

logger = logging.getLogger(__name__)


@dataclass
class DispatchContext:
    """What an executor may use while running: backends and credentials."""
    node_type: NodeType
    providers: ProviderRegistry
    credentials: CredentialResolver
    timeout: float

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Send a request to the backend owning ``request.model``.

        Raises:
            MissingCredential: No key could be resolved for the provider
            DispatchError: Whatever the adapter raises
        """
        provider_id = request.model.provider
        api_key = await self.credentials.resolve(provider_id)
        if not api_key:
            raise MissingCredential(f"No API key configured for {provider_id}")

        adapter = self.providers.create_provider(
            provider_id,
            api_key,
            timeout=self.timeout,
            base_url=self.credentials.base_url_for(provider_id),
        )
        if adapter.supports_abort:
            return await adapter.generate(request)
        # The call runs to completion; a cancelled run discards its result
        call = asyncio.ensure_future(adapter.generate(request))
        call.add_done_callback(_log_detached_call)
        return await asyncio.shield(call)


def _log_detached_call(call: asyncio.Future) -> None:
    if call.cancelled():
        return
    error = call.exception()
    if error is not None:
        logger.info("Unabortable backend call ended with %s: %s", type(error).__name__, error)


class Dispatcher:
    """
    Executes nodes on behalf of the scheduler.

    Example:
        dispatcher = Dispatcher(settings)
        outputs = await dispatcher.dispatch(node_type, node.data, inputs, resolver)
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        providers: ProviderRegistry | None = None,
        secret_store: SecretStore | CachedSecretStore | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or EngineSettings()
        self.providers = providers or ProviderRegistry.instance()
        if secret_store is not None and not isinstance(secret_store, CachedSecretStore):
            secret_store = CachedSecretStore(secret_store, ttl=self.settings.credential_ttl)
        self.secret_store = secret_store
        self._sleep = sleep
        self.providers.configure(self.settings.provider_base_urls)

    def credentials_for_run(
        self, overrides: dict[str, str] | None = None
    ) -> CredentialResolver:
        """Build the resolver for one run, sharing the secret store cache."""
        return CredentialResolver(overrides=overrides, store=self.secret_store)

    def timeout_for(self, node_type: NodeType) -> float:
        if node_type.timeout is not None:
            return node_type.timeout
        if node_type.generates is HandleKind.VIDEO:
            return self.settings.video_timeout
        return self.settings.dispatch_timeout

    async def dispatch(
        self,
        node_type: NodeType,
        config: dict[str, Any],
        resolved_inputs: dict[str, Any],
        credentials: CredentialResolver | None = None,
    ) -> dict[str, Any]:
        """
        Execute one node and return its outputs by handle name.

        Failed attempts are retried according to RETRY_POLICY. The node
        type's timeout bounds the whole call, retries and backoff included.

        Raises:
            DispatchError: The final failure once retries are exhausted
        """
        if node_type.executor is None:
            raise InvalidInput(f"{node_type.name} nodes cannot be executed")

        credentials = credentials or self.credentials_for_run()
        timeout = self.timeout_for(node_type)
        parameters = {**node_type.get_default_parameters(), **config}
        context = DispatchContext(node_type, self.providers, credentials, timeout)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        attempt = 1
        while True:
            try:
                return await self._attempt(
                    node_type, resolved_inputs, parameters, context, deadline - loop.time()
                )
            except DispatchError as e:
                if not should_retry(e, attempt, self.settings.max_attempts):
                    raise
                delay = backoff_delay(
                    e, attempt, self.settings.backoff_base, self.settings.backoff_max
                )
                if loop.time() + delay >= deadline:
                    logger.info(
                        "%s failed with %s (attempt %d), no time left to retry",
                        node_type.name, e.kind, attempt,
                    )
                    raise
                logger.info(
                    "%s failed with %s (attempt %d/%d), retrying in %.1fs",
                    node_type.name, e.kind, attempt, self.settings.max_attempts, delay,
                )
                await self._sleep(delay)
                attempt += 1

    async def _attempt(
        self,
        node_type: NodeType,
        inputs: dict[str, Any],
        parameters: dict[str, Any],
        context: DispatchContext,
        remaining: float,
    ) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(
                node_type.executor(inputs, parameters, context), max(remaining, 0)
            )
        except asyncio.TimeoutError:
            raise BackendUnavailable(
                f"{node_type.name} timed out after {context.timeout:g}s"
            ) from None
