"""
Tests for the dispatch layer: retry policy, timeouts and backend calls.
"""

import asyncio
import logging
import time

import pytest

from ai_media_flow.core.data_types import HandleKind
from ai_media_flow.core.node_types import (
    NodeCategory,
    NodeType,
    NodeVariant,
    ParameterDefinition,
)
from ai_media_flow.core.settings import EngineSettings
from ai_media_flow.providers.base import (
    BackendUnavailable,
    GenerationRequest,
    GenerationResult,
    InvalidInput,
    MissingCredential,
    ModelCard,
    ProviderAdapter,
    RateLimited,
    Unauthorized,
)
from ai_media_flow.providers.credentials import CredentialResolver
from ai_media_flow.providers.dispatch import DispatchContext, Dispatcher
from ai_media_flow.providers.registry import ProviderRegistry
from ai_media_flow.providers.retry import backoff_delay, should_retry


class FakeSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def scripted_node(*outcomes, timeout=None, generates=HandleKind.TEXT):
    """A node type whose executor raises or returns ``outcomes`` in turn."""
    calls = []

    async def executor(inputs, parameters, context):
        calls.append(parameters)
        outcome = outcomes[len(calls) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    node_type = NodeType(
        variant=NodeVariant.GENERATE_TEXT,
        name="Scripted",
        category=NodeCategory.GENERATION,
        parameters=[ParameterDefinition.integer("maxTokens", "Max Tokens", default=1024)],
        generates=generates,
        timeout=timeout,
        executor=executor,
    )
    return node_type, calls


@pytest.fixture
def sleep():
    return FakeSleep()


@pytest.fixture
def dispatcher(sleep):
    return Dispatcher(EngineSettings(max_attempts=3), sleep=sleep)


class TestRetry:
    """Tests for Dispatcher retry behaviour."""

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self, dispatcher, sleep):
        node_type, calls = scripted_node(
            RateLimited("slow down", retry_after=1),
            RateLimited("slow down", retry_after=2),
            {"text": "ok"},
        )
        outputs = await dispatcher.dispatch(node_type, {}, {})

        assert outputs == {"text": "ok"}
        assert len(calls) == 3
        assert sleep.delays == [1, 2]
        assert sum(sleep.delays) >= 3

    @pytest.mark.asyncio
    async def test_rate_limit_without_hint_is_not_retried(self, dispatcher, sleep):
        node_type, calls = scripted_node(RateLimited("quota"), {"text": "ok"})
        with pytest.raises(RateLimited):
            await dispatcher.dispatch(node_type, {}, {})
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_backend_unavailable_retries_until_exhausted(self, dispatcher, sleep):
        node_type, calls = scripted_node(
            BackendUnavailable("down"),
            BackendUnavailable("down"),
            BackendUnavailable("still down"),
        )
        with pytest.raises(BackendUnavailable, match="still down"):
            await dispatcher.dispatch(node_type, {}, {})
        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        Unauthorized("bad key"),
        InvalidInput("bad prompt"),
        MissingCredential("no key"),
    ])
    async def test_permanent_errors_are_not_retried(self, dispatcher, error):
        node_type, calls = scripted_node(error, {"text": "ok"})
        with pytest.raises(type(error)):
            await dispatcher.dispatch(node_type, {}, {})
        assert len(calls) == 1


class TestDispatch:
    """Tests for Dispatcher.dispatch()."""

    @pytest.mark.asyncio
    async def test_timeout_becomes_backend_unavailable(self, sleep):
        async def hang(inputs, parameters, context):
            await asyncio.sleep(10)

        node_type, _ = scripted_node(timeout=0.01)
        node_type.executor = hang
        dispatcher = Dispatcher(EngineSettings(max_attempts=1), sleep=sleep)

        with pytest.raises(BackendUnavailable, match="timed out"):
            await dispatcher.dispatch(node_type, {}, {})

    @pytest.mark.asyncio
    async def test_timeout_bounds_the_whole_call(self):
        calls = []

        async def hang(inputs, parameters, context):
            calls.append(parameters)
            await asyncio.sleep(10)

        node_type, _ = scripted_node(timeout=0.2)
        node_type.executor = hang
        dispatcher = Dispatcher(EngineSettings(max_attempts=3, backoff_base=0))

        started = time.monotonic()
        with pytest.raises(BackendUnavailable, match="timed out"):
            await dispatcher.dispatch(node_type, {}, {})

        assert time.monotonic() - started < 0.5
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_no_retry_when_backoff_outlasts_timeout(self, sleep):
        node_type, calls = scripted_node(
            BackendUnavailable("down"), {"text": "ok"}, timeout=1
        )
        dispatcher = Dispatcher(EngineSettings(max_attempts=3, backoff_base=5), sleep=sleep)

        with pytest.raises(BackendUnavailable, match="down"):
            await dispatcher.dispatch(node_type, {}, {})
        assert len(calls) == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_parameters_merge_defaults(self, dispatcher):
        node_type, calls = scripted_node({"text": "ok"})
        await dispatcher.dispatch(node_type, {"temperature": 0.2}, {})
        assert calls[0] == {"maxTokens": 1024, "temperature": 0.2}

    @pytest.mark.asyncio
    async def test_node_without_executor(self, dispatcher):
        node_type, _ = scripted_node()
        node_type.executor = None
        with pytest.raises(InvalidInput):
            await dispatcher.dispatch(node_type, {}, {})

    def test_timeout_for(self):
        dispatcher = Dispatcher(EngineSettings(dispatch_timeout=30, video_timeout=300))
        assert dispatcher.timeout_for(scripted_node()[0]) == 30
        assert dispatcher.timeout_for(scripted_node(generates=HandleKind.VIDEO)[0]) == 300
        assert dispatcher.timeout_for(scripted_node(timeout=5)[0]) == 5


class EchoProvider(ProviderAdapter):
    id = "echo"
    name = "Echo"
    base_url = "https://echo.invalid"
    kinds = frozenset({HandleKind.TEXT})

    async def generate(self, request):
        return GenerationResult(
            model_id=request.model.id,
            text=f"{self.api_key}|{self.config.timeout}|{request.prompt}",
        )


class TestDispatchContext:
    """Tests for DispatchContext.generate()."""

    @pytest.fixture
    def providers(self):
        registry = ProviderRegistry.instance()
        registry.register_provider(EchoProvider)
        yield registry
        registry._providers.pop(EchoProvider.id, None)

    @pytest.fixture
    def request_(self):
        card = ModelCard(id="echo-1", provider="echo", name="Echo 1", kind=HandleKind.TEXT)
        return GenerationRequest(model=card, prompt="hello")

    @pytest.mark.asyncio
    async def test_uses_resolved_key_and_timeout(self, providers, request_, tmp_path):
        resolver = CredentialResolver(
            overrides={"echo": "override-key"}, environ={}, dotenv_path=tmp_path / ".env"
        )
        context = DispatchContext(scripted_node()[0], providers, resolver, timeout=12.0)
        result = await context.generate(request_)
        assert result.text == "override-key|12.0|hello"

    @pytest.mark.asyncio
    async def test_missing_credential(self, providers, request_, tmp_path):
        resolver = CredentialResolver(environ={}, dotenv_path=tmp_path / ".env")
        context = DispatchContext(scripted_node()[0], providers, resolver, timeout=12.0)
        with pytest.raises(MissingCredential):
            await context.generate(request_)


class UnabortableProvider(ProviderAdapter):
    id = "unabortable"
    name = "Unabortable"
    base_url = "https://unabortable.invalid"
    kinds = frozenset({HandleKind.TEXT})
    supports_abort = False

    started = 0
    finished = 0

    async def generate(self, request):
        UnabortableProvider.started += 1
        await asyncio.sleep(0.1)
        UnabortableProvider.finished += 1
        raise BackendUnavailable("late failure")


@pytest.mark.asyncio
async def test_unabortable_call_runs_once_and_is_collected(tmp_path, caplog):
    providers = ProviderRegistry.instance()
    providers.register_provider(UnabortableProvider)
    card = ModelCard(
        id="unabortable-1", provider="unabortable", name="Unabortable 1", kind=HandleKind.TEXT
    )

    async def executor(inputs, parameters, context):
        result = await context.generate(GenerationRequest(model=card, prompt="hi"))
        return {"text": result.text}

    node_type, _ = scripted_node(timeout=0.03)
    node_type.executor = executor
    resolver = CredentialResolver(
        overrides={"unabortable": "key"}, environ={}, dotenv_path=tmp_path / ".env"
    )
    dispatcher = Dispatcher(EngineSettings(max_attempts=3, backoff_base=0), providers)

    try:
        with caplog.at_level(logging.INFO, logger="ai_media_flow.providers.dispatch"):
            with pytest.raises(BackendUnavailable, match="timed out"):
                await dispatcher.dispatch(node_type, {}, {}, resolver)
            assert UnabortableProvider.started == 1
            assert UnabortableProvider.finished == 0

            await asyncio.sleep(0.2)
    finally:
        providers._providers.pop(UnabortableProvider.id, None)

    assert UnabortableProvider.started == 1
    assert UnabortableProvider.finished == 1
    assert "Unabortable backend call ended with BackendUnavailable" in caplog.text


class TestRetryPolicy:
    """Tests for the retry helpers."""

    def test_should_retry_stops_at_max_attempts(self):
        error = BackendUnavailable("down")
        assert should_retry(error, 1, 3)
        assert should_retry(error, 2, 3)
        assert not should_retry(error, 3, 3)

    def test_backoff_is_exponential_and_capped(self):
        error = BackendUnavailable("down")
        assert backoff_delay(error, 1) == 1.0
        assert backoff_delay(error, 3) == 4.0
        assert backoff_delay(error, 10, maximum=30.0) == 30.0

    def test_backoff_uses_longer_hint(self):
        assert backoff_delay(RateLimited("x", retry_after=7), 1) == 7
        assert backoff_delay(RateLimited("x", retry_after=90), 1, maximum=30) == 30


class PlainStore:
    async def fetch(self, secret_name):
        return "stored-key-123"


@pytest.mark.asyncio
async def test_secret_store_is_cached_with_configured_ttl(monkeypatch, tmp_path):
    monkeypatch.delenv("ECHO_API_KEY", raising=False)
    monkeypatch.delenv("SECRET_NAME_ECHO", raising=False)
    monkeypatch.delenv("SECRET_NAME", raising=False)
    monkeypatch.chdir(tmp_path)

    dispatcher = Dispatcher(EngineSettings(credential_ttl=42), secret_store=PlainStore())
    assert dispatcher.secret_store._ttl == 42
    assert await dispatcher.credentials_for_run().resolve("echo") == "stored-key-123"
