"""Tests for the provider gateway and vendor adapters."""

import asyncio

import httpx
import openai
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from assistant_hub.adapters.provider_gateway import (
    BACKENDS,
    complete,
    get_backend,
    normalize_model,
)
from assistant_hub.adapters.vendor_adapter_gemini import GeminiBackend, build_gemini_payload
from assistant_hub.infra.error_handler import (
    AuthInvalidError,
    ConfigurationError,
    ErrorCategory,
    RateLimitedError,
    UnavailableError,
    classify_status,
)
from assistant_hub.models.tenant import TenantAIConfig

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


def _config(provider="gemini", model="", api_key="test-key", web_search=False, max_tokens=800):
    return TenantAIConfig(
        tenant_id="tenant-1",
        provider=provider,
        model=model,
        max_tokens=max_tokens,
        api_key=api_key,
        web_search=web_search,
    )


def _gemini_client(status_code=200, json_body=None, text="", headers=None):
    """httpx.AsyncClient replacement returning one canned response."""
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.text = text
    mock_response.headers = headers or {}
    mock_response.json.return_value = json_body or {}

    mock_client_instance = AsyncMock()
    mock_client_instance.post = AsyncMock(return_value=mock_response)
    mock_context_manager = AsyncMock()
    mock_context_manager.__aenter__ = AsyncMock(return_value=mock_client_instance)
    mock_context_manager.__aexit__ = AsyncMock(return_value=None)
    return mock_context_manager, mock_client_instance


def _openai_client(content="Olá!", error=None):
    mock_client = MagicMock()
    if error is not None:
        mock_client.chat.completions.create = AsyncMock(side_effect=error)
    else:
        completion = MagicMock()
        completion.choices = [MagicMock(message=MagicMock(content=content))]
        mock_client.chat.completions.create = AsyncMock(return_value=completion)
    mock_client.close = AsyncMock()
    return mock_client


def _status_error(error_class, status_code, body=None, headers=None):
    response = httpx.Response(status_code, headers=headers, request=httpx.Request("POST", OPENAI_URL))
    return error_class(message="provider error", response=response, body=body)


class TestModelNormalization:
    """Model identifiers and backend selection."""

    def test_strips_vendor_prefix(self):
        assert normalize_model("google/gemini-2.5-pro", BACKENDS["gemini"]) == "gemini-2.5-pro"
        assert normalize_model("openai/gpt-4o", BACKENDS["openai"]) == "gpt-4o"

    def test_foreign_model_falls_back_to_default(self):
        assert normalize_model("gpt-4o", BACKENDS["gemini"]) == BACKENDS["gemini"].default_model
        assert normalize_model("gemini-2.5-flash", BACKENDS["openai"]) == BACKENDS["openai"].default_model

    def test_empty_model_uses_default(self):
        assert normalize_model("", BACKENDS["openai"]) == BACKENDS["openai"].default_model
        assert normalize_model(None, BACKENDS["gemini"]) == BACKENDS["gemini"].default_model

    def test_provider_lookup_is_case_insensitive(self):
        assert get_backend("OpenAI").name == "openai"

    def test_unknown_provider_raises_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc_info:
            get_backend("anthropic-x")
        assert exc_info.value.status_code == 400
        assert exc_info.value.category == ErrorCategory.CONFIGURATION


class TestStatusClassification:
    """Mapping of provider statuses onto the failure taxonomy."""

    def test_429_is_rate_limited(self):
        error = classify_status(429, "", "gemini", retry_after=12)
        assert isinstance(error, RateLimitedError)
        assert error.retry_after == 12
        assert error.status_code == 429

    def test_401_is_auth_invalid(self):
        assert isinstance(classify_status(401, "", "openai"), AuthInvalidError)

    def test_key_shaped_400_is_auth_invalid(self):
        body = '{"error": {"message": "API key not valid. Please pass a valid API key."}}'
        assert isinstance(classify_status(400, body, "gemini"), AuthInvalidError)

    def test_other_400_is_unavailable(self):
        error = classify_status(400, '{"error": {"message": "Invalid value at contents"}}', "gemini")
        assert isinstance(error, UnavailableError)
        assert error.upstream_status == 400

    def test_500_is_unavailable(self):
        error = classify_status(503, "overloaded", "openai")
        assert isinstance(error, UnavailableError)
        assert error.status_code == 500


class TestGatewayComplete:
    """End-to-end gateway behaviour with the network mocked."""

    @pytest.mark.asyncio
    async def test_unknown_provider_makes_no_network_call(self):
        with patch("httpx.AsyncClient") as mock_httpx, \
                patch("assistant_hub.adapters.vendor_adapter_openai.AsyncOpenAI") as mock_openai:
            with pytest.raises(ConfigurationError):
                await complete(_config(provider="mistral"), "system", [], "hi")

        mock_httpx.assert_not_called()
        mock_openai.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_key_makes_no_network_call(self):
        with patch("httpx.AsyncClient") as mock_httpx:
            with pytest.raises(ConfigurationError) as exc_info:
                await complete(_config(api_key="   "), "system", [], "hi")

        mock_httpx.assert_not_called()
        assert "API key" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_gemini_success(self):
        body = {"candidates": [{"content": {"parts": [{"text": "Olá, "}, {"text": "tudo bem?"}]}}]}
        mock_context_manager, mock_client = _gemini_client(json_body=body)

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            text = await complete(
                _config(model="models/gemini-2.5-pro"),
                "system prompt",
                [{"role": "user", "content": "oi"}, {"role": "assistant", "content": "olá"}],
                "como vai?",
            )

        assert text == "Olá, tudo bem?"
        url = mock_client.post.call_args[0][0]
        assert url.endswith("/models/gemini-2.5-pro:generateContent")
        kwargs = mock_client.post.call_args[1]
        assert kwargs["headers"]["x-goog-api-key"] == "test-key"
        payload = kwargs["json"]
        assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
        assert payload["systemInstruction"]["parts"][0]["text"] == "system prompt"
        assert "tools" not in payload

    @pytest.mark.asyncio
    async def test_gemini_web_search_adds_tool_and_raises_token_bound(self):
        body = {"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}
        mock_context_manager, mock_client = _gemini_client(json_body=body)

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            await complete(_config(web_search=True, max_tokens=800), "system", [], "news?")

        payload = mock_client.post.call_args[1]["json"]
        assert payload["tools"] == [{"google_search": {}}]
        assert payload["generationConfig"]["maxOutputTokens"] >= 4096

    @pytest.mark.asyncio
    async def test_gemini_rate_limit(self):
        mock_context_manager, _ = _gemini_client(status_code=429, text="quota", headers={"retry-after": "30"})

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            with pytest.raises(RateLimitedError) as exc_info:
                await complete(_config(), "system", [], "hi")

        assert exc_info.value.retry_after == 30.0

    @pytest.mark.asyncio
    async def test_gemini_non_json_success_is_unavailable(self):
        mock_context_manager, mock_client = _gemini_client(status_code=200, text="<html>proxy error</html>")
        response = mock_client.post.return_value
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            with pytest.raises(UnavailableError) as exc_info:
                await complete(_config(), "system", [], "hi")

        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "gemini"
        assert "Expecting value" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_gemini_json_array_body_is_unavailable(self):
        mock_context_manager, mock_client = _gemini_client(status_code=200)
        mock_client.post.return_value.json.return_value = ["not", "an", "object"]

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            with pytest.raises(UnavailableError):
                await complete(_config(), "system", [], "hi")

    @pytest.mark.asyncio
    async def test_gemini_invalid_key_on_400(self):
        mock_context_manager, _ = _gemini_client(
            status_code=400,
            text='{"error": {"code": 400, "message": "API key not valid.", "status": "INVALID_ARGUMENT"}}',
        )

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            with pytest.raises(AuthInvalidError):
                await complete(_config(), "system", [], "hi")

    @pytest.mark.asyncio
    async def test_gemini_transport_error_is_unavailable(self):
        mock_client_instance = AsyncMock()
        mock_client_instance.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        mock_context_manager = AsyncMock()
        mock_context_manager.__aenter__ = AsyncMock(return_value=mock_client_instance)
        mock_context_manager.__aexit__ = AsyncMock(return_value=None)

        with patch("httpx.AsyncClient", return_value=mock_context_manager):
            with pytest.raises(UnavailableError):
                await complete(_config(), "system", [], "hi")

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self):
        async def slow_complete(self, *args, **kwargs):
            await asyncio.sleep(5)
            return "late"

        with patch.object(GeminiBackend, "complete", new=slow_complete):
            with pytest.raises(UnavailableError) as exc_info:
                await complete(_config(), "system", [], "hi", timeout=0.05)

        assert "in time" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_openai_success_ignores_web_search(self):
        mock_client = _openai_client(content="Resposta")

        with patch("assistant_hub.adapters.vendor_adapter_openai.AsyncOpenAI", return_value=mock_client) as mock_cls:
            text = await complete(
                _config(provider="openai", model="gpt-4o", web_search=True, max_tokens=500),
                "system",
                [{"role": "assistant", "content": "oi"}],
                "hi",
            )

        assert text == "Resposta"
        assert mock_cls.call_args[1]["max_retries"] == 0
        request = mock_client.chat.completions.create.call_args[1]
        assert request["model"] == "gpt-4o"
        assert request["max_tokens"] == 500
        assert "tools" not in request
        assert request["messages"][0] == {"role": "system", "content": "system"}
        assert request["messages"][-1] == {"role": "user", "content": "hi"}
        mock_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error_class,status_code,body,expected",
        [
            (openai.RateLimitError, 429, None, RateLimitedError),
            (openai.AuthenticationError, 401, None, AuthInvalidError),
            (openai.BadRequestError, 400, {"error": {"message": "Incorrect API key provided: sk-***"}}, AuthInvalidError),
            (openai.BadRequestError, 400, {"error": {"message": "max_tokens is too large"}}, UnavailableError),
            (openai.InternalServerError, 500, None, UnavailableError),
        ],
    )
    async def test_openai_error_mapping(self, error_class, status_code, body, expected):
        mock_client = _openai_client(error=_status_error(error_class, status_code, body))

        with patch("assistant_hub.adapters.vendor_adapter_openai.AsyncOpenAI", return_value=mock_client):
            with pytest.raises(expected):
                await complete(_config(provider="openai"), "system", [], "hi")

        # Exactly one attempt: nothing retries
        assert mock_client.chat.completions.create.await_count == 1

    @pytest.mark.asyncio
    async def test_openai_connection_error_is_unavailable(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", OPENAI_URL))
        mock_client = _openai_client(error=error)

        with patch("assistant_hub.adapters.vendor_adapter_openai.AsyncOpenAI", return_value=mock_client):
            with pytest.raises(UnavailableError):
                await complete(_config(provider="openai"), "system", [], "hi")


class TestGeminiPayload:
    """generateContent request body."""

    def test_temperature_only_when_set(self):
        payload = build_gemini_payload("s", [], "u", max_tokens=100)
        assert payload["generationConfig"] == {"maxOutputTokens": 100}

        payload = build_gemini_payload("s", [], "u", max_tokens=100, temperature=0.2)
        assert payload["generationConfig"]["temperature"] == 0.2
