"""Tests for embedding and generation providers."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from issue_intelligence.exceptions import (
    ProviderAuthenticationError,
    ProviderConnectionError,
    ProviderNotConfiguredError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from issue_intelligence.providers.claude import ANTHROPIC_VERSION, ClaudeGenerator
from issue_intelligence.providers.embeddings import (
    BaseEmbeddings,
    OllamaEmbeddings,
    OpenAIEmbeddings,
    get_available_embedding_providers,
    get_embeddings,
    resolve_embeddings,
)
from issue_intelligence.providers.generation import (
    JSON_INSTRUCTION,
    OllamaGenerator,
    get_available_generation_providers,
    get_generator,
    resolve_generator,
)
from issue_intelligence.services.schemas import (
    DependencyAnalysisOutput,
    GeneratedLabelProposal,
)
from tests.fakes import FakeGenerator, make_settings


def _mock_client(mock_client_class, *responses):
    """Wire a patched httpx.AsyncClient to return the given responses in order."""
    mock_client = AsyncMock()
    mock_client.post = AsyncMock(side_effect=list(responses))
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_class.return_value = mock_client
    return mock_client


def _response(status_code=200, payload=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.json.return_value = payload or {}
    response.raise_for_status = MagicMock()
    return response


class TestCosineSimilarity:
    """Tests for BaseEmbeddings.cosine_similarity."""

    def test_identical_vectors(self):
        """Test that identical vectors score 1.0."""
        assert BaseEmbeddings.cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        """Test that orthogonal vectors score 0.0."""
        assert BaseEmbeddings.cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_zero_vector(self):
        """Test that a zero vector scores 0.0 instead of dividing by zero."""
        assert BaseEmbeddings.cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        """Test that vectors of different length are rejected."""
        with pytest.raises(ValueError):
            BaseEmbeddings.cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])


class TestOpenAIEmbeddings:
    """Tests for OpenAIEmbeddings."""

    @pytest.mark.asyncio
    async def test_embed_batch_orders_by_index_and_batches(self):
        """Test that vectors follow input order across several requests."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class,
                _response(payload={"data": [
                    {"index": 1, "embedding": [0.0, 1.0]},
                    {"index": 0, "embedding": [1.0, 0.0]},
                ]}),
                _response(payload={"data": [{"index": 0, "embedding": [1.0, 1.0]}]}),
            )

            embeddings = OpenAIEmbeddings(
                api_key="sk-test", base_url="http://openai.test/v1/", batch_size=2
            )
            result = await embeddings.embed_batch(["a", "b", "c"])

            assert result == [[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]
            assert mock_client.post.call_count == 2
            first_call = mock_client.post.call_args_list[0]
            assert first_call.args[0] == "http://openai.test/v1/embeddings"
            assert first_call.kwargs["json"]["input"] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_embed_batch_empty(self):
        """Test that no request is made for an empty batch."""
        with patch("httpx.AsyncClient") as mock_client_class:
            embeddings = OpenAIEmbeddings(api_key="sk-test")
            assert await embeddings.embed_batch([]) == []
            mock_client_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        """Test that 401 maps to an authentication error without retrying."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(status_code=401))

            embeddings = OpenAIEmbeddings(api_key="sk-test")
            with pytest.raises(ProviderAuthenticationError):
                await embeddings.embed_batch(["a"])

            assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_raised(self):
        """Test that 429 is retried and finally raised with retry_after."""
        limited = _response(status_code=429, headers={"retry-after": "7"})
        with patch("httpx.AsyncClient") as mock_client_class, patch.object(
            OpenAIEmbeddings._request.retry, "sleep", AsyncMock()
        ):
            mock_client = _mock_client(mock_client_class, limited, limited, limited)

            embeddings = OpenAIEmbeddings(api_key="sk-test")
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await embeddings.embed_batch(["a"])

            assert exc_info.value.retry_after == 7.0
            assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_count_mismatch(self):
        """Test that a short response is a response error."""
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(
                mock_client_class,
                _response(payload={"data": [{"index": 0, "embedding": [1.0]}]}),
            )

            embeddings = OpenAIEmbeddings(api_key="sk-test")
            with pytest.raises(ProviderResponseError):
                await embeddings.embed_batch(["a", "b"])

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        """Test that a missing key fails before any request."""
        with patch("issue_intelligence.providers.embeddings.settings", make_settings()):
            embeddings = OpenAIEmbeddings()
            assert embeddings.is_available() is False
            with pytest.raises(ProviderAuthenticationError):
                await embeddings.embed_batch(["a"])


class TestOllamaEmbeddings:
    """Tests for OllamaEmbeddings."""

    @pytest.mark.asyncio
    async def test_embed_batch(self):
        """Test one batch request to the embed endpoint."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class,
                _response(payload={"embeddings": [[1.0, 2.0], [3.0, 4.0]]}),
            )

            embeddings = OllamaEmbeddings(base_url="http://ollama.test/", model="nomic-embed-text")
            result = await embeddings.embed_batch(["a", "b"])

            assert result == [[1.0, 2.0], [3.0, 4.0]]
            call = mock_client.post.call_args
            assert call.args[0] == "http://ollama.test/api/embed"
            assert call.kwargs["json"] == {"model": "nomic-embed-text", "input": ["a", "b"]}


class TestEmbeddingRegistry:
    """Tests for embedding provider selection."""

    def test_registered_providers(self):
        """Test that all built-in providers are registered."""
        providers = get_available_embedding_providers()
        assert {"openai", "ollama", "sentence-transformer"} <= set(providers)

    def test_unknown_provider(self):
        """Test that an unknown name is a configuration error."""
        with pytest.raises(ProviderNotConfiguredError):
            get_embeddings("word2vec")

    def test_resolve_unconfigured_is_none(self):
        """Test that no configured provider resolves to None."""
        with patch("issue_intelligence.providers.embeddings.settings", make_settings()):
            assert resolve_embeddings() is None

    def test_resolve_openai_without_key_is_none(self):
        """Test that an unusable provider resolves to None."""
        config = make_settings(EMBEDDING_PROVIDER="openai")
        with patch("issue_intelligence.providers.embeddings.settings", config):
            assert resolve_embeddings() is None

    def test_resolve_openai_with_key(self):
        """Test resolving a configured provider."""
        config = make_settings(EMBEDDING_PROVIDER="openai", OPENAI_API_KEY="sk-test")
        with patch("issue_intelligence.providers.embeddings.settings", config):
            embeddings = resolve_embeddings()
            assert isinstance(embeddings, OpenAIEmbeddings)


class TestClaudeGenerator:
    """Tests for ClaudeGenerator."""

    @pytest.mark.asyncio
    async def test_generate_sends_system_prompt(self):
        """Test the request shape and text extraction."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class,
                _response(payload={"content": [
                    {"type": "text", "text": "Hello, "},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": "World!"},
                ]}),
            )

            generator = ClaudeGenerator(api_key="test-key", model="claude-test")
            result = await generator.generate("Say hello", system="Be brief")

            assert result == "Hello, World!"
            call = mock_client.post.call_args
            assert call.kwargs["json"]["system"] == "Be brief"
            assert call.kwargs["json"]["model"] == "claude-test"
            assert call.kwargs["headers"]["x-api-key"] == "test-key"
            assert call.kwargs["headers"]["anthropic-version"] == ANTHROPIC_VERSION

    @pytest.mark.asyncio
    async def test_generate_structured_prefills_brace(self):
        """Test that structured requests split system and user and prefill the reply."""
        continuation = '"relationships": [{"target_id": "i2", "sub_type": "blocks", "confidence": 0.9}]}'
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class,
                _response(payload={"content": [{"type": "text", "text": continuation}]}),
            )

            generator = ClaudeGenerator(api_key="test-key")
            output = await generator.generate_structured(
                "You classify dependencies", "classify", DependencyAnalysisOutput
            )

            assert output.relationships[0].target_id == "i2"
            assert output.relationships[0].sub_type == "blocks"
            payload = mock_client.post.call_args.kwargs["json"]
            assert payload["system"] == "You classify dependencies"
            assert payload["messages"][0]["role"] == "user"
            assert payload["messages"][0]["content"].startswith("classify")
            assert payload["messages"][-1] == {"role": "assistant", "content": "{"}

    @pytest.mark.asyncio
    async def test_overloaded_is_retried(self):
        """Test that server errors and overload are retried as connection errors."""
        with patch("httpx.AsyncClient") as mock_client_class, patch.object(
            ClaudeGenerator.generate.retry, "sleep", AsyncMock()
        ):
            mock_client = _mock_client(
                mock_client_class,
                _response(status_code=529),
                _response(status_code=503),
                _response(payload={"content": [{"type": "text", "text": "ok"}]}),
            )

            generator = ClaudeGenerator(api_key="test-key")
            result = await generator.generate("hello")

            assert result == "ok"
            assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self):
        """Test that persistent overload surfaces as a connection error."""
        with patch("httpx.AsyncClient") as mock_client_class, patch.object(
            ClaudeGenerator.generate.retry, "sleep", AsyncMock()
        ):
            overloaded = _response(status_code=529)
            mock_client = _mock_client(mock_client_class, overloaded, overloaded, overloaded)

            generator = ClaudeGenerator(api_key="test-key")
            with pytest.raises(ProviderConnectionError):
                await generator.generate("hello")
            assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_bad_request_not_retried(self):
        """Test that other client errors fail once as response errors."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(status_code=400))

            generator = ClaudeGenerator(api_key="test-key")
            with pytest.raises(ProviderResponseError):
                await generator.generate("hello")
            assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_reply_without_text(self):
        """Test that a reply with no text blocks is a response error."""
        with patch("httpx.AsyncClient") as mock_client_class:
            _mock_client(
                mock_client_class,
                _response(payload={"content": [{"type": "tool_use", "id": "x"}], "stop_reason": "end_turn"}),
            )

            generator = ClaudeGenerator(api_key="test-key")
            with pytest.raises(ProviderResponseError):
                await generator.generate("hello")

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        """Test that 401 maps to an authentication error."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(mock_client_class, _response(status_code=401))

            generator = ClaudeGenerator(api_key="bad-key")
            with pytest.raises(ProviderAuthenticationError):
                await generator.generate("hello")
            assert mock_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit(self):
        """Test that 429 maps to a rate limit error after retries."""
        limited = _response(status_code=429, headers={"retry-after": "30"})
        with patch("httpx.AsyncClient") as mock_client_class, patch.object(
            ClaudeGenerator.generate.retry, "sleep", AsyncMock()
        ):
            mock_client = _mock_client(mock_client_class, limited, limited, limited)

            generator = ClaudeGenerator(api_key="test-key")
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await generator.generate("hello")

            assert exc_info.value.retry_after == 30.0
            assert mock_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test that generating without a key fails fast."""
        with patch("issue_intelligence.providers.claude.settings", make_settings()):
            generator = ClaudeGenerator()
            assert generator.is_available() is False
            with pytest.raises(ProviderAuthenticationError):
                await generator.generate("hello")


class TestOllamaGenerator:
    """Tests for OllamaGenerator."""

    @pytest.mark.asyncio
    async def test_generate(self):
        """Test generation through the Ollama API."""
        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = _mock_client(
                mock_client_class, _response(payload={"response": "Hello, World!"})
            )

            generator = OllamaGenerator(base_url="http://ollama.test/", model="llama3.1:8b")
            result = await generator.generate("Say hello", system="Be brief")

            assert result == "Hello, World!"
            call = mock_client.post.call_args
            assert call.args[0] == "http://ollama.test/api/generate"
            assert call.kwargs["json"]["system"] == "Be brief"
            assert call.kwargs["json"]["stream"] is False

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Test that connection failures are retried then raised as provider errors."""
        with patch("httpx.AsyncClient") as mock_client_class, patch.object(
            OllamaGenerator.generate.retry, "sleep", AsyncMock()
        ):
            mock_client = AsyncMock()
            mock_client.post = AsyncMock(side_effect=httpx.ConnectError("refused"))
            mock_client.__aenter__ = AsyncMock(return_value=mock_client)
            mock_client.__aexit__ = AsyncMock(return_value=None)
            mock_client_class.return_value = mock_client

            generator = OllamaGenerator(base_url="http://ollama.test")
            with pytest.raises(ProviderConnectionError):
                await generator.generate("hello")
            assert mock_client.post.call_count == 3


class TestStructuredGeneration:
    """Tests for BaseGenerator.generate_structured."""

    @pytest.mark.asyncio
    async def test_prompt_carries_schema_and_system(self):
        """Test that the schema and JSON instruction are appended to the prompt."""
        generator = FakeGenerator({"relationships": []})
        await generator.generate_structured("be precise", "classify these", DependencyAnalysisOutput)

        prompt, system = generator.calls[0]
        assert system == "be precise"
        assert prompt.startswith("classify these")
        assert "Respond with JSON matching this schema" in prompt
        assert prompt.endswith(JSON_INSTRUCTION)

    @pytest.mark.asyncio
    async def test_prose_around_json(self):
        """Test that prose around the object is tolerated."""
        generator = FakeGenerator(
            'Here you go: {"relationships": [{"target_id": "a", "sub_type": "related_to"}]} Done.'
        )
        output = await generator.generate_structured("s", "u", DependencyAnalysisOutput)
        assert output.relationships[0].sub_type == "related_to"

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self):
        """Test that out-of-range confidences are clamped."""
        generator = FakeGenerator(
            {"relationships": [{"target_id": "a", "sub_type": "blocks", "confidence": 1.7}]}
        )
        output = await generator.generate_structured("s", "u", DependencyAnalysisOutput)
        assert output.relationships[0].confidence == 1.0

    @pytest.mark.asyncio
    async def test_shape_mismatch(self):
        """Test that a response not matching the shape is a response error."""
        generator = FakeGenerator(
            {"relationships": [{"target_id": "a", "sub_type": "sideways"}]}
        )
        with pytest.raises(ProviderResponseError):
            await generator.generate_structured("s", "u", DependencyAnalysisOutput)

    @pytest.mark.asyncio
    async def test_not_json(self):
        """Test that a non-JSON response is a response error."""
        generator = FakeGenerator("I cannot help with that.")
        with pytest.raises(ProviderResponseError):
            await generator.generate_structured("s", "u", DependencyAnalysisOutput)

    def test_parse_json_array_rejected(self):
        """Test that a top-level array is not accepted as an object."""
        assert FakeGenerator()._parse_json_response("[1, 2]") == {}

    def test_proposal_color_strips_hash(self):
        """Test that proposal colors are stored without a leading hash."""
        assert GeneratedLabelProposal(name="regression", color="#d73a4a").color == "d73a4a"


class TestGenerationRegistry:
    """Tests for generation provider selection."""

    def test_registered_providers(self):
        """Test that built-in providers are registered."""
        assert {"ollama", "claude"} <= set(get_available_generation_providers())

    def test_unknown_provider(self):
        """Test that an unknown provider name raises."""
        with pytest.raises(ProviderNotConfiguredError):
            get_generator("gpt-j")

    def test_resolve_nothing_configured(self):
        """Test that no configuration resolves to None."""
        with patch("issue_intelligence.providers.generation.settings", make_settings()):
            assert resolve_generator() is None

    def test_resolve_auto_selects_claude(self):
        """Test auto-selection when an Anthropic key exists."""
        config = make_settings(ANTHROPIC_API_KEY="sk-ant-test")
        with patch("issue_intelligence.providers.generation.settings", config), patch(
            "issue_intelligence.providers.claude.settings", config
        ):
            generator = resolve_generator()
            assert generator is not None
            assert generator.provider_name == "claude"

    def test_resolve_auto_selects_ollama(self):
        """Test auto-selection of Ollama when only a base URL is set."""
        config = make_settings(OLLAMA_BASE_URL="http://localhost:11434")
        with patch("issue_intelligence.providers.generation.settings", config):
            generator = resolve_generator()
            assert generator is not None
            assert generator.provider_name == "ollama"

    def test_resolve_unavailable_choice_falls_through(self):
        """Test that an unusable explicit choice falls through to auto-selection."""
        config = make_settings(LLM_PROVIDER="ollama", ANTHROPIC_API_KEY="sk-ant-test")
        with patch("issue_intelligence.providers.generation.settings", config), patch(
            "issue_intelligence.providers.claude.settings", config
        ):
            generator = resolve_generator()
            assert generator.provider_name == "claude"
