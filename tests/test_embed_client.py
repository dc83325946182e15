"""Tests for the Ollama embedding client against a MockTransport backend."""

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.exceptions import EmbeddingError

from conftest import VECTOR_SIZE, fake_vector


class TestEmbedClientOllama:

    async def test_batch_preserves_order(self, embed_client, fake_ollama):
        vectors = await embed_client.do_embed_batch(["one", "two", "three"])
        assert vectors == [fake_vector("one"), fake_vector("two"), fake_vector("three")]
        assert fake_ollama.embed_requests == [["one", "two", "three"]]

    async def test_empty_batch_makes_no_request(self, embed_client, fake_ollama):
        assert await embed_client.do_embed_batch([]) == []
        assert fake_ollama.embed_requests == []

    async def test_single_embed(self, embed_client):
        assert await embed_client.do_embed("hello") == fake_vector("hello")

    async def test_provider_error_raises(self, embed_client, fake_ollama):
        fake_ollama.embed_failures = 1
        with pytest.raises(EmbeddingError, match="503"):
            await embed_client.do_embed_batch(["text"])

    async def test_count_mismatch_raises(self, helper_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3, 0.4]]})

        client = EmbedClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(handler))
        with pytest.raises(EmbeddingError, match="1 vectors for 2 texts"):
            await client.do_embed_batch(["a", "b"])
        await client.close()

    async def test_non_json_body_raises_embedding_error(self, helper_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="upstream proxy error")

        client = EmbedClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(handler))
        with pytest.raises(EmbeddingError, match="invalid JSON"):
            await client.do_embed_batch(["a"])
        await client.close()

    async def test_transport_failure_raises_embedding_error(self, helper_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = EmbedClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(handler))
        with pytest.raises(EmbeddingError, match="connection refused"):
            await client.do_embed("text")
        await client.close()

    async def test_not_booted_raises(self, helper_config):
        client = EmbedClientOllama(helper_config=helper_config)
        with pytest.raises(EmbeddingError, match="boot"):
            await client.do_embed("text")

    async def test_fetch_vector_size(self, embed_client):
        size, distance = await embed_client.do_fetch_embedding_vector_size()
        assert size == VECTOR_SIZE
        assert distance == "Cosine"

    def test_vector_size_prefers_reported_architecture(self, helper_config):
        client = EmbedClientOllama(helper_config=helper_config)
        info = {"model_info": {
            "clip.embedding_length": 1024,
            "general.architecture": "bert",
            "bert.embedding_length": 384,
        }}
        assert client.extract_vector_size_from_model_info(info) == 384

    def test_vector_size_missing_raises(self, helper_config):
        client = EmbedClientOllama(helper_config=helper_config)
        with pytest.raises(EmbeddingError, match="no embedding dimension"):
            client.extract_vector_size_from_model_info({"model_info": {}})

    def test_empty_vector_rejected(self, helper_config):
        client = EmbedClientOllama(helper_config=helper_config)
        with pytest.raises(EmbeddingError, match="empty vector"):
            client.extract_embeddings_from_response({"embeddings": [[0.1], []]})

    def test_payload_keeps_model_loaded(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_OLLAMA_KEEP_ALIVE", "30m")
        payload = EmbedClientOllama(helper_config=helper_config).get_embed_payload(["a"])
        assert payload == {"model": "nomic-embed-text", "input": ["a"], "truncate": True, "keep_alive": "30m"}

    async def test_truncates_to_model_max_chars(self, helper_config, fake_ollama, monkeypatch):
        monkeypatch.setenv("EMBED_MODEL_MAX_CHARS", "3")
        client = EmbedClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(fake_ollama.handler))
        await client.do_embed("abcdef")
        assert fake_ollama.embed_requests == [["abc"]]
        await client.close()


class TestEmbedClientManager:

    def test_builds_configured_engine(self, helper_config):
        client = EmbedClientManager(helper_config=helper_config).get_client()
        assert isinstance(client, EmbedClientOllama)
        assert client.get_engine_name() == "ollama"

    def test_unknown_engine(self, helper_config, monkeypatch):
        monkeypatch.setenv("EMBED_ENGINE", "nosuchengine")
        with pytest.raises(ValueError, match="Unsupported"):
            EmbedClientManager(helper_config=helper_config)

    def test_missing_base_url_fails_fast(self, helper_config, monkeypatch):
        monkeypatch.delenv("EMBED_OLLAMA_BASE_URL")
        with pytest.raises(ValueError, match="EMBED_OLLAMA_BASE_URL"):
            EmbedClientOllama(helper_config=helper_config)
