"""Tests for the Ollama chat client."""

import httpx
import pytest

from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.clients.llm.ollama.LLMClientOllama import LLMClientOllama
from shared.exceptions import LLMError


class TestLLMClientOllama:

    async def test_do_chat_returns_reply(self, llm_client, fake_ollama):
        reply = await llm_client.do_chat([{"role": "user", "content": "hi"}])
        assert reply == fake_ollama.chat_reply
        sent = fake_ollama.chat_requests[0]
        assert sent["model"] == "llama3"
        assert sent["stream"] is False
        assert sent["messages"] == [{"role": "user", "content": "hi"}]

    async def test_do_generate_wraps_prompt(self, llm_client, fake_ollama):
        await llm_client.do_generate("the prompt")
        assert fake_ollama.chat_requests[0]["messages"] == [{"role": "user", "content": "the prompt"}]

    async def test_error_status_raises_once(self, llm_client, fake_ollama):
        fake_ollama.chat_status = 500
        with pytest.raises(LLMError):
            await llm_client.do_generate("prompt")
        assert len(fake_ollama.chat_requests) == 1

    async def test_reply_without_message_raises(self, helper_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"done": True})

        client = LLMClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(handler))
        with pytest.raises(LLMError, match="valid message"):
            await client.do_generate("prompt")
        await client.close()

    async def test_non_json_reply_raises_llm_error(self, helper_config):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>gateway page</html>")

        client = LLMClientOllama(helper_config=helper_config)
        await client.boot(transport=httpx.MockTransport(handler))
        with pytest.raises(LLMError, match="invalid JSON"):
            await client.do_generate("prompt")
        await client.close()

    def test_manager_builds_ollama(self, helper_config):
        assert isinstance(LLMClientManager(helper_config=helper_config).get_client(), LLMClientOllama)

    def test_chat_model_is_required(self, helper_config, monkeypatch):
        monkeypatch.delenv("LLM_CHAT_MODEL")
        with pytest.raises(ValueError, match="LLM_CHAT_MODEL"):
            LLMClientOllama(helper_config=helper_config)
