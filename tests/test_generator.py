"""AI service: Ollama over HTTP, canned replies, fallback between them."""

import json
import random

import httpx
import pytest

from privacyai.errors import GeneratorError
from privacyai.generator import AIService, CannedGenerator, OllamaGenerator


def ollama_with(handler) -> OllamaGenerator:
    return OllamaGenerator(host="http://ollama.test:11434", model="llama3", transport=httpx.MockTransport(handler))


class TestOllamaGenerator:
    @pytest.mark.asyncio
    async def test_posts_chat_request(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "Hi there"}})

        generator = ollama_with(handler)
        assert await generator.generate("Hello") == "Hi there"
        await generator.close()

        assert captured["url"] == "http://ollama.test:11434/api/chat"
        body = captured["body"]
        assert body["model"] == "llama3"
        assert body["stream"] is False
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1] == {"role": "user", "content": "Hello"}

    @pytest.mark.asyncio
    async def test_missing_model(self):
        generator = ollama_with(lambda request: httpx.Response(404, json={"error": "model not found"}))
        with pytest.raises(GeneratorError) as exc:
            await generator.generate("Hello")
        assert exc.value.code == "ollama_model_missing"

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(GeneratorError) as exc:
            await ollama_with(handler).generate("Hello")
        assert exc.value.code == "ollama_unreachable"

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        generator = ollama_with(lambda request: httpx.Response(200, json={"done": True}))
        with pytest.raises(GeneratorError):
            await generator.generate("Hello")


class TestCannedGenerator:
    @pytest.mark.parametrize("text,category", [
        ("Hello!", "greeting"),
        ("good morning, bot", "greeting"),
        ("How does the relay work?", "protocol"),
        ("Explain quantum computing", "technology"),
        ("Is my privacy protected?", "privacy"),
        ("Tell me about machine learning", "ai"),
        ("Write a poem about this weather", "general"),
    ])
    def test_classify(self, text, category):
        assert CannedGenerator.classify(text) == category

    @pytest.mark.asyncio
    async def test_reply_from_category(self):
        generator = CannedGenerator(rng=random.Random(1))
        reply = await generator.generate("Hello")
        assert reply in CannedGenerator.RESPONSES["greeting"]
        assert reply.startswith("Service is unavailable.")


class TestAIService:
    @pytest.mark.asyncio
    async def test_uses_ollama_when_enabled(self):
        ollama = ollama_with(lambda request: httpx.Response(200, json={"message": {"content": "from ollama"}}))
        service = AIService(ollama=ollama, use_ollama=True)
        assert await service.generate("Hello") == "from ollama"
        await service.close()

    @pytest.mark.asyncio
    async def test_falls_back_to_canned_on_ollama_failure(self):
        ollama = ollama_with(lambda request: httpx.Response(500, text="boom"))
        service = AIService(ollama=ollama, use_ollama=True)
        assert await service.generate("Hello") in CannedGenerator.RESPONSES["greeting"]

    @pytest.mark.asyncio
    async def test_toggle_off_skips_ollama(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"message": {"content": "from ollama"}})

        service = AIService(ollama=ollama_with(handler), use_ollama=False)
        assert (await service.generate("privacy?")) in CannedGenerator.RESPONSES["privacy"]
        assert calls == []
