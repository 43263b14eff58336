"""
AI response generators used by the responder.

OllamaGenerator talks to an Ollama server over HTTP. CannedGenerator returns
keyword-matched "service unavailable" replies. AIService tries Ollama when
enabled and falls back to the canned replies when Ollama fails.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from privacyai.errors import GeneratorError

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "deepseek-r1:8b"

SYSTEM_PROMPT = (
    "You are an AI assistant reached over a decentralized publish/subscribe relay. "
    "This conversation travels through peer-to-peer messaging, which keeps it private "
    "and censorship resistant. Be helpful and informative, mention the decentralized "
    "nature of the exchange when relevant, and keep answers concise."
)

APOLOGY = (
    "Service is unavailable. The AI service encountered an error and cannot "
    "process your request."
)

logger = logging.getLogger(__name__)


class Generator(Protocol):
    async def generate(self, text: str) -> str: ...


class OllamaGenerator:
    def __init__(
        self,
        host: str = DEFAULT_OLLAMA_HOST,
        model: str = DEFAULT_OLLAMA_MODEL,
        system_prompt: str = SYSTEM_PROMPT,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.host = host.rstrip("/")
        self.model = model
        self._system_prompt = system_prompt
        self._client = httpx.AsyncClient(
            base_url=self.host,
            headers={"User-Agent": "privacyai-responder/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def generate(self, text: str) -> str:
        logger.info(f"Querying Ollama with model {self.model}")
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": text},
            ],
            "stream": False,
        }
        try:
            resp = await self._client.post("/api/chat", json=body)
        except httpx.ConnectError as e:
            raise GeneratorError(f"Ollama is not reachable at {self.host}: {e}", code="ollama_unreachable")
        except httpx.HTTPError as e:
            raise GeneratorError(f"Ollama request failed: {e}")

        if resp.status_code == 404:
            raise GeneratorError(
                f"Model {self.model!r} not available (check `ollama list`)", code="ollama_model_missing",
            )
        if resp.status_code >= 400:
            raise GeneratorError(f"Ollama HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            content = resp.json()["message"]["content"]
        except (ValueError, KeyError, TypeError):
            raise GeneratorError("Unexpected Ollama response shape")
        if not isinstance(content, str):
            raise GeneratorError("Unexpected Ollama response shape")
        logger.info(f"Ollama response length: {len(content)} characters")
        return content

    async def close(self) -> None:
        await self._client.aclose()


class CannedGenerator:
    """Keyword-matched replies stating that the AI backend is unavailable."""

    RESPONSES: dict[str, list[str]] = {
        "greeting": [
            "Service is unavailable. The AI service cannot connect to Ollama. Please check that Ollama is running and try again.",
            "Service is unavailable. Unable to process your request due to AI service connectivity issues.",
            "Service is unavailable. The local AI model is not accessible at this time.",
        ],
        "technology": [
            "Service is unavailable. Cannot provide information about technology topics as the AI service is offline.",
            "Service is unavailable. The AI inference system is currently not responding.",
        ],
        "protocol": [
            "Service is unavailable. Cannot provide information about the relay protocol as the AI service is offline.",
            "Service is unavailable. Please ensure Ollama is running to get information about decentralized messaging.",
        ],
        "privacy": [
            "Service is unavailable. Cannot provide information about privacy features as the AI service is offline.",
            "Service is unavailable. Privacy-related questions cannot be answered without AI service connectivity.",
        ],
        "ai": [
            "Service is unavailable. Cannot provide information about AI as the Ollama service is not accessible.",
            "Service is unavailable. Please start the Ollama service to get AI-powered responses.",
        ],
        "general": [
            "Service is unavailable. The AI assistant cannot process your request at this time.",
            "Service is unavailable. Please ensure Ollama is running and restart the responder.",
            "Service is unavailable. Unable to generate intelligent responses without AI service connection.",
        ],
    }

    GREETINGS = ("hello", "hi", "hey", "greetings", "good morning", "good afternoon", "good evening")
    TECH_KEYWORDS = ("how does", "what is", "explain", "technology", "network")
    PROTOCOL_KEYWORDS = ("relay", "decentralized", "protocol", "peer")
    PRIVACY_KEYWORDS = ("privacy", "security", "encryption")
    AI_KEYWORDS = ("artificial intelligence", "machine learning", " ai ", "ai?", "model")

    def __init__(
        self,
        delay: tuple[float, float] = (0.0, 0.0),
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._delay = delay
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def classify(cls, text: str) -> str:
        message = f" {text.lower()} "
        words = set(message.replace("?", " ").replace("!", " ").replace(",", " ").split())
        if any((" " in g and g in message) or g in words for g in cls.GREETINGS):
            return "greeting"
        if any(k in message for k in cls.PROTOCOL_KEYWORDS):
            return "protocol"
        if any(k in message for k in cls.TECH_KEYWORDS):
            return "technology"
        if any(k in message for k in cls.PRIVACY_KEYWORDS):
            return "privacy"
        if any(k in message for k in cls.AI_KEYWORDS):
            return "ai"
        return "general"

    async def generate(self, text: str) -> str:
        low, high = self._delay
        if high > 0:
            await self._sleep(self._rng.uniform(low, high))
        return self._rng.choice(self.RESPONSES[self.classify(text)])


class AIService:
    def __init__(
        self,
        ollama: Optional[OllamaGenerator] = None,
        canned: Optional[CannedGenerator] = None,
        use_ollama: bool = True,
    ):
        self._ollama = ollama
        self._canned = canned or CannedGenerator()
        self._use_ollama = use_ollama and ollama is not None

    async def generate(self, text: str) -> str:
        logger.info("Generating AI response...")
        if self._use_ollama:
            try:
                response = await self._ollama.generate(text)  # type: ignore[union-attr]
            except GeneratorError as e:
                logger.error(f"Ollama request failed ({e.code}): {e}")
            else:
                logger.info("AI response generated via Ollama")
                return response

        logger.warning("Using canned fallback responses")
        return await self._canned.generate(text)

    async def close(self) -> None:
        if self._ollama:
            await self._ollama.close()
