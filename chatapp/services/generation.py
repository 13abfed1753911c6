"""
Response Generators - Produce the assistant turn for a chat message.

Provider-agnostic protocol with two implementations: a canned mock used when no
API key is configured, and a pass-through client for the Gemini
generateContent API.
"""

import asyncio
import random
import re
import time
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx
from structlog import get_logger

from chatapp.config import Settings, settings
from chatapp.exceptions import GenerationError
from chatapp.models.api import MessageRole
from chatapp.models.domain import ChatTurn, ConversationSettings, GeneratedReply

logger = get_logger(__name__)

SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

TIME_PATTERN = re.compile(r"\b(time|date)\b")

GENERIC_REPLIES = (
    "That's an interesting question! Let me help you with that.",
    "I understand what you're asking. Here's what I think...",
    "Great question! Based on my knowledge, I can tell you that...",
    "I'd be happy to help you with that. Let me explain...",
    "That's a good point. Here's my perspective on this topic...",
    "I can provide some insights on that. Let me break it down for you...",
    "Thanks for asking! Here's what I know about that subject...",
    "I'm here to help! Let me give you a comprehensive answer...",
)

# First match wins.
KEYWORD_REPLIES: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"\b(hello|hi)\b"),
        "Hello! I'm your AI assistant. How can I help you today?",
    ),
    (
        re.compile(r"how are you"),
        "I'm doing well, thank you for asking! I'm here and ready to help you with any "
        "questions or tasks you might have.",
    ),
    (
        re.compile(r"thank"),
        "You're very welcome! I'm glad I could help. Is there anything else you'd like to know?",
    ),
    (
        re.compile(r"\bhelp\b"),
        "I'm here to help! You can ask me questions about various topics, get explanations, "
        "or request assistance with tasks. What would you like to know?",
    ),
    (
        re.compile(r"weather"),
        "I don't have access to real-time weather data, but I can help you understand "
        "weather patterns, climate science, or suggest how to check the weather in your area.",
    ),
    (
        TIME_PATTERN,
        "The current time is {now}. I can help you with time-related questions or calculations.",
    ),
    (
        re.compile(r"\b(code|programming)\b"),
        "I can help you with programming questions! I can explain concepts, help debug code, "
        "suggest best practices, or provide code examples. What programming topic interests you?",
    ),
    (
        re.compile(r"python"),
        "Python is a great programming language! I can help you with Python syntax, libraries, "
        "best practices, or specific coding problems. What would you like to know about Python?",
    ),
    (
        re.compile(r"\b(javascript|js)\b"),
        "JavaScript is a versatile language for web development! I can help you with JavaScript "
        "concepts, frameworks, or specific coding challenges. What JavaScript topic can I help "
        "you with?",
    ),
    (
        re.compile(r"react"),
        "React is a powerful library for building user interfaces! I can help you with React "
        "components, hooks, state management, or best practices. What React question do you have?",
    ),
)


class ResponseGenerator(Protocol):
    """
    Response generator protocol.

    Implementations must raise GenerationError on failure and never return an
    empty reply.
    """

    name: str

    async def generate(
        self,
        content: str,
        history: list[ChatTurn],
        conversation_settings: ConversationSettings,
    ) -> GeneratedReply:
        """Generate the assistant reply to content given prior turns."""
        ...


class MockResponseGenerator:
    """Canned keyword replies with simulated latency."""

    name = "mock"

    def __init__(
        self,
        min_delay_ms: int = 500,
        max_delay_ms: int = 2500,
        rng: random.Random | None = None,
    ):
        self.min_delay_ms = min_delay_ms
        self.max_delay_ms = max_delay_ms
        self.rng = rng or random.Random()

    async def generate(
        self,
        content: str,
        history: list[ChatTurn],
        conversation_settings: ConversationSettings,
    ) -> GeneratedReply:
        """Sleep for a random delay in the configured bounds and return a canned reply."""
        delay_ms = self.rng.uniform(self.min_delay_ms, self.max_delay_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

        return GeneratedReply(
            content=self.reply_for(content),
            tokens=self.rng.randint(50, 150),
            processing_time_ms=round(delay_ms),
        )

    def reply_for(self, content: str) -> str:
        """Pick the canned reply for a message."""
        lowered = content.lower()

        for pattern, reply in KEYWORD_REPLIES:
            if pattern.search(lowered):
                if pattern is TIME_PATTERN:
                    return reply.format(now=datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC"))
                return reply

        return (
            f'{self.rng.choice(GENERIC_REPLIES)} You asked: "{content}". '
            "This is a mock response. To get real AI responses, configure AI_API_KEY."
        )


class GeminiResponseGenerator:
    """Pass-through client for the Gemini generateContent endpoint."""

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        api_url: str,
        timeout_seconds: float = 60.0,
        history_turns: int = 10,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self.history_turns = history_turns
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._http_client

    def build_payload(
        self,
        content: str,
        history: list[ChatTurn],
        conversation_settings: ConversationSettings,
    ) -> dict[str, Any]:
        """Build the generateContent request body."""
        contents = [
            {
                "role": "model" if turn.role == MessageRole.ASSISTANT else "user",
                "parts": [{"text": turn.content}],
            }
            for turn in history[-self.history_turns :]
        ]
        contents.append({"role": "user", "parts": [{"text": content}]})

        return {
            "contents": contents,
            "generationConfig": {
                "temperature": conversation_settings.temperature,
                "maxOutputTokens": conversation_settings.max_tokens,
                "topP": 0.8,
                "topK": 10,
            },
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
                for category in SAFETY_CATEGORIES
            ],
        }

    async def generate(
        self,
        content: str,
        history: list[ChatTurn],
        conversation_settings: ConversationSettings,
    ) -> GeneratedReply:
        """
        Call the remote API once; no retry.

        Raises:
            GenerationError: Transport failure, non-2xx status, or malformed body
        """
        payload = self.build_payload(content, history, conversation_settings)
        started = time.perf_counter()

        try:
            response = await self.http_client.post(
                self.api_url,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "generation_request_failed",
                status=e.response.status_code,
                text=e.response.text[:500],
            )
            raise GenerationError(f"Gemini API error: {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("generation_transport_error", error=str(e))
            raise GenerationError(f"Gemini API unreachable: {e}")
        except ValueError as e:
            logger.error("generation_invalid_json", error=str(e))
            raise GenerationError("Invalid response format from Gemini API")

        elapsed_ms = round((time.perf_counter() - started) * 1000)
        text = self._extract_text(data)

        usage = data.get("usageMetadata") or {}
        tokens = usage.get("candidatesTokenCount")
        if not isinstance(tokens, int):
            tokens = len(text.split())

        return GeneratedReply(content=text, tokens=tokens, processing_time_ms=elapsed_ms)

    def _extract_text(self, data: Any) -> str:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.error("generation_malformed_body")
            raise GenerationError("Invalid response format from Gemini API")

        if not isinstance(text, str) or not text.strip():
            raise GenerationError("Empty response from Gemini API")
        return text

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


_generator: ResponseGenerator | None = None


def build_response_generator(config: Settings | None = None) -> ResponseGenerator:
    """Select Gemini when an API key is configured, the mock otherwise."""
    config = config or settings
    if config.use_mock_generator:
        return MockResponseGenerator(
            min_delay_ms=config.mock_response_min_delay_ms,
            max_delay_ms=config.mock_response_max_delay_ms,
        )
    return GeminiResponseGenerator(
        api_key=config.ai_api_key,
        api_url=config.ai_api_url,
        timeout_seconds=config.ai_timeout_seconds,
        history_turns=config.ai_history_turns,
    )


def get_response_generator() -> ResponseGenerator:
    """FastAPI dependency returning the process-wide generator."""
    global _generator
    if _generator is None:
        _generator = build_response_generator()
        logger.info("response_generator_selected", generator=_generator.name)
    return _generator


async def close_response_generator() -> None:
    """Release the generator's HTTP client on shutdown."""
    global _generator
    if isinstance(_generator, GeminiResponseGenerator):
        await _generator.close()
    _generator = None
