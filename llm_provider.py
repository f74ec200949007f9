"""Summary generator interface and Groq implementation - backs the /summarize proxy."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp

from exceptions import UpstreamGenerationError

logger = logging.getLogger(__name__)


class SummaryGenerator(ABC):
    """Abstract base class for hosted-model generators. Keeps the API key server-side."""

    @abstractmethod
    async def generate(self, user_prompt: str, system_prompt: Optional[str] = None) -> str:
        """Return generated text. Raises UpstreamGenerationError on any upstream failure."""
        pass

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass


class GroqGenerator(SummaryGenerator):
    """Groq chat-completions client. One attempt per call; retries are the caller's decision."""

    GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
    DEFAULT_SYSTEM_PROMPT = "Extract verifiable facts."
    TEMPERATURE = 0.3
    MAX_TOKENS = 1024

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "llama-3.1-8b-instant",
        timeout_sec: float = 30.0,
        api_url: str = GROQ_API_URL,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout_sec = timeout_sec
        self.api_url = api_url
        self.session: Optional[aiohttp.ClientSession] = None
        if not self.api_key:
            logger.warning("GROQ_API_KEY not set - /summarize will fail. Get key from https://console.groq.com")

    async def connect(self) -> None:
        """Create aiohttp session for connection pooling."""
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_sec, connect=10))
            logger.info("Groq connection pool created")

    async def disconnect(self) -> None:
        """Close aiohttp session."""
        if self.session:
            await self.session.close()
            self.session = None
            logger.info("Groq connection pool closed")

    async def generate(self, user_prompt: str, system_prompt: Optional[str] = None) -> str:
        if not self.api_key:
            raise UpstreamGenerationError("GROQ_API_KEY not set")

        if self.session is None:
            await self.connect()

        logger.info("🤖 Proxying to Groq API...")
        data = await self._post_completion(user_prompt, system_prompt or self.DEFAULT_SYSTEM_PROMPT)

        try:
            summary = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise UpstreamGenerationError("Invalid response: missing choices") from e

        summary = summary.strip()
        logger.info(f"✅ Groq returned summary, length: {len(summary)}")
        return summary

    async def _post_completion(self, user_prompt: str, system_prompt: str) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": self.TEMPERATURE,
            "max_tokens": self.MAX_TOKENS,
        }

        try:
            async with self.session.post(
                self.api_url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_sec),
            ) as response:
                if response.status >= 400:
                    error_text = await response.text()
                    logger.error(f"Groq API error: {response.status} {error_text[:200]}")
                    raise UpstreamGenerationError(f"HTTP {response.status}: {error_text}")
                return await response.json()
        except asyncio.TimeoutError as e:
            logger.error(f"Groq request timeout after {self.timeout_sec}s")
            raise UpstreamGenerationError(f"LLM API timeout (>{self.timeout_sec}s)") from e
        except aiohttp.ClientError as e:
            logger.error(f"Groq network error: {e}")
            raise UpstreamGenerationError(f"LLM API unreachable: {e}") from e
        except ValueError as e:
            # Non-JSON body
            raise UpstreamGenerationError(f"Unparseable LLM API response: {e}") from e
