"""
Claude client for generating step code from a plain-language intent.

Used by the editor's "Custom AI Function" step: the user describes what
a function should do and gets back source code for it. Talks to the
Anthropic Messages API over httpx with retry and backoff.
"""

import asyncio
import re
import time
from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.config import Settings, get_settings
from core.exceptions import CodeGenerationError

logger = structlog.get_logger(__name__)

SUPPORTED_LANGUAGES = ("typescript", "python", "javascript")

_CODE_FENCE = re.compile(r"```[\w+-]*\s*\n(.*?)```", re.DOTALL)

_PROMPT = """You are an AI code generator. You will generate a function based on the user's intent.

Intent: {intent}

Language: {language}

Please provide only the function code, without any explanations or comments, unless the intent asks for comments.
Ensure proper syntax and formatting for the specified language."""


def extract_code(text: str) -> str:
    """Return the first fenced code block of a response, or the whole text."""
    match = _CODE_FENCE.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


class CodeGenerator:
    """Generates function code through the Claude Messages API."""

    API_BASE = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.ANTHROPIC_API_KEY)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.API_BASE,
                headers={
                    "x-api-key": self.settings.ANTHROPIC_API_KEY,
                    "anthropic-version": self.API_VERSION,
                    "content-type": "application/json",
                },
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=float(self.settings.CLAUDE_TIMEOUT),
                    write=30.0,
                    pool=10.0,
                ),
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _make_request(self, messages: List[Dict[str, Any]], system: Optional[str] = None) -> Dict[str, Any]:
        """Call the Messages API with retry on rate limits, overload and transport errors."""
        settings = self.settings
        payload: Dict[str, Any] = {
            "model": settings.CLAUDE_MODEL,
            "max_tokens": settings.CLAUDE_MAX_TOKENS,
            "messages": messages,
        }
        if system:
            payload["system"] = system

        client = self._get_client()
        last_error = None
        for attempt in range(settings.CLAUDE_MAX_RETRIES):
            start_time = time.monotonic()
            try:
                response = await client.post("/messages", json=payload)
                duration_ms = (time.monotonic() - start_time) * 1000

                if response.status_code == 200:
                    data = response.json()
                    logger.info(
                        "Claude request completed",
                        model=payload["model"],
                        duration_ms=round(duration_ms, 2),
                        output_tokens=data.get("usage", {}).get("output_tokens", 0),
                    )
                    return data

                if response.status_code == 429:
                    retry_after = float(response.headers.get("retry-after", 5))
                    logger.warning("Claude rate limited", retry_after=retry_after)
                    last_error = "Rate limited"
                    await asyncio.sleep(min(retry_after, 30))
                    continue

                if response.status_code == 529:
                    logger.warning("Claude API overloaded", attempt=attempt)
                    last_error = "API overloaded"
                else:
                    error_body = response.text
                    logger.error("Claude API error", status=response.status_code, body=error_body[:500])
                    last_error = f"API error {response.status_code}: {error_body[:200]}"
                    if 400 <= response.status_code < 500:
                        break

            except httpx.TimeoutException:
                logger.warning("Claude request timeout", attempt=attempt)
                last_error = "Request timed out"

            except httpx.TransportError as e:
                logger.warning("Claude transport error", attempt=attempt, error=str(e))
                last_error = str(e)

            if attempt < settings.CLAUDE_MAX_RETRIES - 1:
                delay = min(2 ** attempt * settings.CLAUDE_RETRY_DELAY, 30)
                await asyncio.sleep(delay)

        raise CodeGenerationError(f"Claude API request failed: {last_error}")

    async def generate_function_from_intent(self, intent: str, language: str = "typescript") -> str:
        """Generate a function implementing ``intent`` in ``language``.

        Args:
            intent: What the function should do
            language: typescript, python or javascript

        Returns:
            The function source code
        """
        if language not in SUPPORTED_LANGUAGES:
            raise CodeGenerationError(f"Unsupported language: {language}")
        if not intent.strip():
            raise CodeGenerationError("Intent must not be empty")
        if not self.is_configured:
            raise CodeGenerationError("ANTHROPIC_API_KEY is not configured")

        response = await self._make_request(
            messages=[{"role": "user", "content": _PROMPT.format(intent=intent, language=language)}],
            system=f"You are an expert {language} developer. Write clean, efficient code.",
        )

        text = "".join(
            block.get("text", "")
            for block in response.get("content", [])
            if block.get("type") == "text"
        )
        code = extract_code(text)
        if not code:
            raise CodeGenerationError("Model returned no code")
        return code


# ─── Singleton ─────────────────────────────────────────────────

_code_generator: Optional[CodeGenerator] = None


def get_code_generator() -> CodeGenerator:
    """Get or create the singleton code generator."""
    global _code_generator
    if _code_generator is None:
        _code_generator = CodeGenerator()
    return _code_generator
