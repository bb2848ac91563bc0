"""Tests for code generation through the Claude Messages API."""

import json

import httpx
import pytest

from app.config import Settings
from core.exceptions import CodeGenerationError
from integrations.claude_client import CodeGenerator, extract_code


def settings(**overrides) -> Settings:
    values = {"ANTHROPIC_API_KEY": "test-key", "CLAUDE_MAX_RETRIES": 3, "CLAUDE_RETRY_DELAY": 0}
    values.update(overrides)
    return Settings(**values)


def text_response(text: str) -> httpx.Response:
    return httpx.Response(200, json={
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 10, "output_tokens": 20},
    })


@pytest.mark.unit
class TestExtractCode:

    def test_fenced_block(self):
        text = "Here you go:\n```typescript\nfunction add(a, b) { return a + b; }\n```\nEnjoy"
        assert extract_code(text) == "function add(a, b) { return a + b; }"

    def test_plain_text(self):
        assert extract_code("  def f():\n    return 1\n") == "def f():\n    return 1"


@pytest.mark.unit
class TestCodeGenerator:

    async def test_generate_function(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return text_response("```python\ndef slugify(text):\n    return text.lower()\n```")

        generator = CodeGenerator(settings(), transport=httpx.MockTransport(handler))
        try:
            code = await generator.generate_function_from_intent("lowercase a string", "python")
        finally:
            await generator.close()

        assert code == "def slugify(text):\n    return text.lower()"
        request = requests[0]
        assert request.url == "https://api.anthropic.com/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        payload = json.loads(request.content)
        assert "Intent: lowercase a string" in payload["messages"][0]["content"]
        assert "Language: python" in payload["messages"][0]["content"]

    async def test_retries_overload_then_succeeds(self):
        responses = iter([
            httpx.Response(529, text="overloaded"),
            httpx.Response(429, headers={"retry-after": "0"}, text="slow down"),
            text_response("function f() {}"),
        ])
        generator = CodeGenerator(settings(), transport=httpx.MockTransport(lambda request: next(responses)))

        assert await generator.generate_function_from_intent("noop") == "function f() {}"

    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad request")

        generator = CodeGenerator(settings(), transport=httpx.MockTransport(handler))
        with pytest.raises(CodeGenerationError, match="API error 400"):
            await generator.generate_function_from_intent("noop")
        assert len(calls) == 1

    async def test_transport_errors_exhaust_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused")

        generator = CodeGenerator(settings(CLAUDE_MAX_RETRIES=2), transport=httpx.MockTransport(handler))
        with pytest.raises(CodeGenerationError, match="connection refused"):
            await generator.generate_function_from_intent("noop")
        assert len(calls) == 2

    async def test_empty_response(self):
        generator = CodeGenerator(settings(), transport=httpx.MockTransport(lambda request: text_response("   ")))
        with pytest.raises(CodeGenerationError, match="no code"):
            await generator.generate_function_from_intent("noop")

    async def test_unsupported_language(self):
        with pytest.raises(CodeGenerationError, match="Unsupported language"):
            await CodeGenerator(settings()).generate_function_from_intent("noop", "cobol")

    async def test_missing_api_key(self):
        generator = CodeGenerator(settings(ANTHROPIC_API_KEY=""))
        assert generator.is_configured is False
        with pytest.raises(CodeGenerationError, match="ANTHROPIC_API_KEY"):
            await generator.generate_function_from_intent("noop")
