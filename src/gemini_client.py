"""Async client for the Google Gemini REST API.

Wraps ``models/{model}:generateContent`` and the server-sent-events variant
``models/{model}:streamGenerateContent?alt=sse`` with proper timeout handling
and structured responses.  All methods are async so they integrate cleanly
with the rest of the pipeline.

Typical usage::

    client = GeminiClient(api_key="...")
    resp = await client.generate("Return a JSON array of file paths", json_output=True)
    print(resp.text)

    async for delta in client.stream("Write app/page.tsx"):
        print(delta, end="")
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from src.errors import ErrorKind, WebForgeError, infer_kind


class TextGenerationError(WebForgeError):
    """Raised when the text generator cannot produce output."""


class GeminiResponse(BaseModel):
    """Structured response from a single-shot Gemini generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    finish_reason: str = Field(default="", description="Gemini finishReason of the first candidate")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")
    error_kind: ErrorKind | None = Field(default=None, description="Category of the failure")

    def raise_for_error(self) -> "GeminiResponse":
        """Raise ``TextGenerationError`` if this response is a failure."""
        if not self.success:
            raise TextGenerationError(
                self.error or "Text generation failed",
                kind=self.error_kind or ErrorKind.UNKNOWN,
            )
        return self


class TextGenerator(Protocol):
    """The capability the planner and file generator depend on."""

    async def generate(self, prompt: str, json_output: bool = False) -> GeminiResponse: ...

    def stream(self, prompt: str) -> AsyncIterator[str]: ...


def _kind_for_status(status_code: int, body: str) -> ErrorKind:
    if status_code in (401, 403):
        return ErrorKind.AUTH
    if status_code == 429:
        return ErrorKind.QUOTA
    if status_code in (408, 504):
        return ErrorKind.TIMEOUT
    return infer_kind(body)


class GeminiClient:
    """Async client for the Gemini ``v1beta`` REST API.

    The client uses ``httpx.AsyncClient`` for non-blocking HTTP.  A fresh
    client is opened per call so a single ``GeminiClient`` can be shared
    across runs without lifecycle management.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: int = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"x-goog-api-key": self.api_key},
            transport=self._transport,
        )

    def _payload(self, prompt: str, json_output: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        }
        if json_output:
            payload["generationConfig"] = {"responseMimeType": "application/json"}
        return payload

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Concatenate the text parts of the first candidate.

        Both the unary response and every SSE chunk share this shape::

            {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
        """
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _extract_finish_reason(data: dict) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        return candidates[0].get("finishReason", "") or ""

    def _require_key(self) -> None:
        if not self.api_key:
            raise TextGenerationError(
                "GOOGLE_GENERATIVE_AI_API_KEY environment variable is not set",
                kind=ErrorKind.PRECONDITION,
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(self, prompt: str, json_output: bool = False) -> GeminiResponse:
        """Generate text from a prompt in a single round trip.

        Args:
            prompt: The user prompt.
            json_output: Ask the model for ``application/json`` output.

        Returns:
            A ``GeminiResponse`` with the generated text or an error.
        """
        if not self.api_key:
            return GeminiResponse(
                model=self.model,
                success=False,
                error="GOOGLE_GENERATIVE_AI_API_KEY environment variable is not set",
                error_kind=ErrorKind.PRECONDITION,
            )

        url = f"/models/{self.model}:generateContent"
        try:
            async with self._client() as client:
                response = await client.post(url, json=self._payload(prompt, json_output))
                response.raise_for_status()
                data = response.json()
                return GeminiResponse(
                    text=self._extract_text(data),
                    model=data.get("modelVersion", self.model),
                    finish_reason=self._extract_finish_reason(data),
                    success=True,
                )
        except httpx.ConnectError:
            return GeminiResponse(
                model=self.model,
                success=False,
                error=f"Cannot connect to Gemini at {self.base_url}.",
                error_kind=ErrorKind.TRANSPORT,
            )
        except httpx.TimeoutException:
            return GeminiResponse(
                model=self.model,
                success=False,
                error=f"Request to Gemini timed out after {self.timeout}s.",
                error_kind=ErrorKind.TIMEOUT,
            )
        except httpx.HTTPStatusError as exc:
            body = exc.response.text[:500]
            return GeminiResponse(
                model=self.model,
                success=False,
                error=f"Gemini returned HTTP {exc.response.status_code}: {body}",
                error_kind=_kind_for_status(exc.response.status_code, body),
            )
        except (httpx.HTTPError, ValueError) as exc:
            return GeminiResponse(
                model=self.model,
                success=False,
                error=f"Unexpected error during Gemini generate: {exc}",
                error_kind=ErrorKind.UNKNOWN,
            )

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield text deltas as the model produces them.

        Raises:
            TextGenerationError: On missing credentials, transport failures,
                non-2xx responses, or malformed SSE payloads.
        """
        self._require_key()
        url = f"/models/{self.model}:streamGenerateContent"

        try:
            async with self._client() as client:
                async with client.stream(
                    "POST",
                    url,
                    params={"alt": "sse"},
                    json=self._payload(prompt, json_output=False),
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", errors="replace")[:500]
                        raise TextGenerationError(
                            f"Gemini returned HTTP {response.status_code}: {body}",
                            kind=_kind_for_status(response.status_code, body),
                        )

                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        raw = line[len("data:"):].strip()
                        if not raw:
                            continue
                        try:
                            chunk = json.loads(raw)
                        except json.JSONDecodeError as exc:
                            raise TextGenerationError(
                                f"Malformed chunk in Gemini stream: {raw[:200]}"
                            ) from exc
                        if "error" in chunk:
                            message = chunk["error"].get("message", "unknown stream error")
                            raise TextGenerationError(
                                f"Gemini stream error: {message}", kind=infer_kind(message)
                            )
                        text = self._extract_text(chunk)
                        if text:
                            yield text
        except httpx.ConnectError as exc:
            raise TextGenerationError(
                f"Cannot connect to Gemini at {self.base_url}.", kind=ErrorKind.TRANSPORT
            ) from exc
        except httpx.TimeoutException as exc:
            raise TextGenerationError(
                f"Gemini stream timed out after {self.timeout}s.", kind=ErrorKind.TIMEOUT
            ) from exc
        except httpx.HTTPError as exc:
            raise TextGenerationError(
                f"Gemini stream failed: {exc}", kind=ErrorKind.TRANSPORT
            ) from exc

    async def is_available(self) -> bool:
        """Return ``True`` if the API key can list the configured model."""
        if not self.api_key:
            return False
        try:
            async with self._client() as client:
                response = await client.get(f"/models/{self.model}")
                return response.status_code == 200
        except httpx.HTTPError:
            return False
