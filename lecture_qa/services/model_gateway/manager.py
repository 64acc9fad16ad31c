"""
Model Gateway.

Thin wrapper around a local Ollama server:
- `chat`: single-message chat call (primary answer path)
- `generate`: raw-prompt NDJSON stream read line by line over httpx (backup answer path)
- `generate_with_retry`: standalone generation with exponential backoff
- `embed`: embeddings with a random fallback vector on failure
- `is_available`: GET /api/version liveness probe

Every call is bounded by `timeout_ms`; a timeout is treated like any other
upstream failure.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from typing import TYPE_CHECKING, Any

import httpx
import ollama

if TYPE_CHECKING:
    from lecture_qa.context import Context
    from lecture_qa.services.manager import ServicesManager

from lecture_qa.services.manager import BaseModelGatewayService

RETRY_EXHAUSTED_MESSAGE = (
    "I'm sorry, I wasn't able to process your request after multiple attempts. "
    "Please try again later."
)


class ModelGatewayError(RuntimeError):
    """Raised when the generation endpoint fails, times out or returns nothing usable."""


# -------------------------------------------------------------- #
# Model Gateway Manager
# -------------------------------------------------------------- #


class ModelGatewayManager(BaseModelGatewayService):
    """Manager for generation, embedding and liveness calls against Ollama."""

    def __init__(
        self,
        context: Context,
        host: str = "http://localhost:11434",
        generation_model: str = "llama2",
        embedding_model: str = "nomic-embed-text",
        embedding_dim: int = 768,
        timeout_ms: int = 120000,
        liveness_timeout_ms: int = 5000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the model gateway.

        Args:
            context: Application context
            host: Ollama base URL
            generation_model: Model used by `chat` and `generate`
            embedding_model: Model used by `embed`
            embedding_dim: Length of the fallback embedding vector
            timeout_ms: Deadline for a single chat/generate/embed call
            liveness_timeout_ms: Deadline for the liveness probe
            transport: httpx transport for the probe and the streamed backup path
                (None uses the default network transport)
        """
        super().__init__(context)

        self._host = host.rstrip("/")
        self._client = ollama.AsyncClient(host=self._host)
        self._transport = transport

        self.generation_model = generation_model
        self.embedding_model = embedding_model
        self.embedding_dim = embedding_dim
        self.timeout_ms = timeout_ms
        self.liveness_timeout_ms = liveness_timeout_ms

        # Statistics
        self._total_requests = 0
        self._total_errors = 0
        self._embedding_fallbacks = 0
        self._model_usage: dict[str, int] = {}

    # -------------------------------------------------------------- #
    # Manager Lifecycle
    # -------------------------------------------------------------- #

    async def on_start(self, services: ServicesManager) -> None:
        await super().on_start(services)
        if self.services:
            await self.services.logging_service.info(
                f"Model Gateway started (host: {self._host}, model: {self.generation_model}, "
                f"embeddings: {self.embedding_model})"
            )

    async def on_close(self) -> None:
        if self.services:
            await self.services.logging_service.info(
                f"Model Gateway stopped. Total requests: {self._total_requests}, "
                f"errors: {self._total_errors}, embedding fallbacks: {self._embedding_fallbacks}"
            )

    # -------------------------------------------------------------- #
    # Liveness
    # -------------------------------------------------------------- #

    async def is_available(self) -> bool:
        """Return True when GET /api/version answers with a 2xx status."""
        try:
            async with httpx.AsyncClient(
                timeout=self.liveness_timeout_ms / 1000, transport=self._transport
            ) as client:
                response = await client.get(f"{self._host}/api/version")
            return response.is_success
        except httpx.HTTPError as e:
            if self.services:
                await self.services.logging_service.warning(f"Ollama liveness probe failed: {e}")
            return False

    # -------------------------------------------------------------- #
    # Generation
    # -------------------------------------------------------------- #

    async def chat(self, prompt: str) -> str:
        """Send `prompt` as a single user message through the chat endpoint."""
        self._track(self.generation_model)
        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                self._client.chat(
                    model=self.generation_model,
                    messages=[{"role": "user", "content": prompt}],
                    stream=False,
                ),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.TimeoutError as e:
            self._total_errors += 1
            raise ModelGatewayError(f"Chat request timed out after {self.timeout_ms}ms") from e
        except Exception as e:
            self._total_errors += 1
            raise ModelGatewayError(f"Chat request failed: {e}") from e

        message = response.get("message") or {}
        content = message.get("content") or ""
        if not content:
            self._total_errors += 1
            raise ModelGatewayError("Chat request returned an empty answer")

        if self.services:
            duration_ms = (time.time() - start_time) * 1000
            await self.services.logging_service.debug(
                f"Ollama chat completed: model={self.generation_model}, "
                f"chars={len(content)}, duration={duration_ms:.0f}ms"
            )
        return content

    async def generate(self, prompt: str) -> str:
        """
        Stream a raw-prompt generation and concatenate the `response` fragments.

        Records without a string `response` are skipped. Raises
        `ModelGatewayError` on transport errors, timeouts, or when nothing
        was generated.
        """
        self._track(self.generation_model)

        try:
            content = await asyncio.wait_for(
                self._collect_stream(prompt), timeout=self.timeout_ms / 1000
            )
        except asyncio.TimeoutError as e:
            self._total_errors += 1
            raise ModelGatewayError(f"Generate request timed out after {self.timeout_ms}ms") from e
        except Exception as e:
            self._total_errors += 1
            raise ModelGatewayError(f"Generate request failed: {e}") from e

        if not content:
            self._total_errors += 1
            raise ModelGatewayError("Generate request returned an empty answer")
        return content

    async def _collect_stream(self, prompt: str) -> str:
        """POST /api/generate and join the `response` fragments of the NDJSON stream.

        Lines that are not valid JSON, carry an `error` field, or have no string
        `response` are skipped; accumulation continues with the next line.
        """
        parts: list[str] = []
        skipped = 0
        payload = {"model": self.generation_model, "prompt": prompt, "stream": True}

        async with httpx.AsyncClient(
            timeout=self.timeout_ms / 1000, transport=self._transport
        ) as client:
            async with client.stream(
                "POST", f"{self._host}/api/generate", json=payload
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        record = json.loads(line)
                    except ValueError:
                        skipped += 1
                        continue

                    fragment = record.get("response") if isinstance(record, dict) else None
                    if isinstance(fragment, str) and "error" not in record:
                        parts.append(fragment)
                    else:
                        skipped += 1

        if skipped and self.services:
            await self.services.logging_service.warning(
                f"Skipped {skipped} malformed or empty generate record(s)"
            )
        return "".join(parts)

    async def generate_with_retry(
        self, prompt: str, max_retries: int = 3, base_delay_ms: int = 1000
    ) -> str:
        """
        Call `generate` up to `max_retries` times.

        The wait before attempt n+1 is `base_delay_ms * 2**(n-1)`, so the
        defaults wait 1s then 2s. Returns a fixed apology once every attempt
        has failed.
        """
        last_error: Exception | None = None

        for attempt in range(max_retries):
            try:
                return await self.generate(prompt)
            except ModelGatewayError as e:
                last_error = e
                if self.services:
                    await self.services.logging_service.warning(
                        f"Generate attempt {attempt + 1}/{max_retries} failed: {e}"
                    )

            if attempt < max_retries - 1:
                await asyncio.sleep(base_delay_ms * (2**attempt) / 1000)

        if self.services:
            await self.services.logging_service.error(
                f"Generate failed after {max_retries} attempts: {last_error}"
            )
        return RETRY_EXHAUSTED_MESSAGE

    # -------------------------------------------------------------- #
    # Embeddings
    # -------------------------------------------------------------- #

    async def embed(self, text: str) -> list[float]:
        """
        Embed `text`; never raises.

        On any failure a random vector of `embedding_dim` values in [-1, 1]
        is returned. It carries no meaning, it only keeps indexing alive.
        """
        self._track(self.embedding_model)

        try:
            response = await asyncio.wait_for(
                self._client.embeddings(model=self.embedding_model, prompt=text),
                timeout=self.timeout_ms / 1000,
            )
            embedding = _record_field(response, "embedding")
            if not embedding:
                raise ModelGatewayError("Embedding response did not contain a vector")
            return [float(value) for value in embedding]
        except Exception as e:
            self._total_errors += 1
            self._embedding_fallbacks += 1
            if self.services:
                await self.services.logging_service.warning(
                    f"Embedding failed, using random fallback vector: {e}"
                )
            return self.fallback_embedding()

    def fallback_embedding(self) -> list[float]:
        return [random.uniform(-1.0, 1.0) for _ in range(self.embedding_dim)]

    # -------------------------------------------------------------- #
    # Utility Methods
    # -------------------------------------------------------------- #

    def _track(self, model: str) -> None:
        self._total_requests += 1
        self._model_usage[model] = self._model_usage.get(model, 0) + 1

    def get_statistics(self) -> dict[str, Any]:
        """Get usage statistics."""
        return {
            "total_requests": self._total_requests,
            "total_errors": self._total_errors,
            "embedding_fallbacks": self._embedding_fallbacks,
            "model_usage": self._model_usage.copy(),
        }


def _record_field(record: Any, name: str) -> Any:
    """Read a field from an ollama response model or a plain dict."""
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)
