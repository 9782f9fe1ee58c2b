"""OpenAI-compatible streaming chat-completions provider over httpx.

Talks to any server exposing ``POST {base_url}/chat/completions`` with
``stream=true`` (LM Studio, Ollama, vLLM, OpenRouter, ...).  The raw SSE byte
stream is handed to :class:`~miniharness.providers.sse.SSEDecoder`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from miniharness.providers.sse import SSEDecoder, decode_stream
from miniharness.types.providers import (
    ChatMessage,
    ProviderError,
    StreamEvent,
    StreamTimeoutError,
)
from miniharness.types.tools import ToolDef, ToolParam

logger = logging.getLogger(__name__)

# Statuses worth retrying before any streaming starts: rate limits and overload.
_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 503, 529})
_MAX_RETRIES: int = 3
_BACKOFF_BASE: float = 1.0  # seconds; doubled each retry
_CONNECT_TIMEOUT: float = 30.0


class ChatCompletionsProvider:
    """Provider adapter for OpenAI-compatible chat completion endpoints.

    Parameters
    ----------
    base_url:
        API root, e.g. ``http://localhost:1234/v1``.
    model:
        Model ID sent with every request.
    api_key:
        Optional bearer token.
    stream_timeout:
        Seconds to wait for each read before aborting the stream.
    think_tags / think_starts_open:
        Inline ``<think>`` scanning options forwarded to the decoder.
    client:
        Injected :class:`httpx.AsyncClient` (tests pass one built on
        :class:`httpx.MockTransport`).
    """

    def __init__(
        self,
        *,
        base_url: str,
        model: str,
        api_key: str | None = None,
        stream_timeout: float = 300.0,
        think_tags: bool = True,
        think_starts_open: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._stream_timeout = stream_timeout
        self._think_tags = think_tags
        self._think_starts_open = think_starts_open
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(stream_timeout, connect=_CONNECT_TIMEOUT),
        )

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def url(self) -> str:
        return f"{self._base_url}/chat/completions"

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # ProviderAdapter protocol
    # ------------------------------------------------------------------

    async def chat_completion_stream(
        self,
        messages: list[ChatMessage],
        tools: list[ToolDef],
        max_tokens: int,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one model turn, yielding decoded events.

        Raises
        ------
        ProviderError
            Non-success HTTP status (body attached) or connection failure.
        StreamTimeoutError
            No data within ``stream_timeout`` seconds.
        """
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_wire() for m in messages],
            "stream": True,
            "max_tokens": max_tokens,
            "stream_options": {"include_usage": True},
        }
        wire_tools = self._to_openai_tools(tools)
        if wire_tools:
            body["tools"] = wire_tools

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        logger.debug("POST %s (%d messages, %d tools)", self.url, len(messages), len(tools))
        decoder = SSEDecoder(
            think_tags=self._think_tags, think_starts_open=self._think_starts_open,
        )

        delay = _BACKOFF_BASE
        for attempt in range(1, _MAX_RETRIES + 2):
            try:
                async with self._client.stream(
                    "POST", self.url, json=body, headers=headers,
                ) as response:
                    if not response.is_success:
                        detail = (await response.aread()).decode("utf-8", errors="replace")
                        if (
                            response.status_code in _RETRYABLE_STATUS_CODES
                            and attempt <= _MAX_RETRIES
                        ):
                            logger.warning(
                                "Transient error %d on attempt %d/%d. Retrying in %.1fs.",
                                response.status_code,
                                attempt,
                                _MAX_RETRIES + 1,
                                delay,
                            )
                            await asyncio.sleep(delay)
                            delay *= 2.0
                            continue
                        raise ProviderError(
                            f"API error {response.status_code}: {detail}",
                            status_code=response.status_code,
                            body=detail,
                        )

                    logger.debug("Streaming response (status %d)", response.status_code)
                    async for event in decode_stream(
                        response.aiter_bytes(), decoder, read_timeout=self._stream_timeout,
                    ):
                        yield event
                    return
            except httpx.ConnectError as exc:
                # Raised before the request body is sent
                if attempt > _MAX_RETRIES:
                    raise ProviderError(f"Connection failed: {type(exc).__name__}: {exc}") from exc
                logger.warning(
                    "Connection failed on attempt %d/%d. Retrying in %.1fs.",
                    attempt, _MAX_RETRIES + 1, delay,
                )
                await asyncio.sleep(delay)
                delay *= 2.0
            except httpx.TimeoutException as exc:
                raise StreamTimeoutError(f"Stream read timed out: {exc}") from exc
            except httpx.HTTPError as exc:
                raise ProviderError(f"Connection failed: {type(exc).__name__}: {exc}") from exc

    # ------------------------------------------------------------------
    # Schema conversion
    # ------------------------------------------------------------------

    @classmethod
    def _to_openai_tools(cls, tools: list[ToolDef]) -> list[dict[str, Any]]:
        """Convert :class:`ToolDef` objects into the ``tools`` request array."""
        result: list[dict[str, Any]] = []
        for tool in tools:
            properties: dict[str, Any] = {}
            required: list[str] = []
            for param in tool.parameters:
                properties[param.name] = cls._param_to_schema(param)
                if param.required:
                    required.append(param.name)

            schema: dict[str, Any] = {"type": "object", "properties": properties}
            if required:
                schema["required"] = required

            result.append({
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": schema,
                },
            })
        return result

    @staticmethod
    def _param_to_schema(param: ToolParam) -> dict[str, Any]:
        """Render a single :class:`ToolParam` as a JSON Schema property dict."""
        prop: dict[str, Any] = {
            "type": param.type,
            "description": param.description,
        }
        if param.enum is not None:
            prop["enum"] = list(param.enum)
        # Array types require an items schema (OpenAI enforces this).
        if param.type == "array":
            prop["items"] = param.items if param.items is not None else {"type": "string"}
        return prop
