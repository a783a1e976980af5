"""
Streaming Decoder — normalizes vendor streams into text deltas + usage.

Vendors stream in different shapes. decode_stream() turns any of them
into an async iterator of plain text deltas and, once the stream ends,
reports the full text and token usage to an optional callback exactly
once.

Supported chunk shapes (SDK objects or plain dicts):
    - OpenAI-compatible chat completion chunks (OpenAI, Azure OpenAI,
      DeepSeek, xAI, Groq, Cerebras, Mistral, OpenRouter, Ollama, vLLM)
    - Anthropic Messages stream events (Anthropic, Azure Anthropic)

Usage:
    from switchboard.llm.streaming import decode_stream

    async def record(content: str, usage: StreamUsage) -> None:
        cost = compute_cost(model, usage.prompt_tokens, usage.completion_tokens)

    vendor_stream = await client.chat.completions.create(
        ..., stream=True, stream_options={"include_usage": True},
    )
    async for text in decode_stream(vendor_stream, record, provider_id="openai"):
        print(text, end="", flush=True)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Union

from switchboard.exceptions import StreamDecodeError
from switchboard.llm.catalog import ProviderId

logger = logging.getLogger(__name__)

# Providers whose SDK streams Anthropic Messages events
ANTHROPIC_EVENT_PROVIDERS = frozenset({
    ProviderId.ANTHROPIC.value,
    ProviderId.AZURE_ANTHROPIC.value,
})


# ---------------------------------------------------------------------------
# Usage & Accumulator
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamUsage:
    """Final token usage of a stream."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


class StreamAccumulator:
    """
    Collects content and usage for one stream. Request-scoped.

    finalize() may be called once; afterwards the accumulator is frozen.
    """

    def __init__(self):
        self._parts: list[str] = []
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_tokens = 0
        self.chunk_count = 0
        self._finalized = False

    @property
    def full_content(self) -> str:
        return "".join(self._parts)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def _check_open(self) -> None:
        if self._finalized:
            raise RuntimeError("StreamAccumulator is already finalized")

    def append(self, text: str) -> None:
        self._check_open()
        self._parts.append(text)
        self.chunk_count += 1

    def record_usage(
        self,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Overwrite the reported counters. None leaves a counter untouched."""
        self._check_open()
        if prompt_tokens is not None:
            self.prompt_tokens = prompt_tokens
        if completion_tokens is not None:
            self.completion_tokens = completion_tokens
        if total_tokens is not None:
            self.total_tokens = total_tokens

    def finalize(self) -> StreamUsage:
        self._check_open()
        self._finalized = True
        return StreamUsage(
            prompt_tokens=self.prompt_tokens,
            completion_tokens=self.completion_tokens,
            total_tokens=self.total_tokens or self.prompt_tokens + self.completion_tokens,
        )


# ---------------------------------------------------------------------------
# Chunk readers
# ---------------------------------------------------------------------------

def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def read_openai_chunk(chunk: Any, acc: StreamAccumulator) -> str:
    """Apply one chat completion chunk; return its text delta."""
    usage = _field(chunk, "usage")
    if usage:
        acc.record_usage(
            prompt_tokens=_field(usage, "prompt_tokens") or 0,
            completion_tokens=_field(usage, "completion_tokens") or 0,
            total_tokens=_field(usage, "total_tokens") or 0,
        )

    choices = _field(chunk, "choices") or []
    if not choices:
        return ""
    content = _field(_field(choices[0], "delta"), "content")
    if content is not None and not isinstance(content, str):
        raise TypeError(f"delta.content must be a string, got {type(content).__name__}")
    return content or ""


def read_anthropic_event(event: Any, acc: StreamAccumulator) -> str:
    """Apply one Anthropic Messages stream event; return its text delta."""
    event_type = _field(event, "type")

    if event_type == "message_start":
        usage = _field(_field(event, "message"), "usage")
        if usage:
            acc.record_usage(
                prompt_tokens=_field(usage, "input_tokens") or 0,
                completion_tokens=_field(usage, "output_tokens") or 0,
            )
        return ""

    if event_type == "content_block_delta":
        delta = _field(event, "delta")
        if _field(delta, "type") == "text_delta":
            return _field(delta, "text") or ""
        return ""

    if event_type == "message_delta":
        usage = _field(event, "usage")
        if usage and _field(usage, "output_tokens") is not None:
            acc.record_usage(completion_tokens=_field(usage, "output_tokens"))
        return ""

    return ""


ChunkReader = Callable[[Any, StreamAccumulator], str]


def reader_for(provider_id: str) -> ChunkReader:
    if provider_id in ANTHROPIC_EVENT_PROVIDERS:
        return read_anthropic_event
    return read_openai_chunk


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------

CompletionCallback = Callable[[str, StreamUsage], Union[None, Awaitable[None]]]


_EXHAUSTED = object()


async def _iterate(vendor_stream: Any) -> AsyncIterator[Any]:
    if hasattr(vendor_stream, "__aiter__"):
        async for chunk in vendor_stream:
            yield chunk
        return

    # Blocking SDK iterators are pulled off the event loop, one chunk at a time.
    it = iter(vendor_stream)
    while True:
        chunk = await asyncio.to_thread(next, it, _EXHAUSTED)
        if chunk is _EXHAUSTED:
            return
        yield chunk


async def _close_vendor_stream(vendor_stream: Any) -> None:
    closer = getattr(vendor_stream, "aclose", None) or getattr(vendor_stream, "close", None)
    if closer is None:
        return
    result = closer()
    if inspect.isawaitable(result):
        await result


async def decode_stream(
    vendor_stream: Any,
    on_complete: Optional[CompletionCallback] = None,
    *,
    provider_id: str | ProviderId = "openai",
) -> AsyncIterator[str]:
    """
    Yield text deltas from a vendor stream as they arrive.

    Args:
        vendor_stream: Sync or async iterable of vendor chunks.
        on_complete: Called once with (full_content, usage) after the
                     last chunk. May be a coroutine function.
        provider_id: Selects the chunk reader.

    Raises:
        StreamDecodeError: The vendor stream failed or yielded a chunk
                           that could not be decoded. on_complete is not
                           called.

    If the consumer stops early, the vendor stream is closed and
    on_complete is not called.
    """
    provider = str(getattr(provider_id, "value", provider_id))
    read_chunk = reader_for(provider)
    acc = StreamAccumulator()
    chunks = _iterate(vendor_stream)
    start = time.monotonic()
    completed = False

    try:
        while True:
            try:
                chunk = await chunks.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                logger.error(
                    "stream_vendor_error",
                    extra={"provider": provider, "error": str(e)[:200]},
                )
                raise StreamDecodeError(
                    f"{provider} stream failed: {e}", provider_id=provider,
                ) from e

            try:
                text = read_chunk(chunk, acc)
            except (AttributeError, TypeError, KeyError, IndexError, ValueError) as e:
                logger.error(
                    "stream_chunk_undecodable",
                    extra={"provider": provider, "error": str(e)[:200]},
                )
                raise StreamDecodeError(
                    f"Could not decode {provider} stream chunk: {e}",
                    provider_id=provider,
                ) from e

            if text:
                acc.append(text)
                yield text

        usage = acc.finalize()
        completed = True

        if usage.prompt_tokens == 0 and usage.completion_tokens == 0:
            logger.warning("stream_completed_without_usage", extra={"provider": provider})

        logger.info(
            "stream_completed",
            extra={
                "provider": provider,
                "chunks": acc.chunk_count,
                "text_length": len(acc.full_content),
                "tokens": usage.total_tokens,
                "latency_ms": round((time.monotonic() - start) * 1000, 1),
            },
        )

        if on_complete is not None:
            result = on_complete(acc.full_content, usage)
            if inspect.isawaitable(result):
                await result
    finally:
        await chunks.aclose()
        if not completed:
            await _close_vendor_stream(vendor_stream)


# ---------------------------------------------------------------------------
# Helper: Collect full stream into text
# ---------------------------------------------------------------------------

async def collect_stream(stream: AsyncIterator[str]) -> str:
    """
    Consume a decoded stream and return the full text.

        text = await collect_stream(decode_stream(vendor_stream))
    """
    collected = []
    async for text in stream:
        collected.append(text)
    return "".join(collected)
