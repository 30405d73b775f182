"""Anthropic Messages API streaming transport.

Sends the round history and capability catalog as one streaming request and
translates the server-sent events into stream signals:

- ``content_block_start`` / ``content_block_delta`` / ``content_block_stop``
  become segment start, delta and end signals (``thinking``, ``text`` and
  ``tool_use`` blocks; other block types are skipped).
- ``message_delta`` carries the stop reason reported with ``message_stop``.
- ``error`` events become ``StreamError`` signals.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Sequence
from typing import Any

import httpx
from httpx_sse import aconnect_sse
from loguru import logger

from ..config import Settings
from ..core.segments import (
    MessageTurn,
    ModelTurn,
    OperationResultsTurn,
    ReasoningSegment,
    RoundEnd,
    SegmentDelta,
    SegmentEnd,
    SegmentKind,
    SegmentStart,
    StreamError,
    StreamSignal,
    TextSegment,
    ToolInvocationSegment,
    Turn,
)
from ..errors import ApiKeyNotConfiguredError, BackendConnectionError, BackendStatusError, BackendTimeoutError
from ..tools.catalog import CapabilityCatalog

ANTHROPIC_VERSION = "2023-06-01"
_CONNECT_TIMEOUT = 10.0
_BLOCK_KINDS: dict[str, SegmentKind] = {
    "thinking": SegmentKind.REASONING,
    "text": SegmentKind.TEXT,
    "tool_use": SegmentKind.TOOL_INVOCATION,
}
_DELTA_FIELDS: dict[str, tuple[SegmentKind, str]] = {
    "thinking_delta": (SegmentKind.REASONING, "thinking"),
    "text_delta": (SegmentKind.TEXT, "text"),
    "input_json_delta": (SegmentKind.TOOL_INVOCATION, "partial_json"),
}


class SignalMapper:
    """Stateful translation of one Messages API event stream."""

    def __init__(self) -> None:
        self._blocks: dict[int, SegmentKind] = {}
        self._signatures: dict[int, str] = {}
        self._stop_reason = "end_turn"

    def map(self, event_type: str, data: dict[str, Any]) -> list[StreamSignal]:
        kind = data.get("type", event_type)
        index = data.get("index", 0)
        if kind == "content_block_start":
            return self._block_start(index, data.get("content_block") or {})
        if kind == "content_block_delta":
            return self._block_delta(index, data.get("delta") or {})
        if kind == "content_block_stop":
            block_kind = self._blocks.pop(index, None)
            if block_kind is None:
                return []
            return [SegmentEnd(kind=block_kind, signature=self._signatures.pop(index, None))]
        if kind == "message_delta":
            reason = (data.get("delta") or {}).get("stop_reason")
            if reason:
                self._stop_reason = reason
            return []
        if kind == "message_stop":
            return [RoundEnd(reason=self._stop_reason)]
        if kind == "error":
            error = data.get("error") or {}
            return [StreamError(error_type=str(error.get("type", "unknown_error")), message=str(error.get("message", "")))]
        return []

    def _block_start(self, index: int, block: dict[str, Any]) -> list[StreamSignal]:
        block_type = block.get("type")
        block_kind = _BLOCK_KINDS.get(block_type or "")
        if block_kind is None:
            logger.debug("anthropic.block.skipped type={} index={}", block_type, index)
            return []
        self._blocks[index] = block_kind
        if block_kind == SegmentKind.TOOL_INVOCATION:
            return [SegmentStart(kind=block_kind, tool_id=block.get("id"), tool_name=block.get("name"))]
        signals: list[StreamSignal] = [SegmentStart(kind=block_kind)]
        initial = block.get("thinking" if block_kind == SegmentKind.REASONING else "text")
        if initial:
            signals.append(SegmentDelta(kind=block_kind, fragment=initial))
        return signals

    def _block_delta(self, index: int, delta: dict[str, Any]) -> list[StreamSignal]:
        delta_type = delta.get("type", "")
        if delta_type == "signature_delta":
            self._signatures[index] = self._signatures.get(index, "") + str(delta.get("signature", ""))
            return []
        if index not in self._blocks:
            return []
        mapping = _DELTA_FIELDS.get(delta_type)
        if mapping is None:
            return []
        kind, field_name = mapping
        fragment = delta.get(field_name)
        if not isinstance(fragment, str) or not fragment:
            return []
        return [SegmentDelta(kind=kind, fragment=fragment)]


def _result_content(result_payload: Any) -> str:
    if isinstance(result_payload, str):
        return result_payload
    return json.dumps(result_payload, ensure_ascii=False, default=str)


def turn_to_message(turn: Turn) -> dict[str, Any] | None:
    """Serialize one turn as a Messages API message."""
    if isinstance(turn, MessageTurn):
        return {"role": turn.role, "content": turn.content}
    if isinstance(turn, ModelTurn):
        blocks: list[dict[str, Any]] = []
        for segment in turn.segments:
            if isinstance(segment, ReasoningSegment):
                if segment.signature:
                    blocks.append({"type": "thinking", "thinking": segment.text, "signature": segment.signature})
            elif isinstance(segment, TextSegment):
                if segment.text:
                    blocks.append({"type": "text", "text": segment.text})
            elif isinstance(segment, ToolInvocationSegment):
                blocks.append({"type": "tool_use", "id": segment.id, "name": segment.name, "input": segment.args})
        if not blocks:
            return None
        return {"role": "assistant", "content": blocks}
    if isinstance(turn, OperationResultsTurn):
        return {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": result.id,
                    "content": _result_content(result.payload if result.ok else {"error": result.error}),
                    "is_error": not result.ok,
                }
                for result in turn.results
            ],
        }
    raise TypeError(f"Unsupported turn type: {type(turn).__name__}")


def _error_message(body: bytes) -> str:
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return body.decode("utf-8", errors="replace")[:200]
    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or "")
    return str(parsed)[:200]


class AnthropicStreamTransport:
    """Streams one Messages API request per round."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        system_prompt: str,
        api_base: str = "https://api.anthropic.com",
        max_tokens: int = 16000,
        thinking_budget: int = 0,
        timeout_seconds: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ApiKeyNotConfiguredError("API key not configured. Set TOOLSTREAM_API_KEY or ANTHROPIC_API_KEY.")
        self.api_key = api_key
        self.model = model
        self.system_prompt = system_prompt
        self.url = f"{api_base.rstrip('/')}/v1/messages"
        self.max_tokens = max_tokens
        self.thinking_budget = thinking_budget
        self.timeout_seconds = timeout_seconds
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, *, client: httpx.AsyncClient | None = None) -> AnthropicStreamTransport:
        return cls(
            api_key=settings.resolved_api_key or "",
            model=settings.model,
            system_prompt=settings.resolved_system_prompt(),
            api_base=settings.api_base,
            max_tokens=settings.max_tokens,
            thinking_budget=settings.thinking_budget,
            timeout_seconds=settings.stream_timeout_seconds,
            client=client,
        )

    def build_payload(self, history: Sequence[Turn], catalog: CapabilityCatalog) -> dict[str, Any]:
        messages = [message for message in (turn_to_message(turn) for turn in history) if message is not None]
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system_prompt,
            "messages": messages,
            "stream": True,
        }
        if len(catalog):
            payload["tools"] = catalog.to_wire()
        if self.thinking_budget > 0:
            payload["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
        return payload

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
            "accept": "text/event-stream",
        }

    async def open_round_stream(
        self,
        history: Sequence[Turn],
        catalog: CapabilityCatalog,
    ) -> AsyncGenerator[StreamSignal, None]:
        payload = self.build_payload(history, catalog)
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_seconds, connect=_CONNECT_TIMEOUT),
        )
        mapper = SignalMapper()
        try:
            async with aconnect_sse(client, "POST", self.url, json=payload, headers=self._headers()) as event_source:
                response = event_source.response
                if response.status_code >= 400:
                    body = await response.aread()
                    raise BackendStatusError(response.status_code, _error_message(body))
                async for sse in event_source.aiter_sse():
                    if not sse.data or sse.data == "[DONE]":
                        continue
                    try:
                        data = json.loads(sse.data)
                    except json.JSONDecodeError:
                        logger.warning("anthropic.sse.unparseable data={}", sse.data[:200])
                        continue
                    if not isinstance(data, dict):
                        continue
                    for signal in mapper.map(sse.event, data):
                        yield signal
        except httpx.TimeoutException as exc:
            raise BackendTimeoutError(f"stream timeout after {self.timeout_seconds}s: {exc}") from exc
        except httpx.TransportError as exc:
            raise BackendConnectionError(f"stream transport failure: {exc}") from exc
        finally:
            if self._client is None:
                await client.aclose()
