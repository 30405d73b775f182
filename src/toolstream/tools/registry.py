"""Tool registry: the side-effect executor behind the capability catalog."""

from __future__ import annotations

import asyncio
import builtins
import inspect
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel
from republic import Tool, ToolContext, tool_from_model

from ..core.dispatcher import UnknownOperationError
from ..logging_utils import current_run
from .catalog import Capability, CapabilityCatalog, freeze_schema

EMPTY_PARAMETERS: dict[str, Any] = {"type": "object", "properties": {}}


def _shorten_text(text: str, width: int = 30, placeholder: str = "...") -> str:
    """Shorten text to width characters, cutting in the middle of words if needed."""
    if len(text) <= width:
        return text
    available = width - len(placeholder)
    if available <= 0:
        return placeholder
    return text[:available] + placeholder


async def _await_value(value: Awaitable[Any]) -> Any:
    return await value


def _run_blocking(tool: Tool, kwargs: dict[str, Any]) -> Any:
    result = tool.run(**kwargs)
    if inspect.isawaitable(result):
        # Tool.run may hand back a coroutine around a plain handler; finish it on this worker thread.
        return asyncio.run(_await_value(result))
    return result


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle."""

    name: str
    short_description: str
    tool: Tool
    detail: str = ""
    source: str = "builtin"


class ToolRegistry:
    """Registry of operations the backend may request.

    Canonical names may contain dots (``clock.now``); the backend sees them
    with underscores (``clock_now``) and either form is accepted by
    ``execute``.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}

    def register(
        self,
        *,
        name: str,
        short_description: str,
        detail: str = "",
        model: type[BaseModel] | None = None,
        parameters: dict[str, Any] | None = None,
        context: bool = False,
        source: str = "builtin",
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering ``handler`` under ``name``.

        With ``model`` the handler receives one validated pydantic instance;
        otherwise it receives the arguments as keywords.
        """

        def decorator(handler: Callable[..., Any]) -> Callable[..., Any]:
            description = detail or short_description
            if model is not None:
                tool = tool_from_model(model, handler, name=name, description=description)
            else:
                tool = Tool(
                    name=name,
                    description=description,
                    parameters=parameters or dict(EMPTY_PARAMETERS),
                    handler=handler,
                    context=context,
                )
            self.add(ToolDescriptor(name=name, short_description=short_description, tool=tool, detail=detail, source=source))
            return handler

        return decorator

    def add(self, descriptor: ToolDescriptor) -> None:
        model_name = self.to_model_name(descriptor.name)
        for existing in self._tools.values():
            if existing.name != descriptor.name and self.to_model_name(existing.name) == model_name:
                raise ValueError(f"Duplicate model tool name after conversion: {model_name}")
        self._tools[descriptor.name] = descriptor

    def has(self, name: str) -> bool:
        return self._resolve(name) is not None

    def get(self, name: str) -> ToolDescriptor | None:
        return self._resolve(name)

    def descriptors(self) -> builtins.list[ToolDescriptor]:
        return sorted(self._tools.values(), key=lambda item: item.name)

    @staticmethod
    def to_model_name(name: str) -> str:
        return name.replace(".", "_")

    def compact_rows(self, *, for_model: bool = False) -> builtins.list[str]:
        rows: builtins.list[str] = []
        for descriptor in self.descriptors():
            display_name = self.to_model_name(descriptor.name) if for_model else descriptor.name
            if for_model and display_name != descriptor.name:
                rows.append(f"{display_name} (command: {descriptor.name}): {descriptor.short_description}")
            else:
                rows.append(f"{display_name}: {descriptor.short_description}")
        return rows

    def catalog(self) -> CapabilityCatalog:
        """Snapshot the registry as the immutable catalog sent to the backend."""
        return CapabilityCatalog.build(
            Capability(
                name=self.to_model_name(descriptor.name),
                description=descriptor.tool.description or descriptor.short_description,
                input_schema=freeze_schema(descriptor.tool.parameters),
            )
            for descriptor in self.descriptors()
        )

    async def execute(self, name: str, args: dict[str, Any]) -> Any:
        """Run one operation; the bound run label is passed to context tools as ``run_id``."""
        descriptor = self._resolve(name)
        if descriptor is None:
            raise UnknownOperationError(name)

        tool = descriptor.tool
        run_id = current_run()
        self._log_tool_call(descriptor.name, args, run_id)
        kwargs = dict(args)
        if tool.context:
            kwargs["context"] = ToolContext(tape=None, run_id=run_id)
        start = time.monotonic()
        try:
            if inspect.iscoroutinefunction(tool.handler):
                result = tool.run(**kwargs)
                if inspect.isawaitable(result):
                    result = await result
                return result
            # Blocking handlers run off the event loop.
            return await asyncio.to_thread(_run_blocking, tool, kwargs)
        except Exception:
            logger.exception("tool.call.error name={}", descriptor.name)
            raise
        finally:
            duration = time.monotonic() - start
            logger.info("tool.call.end name={} duration={:.3f}ms", descriptor.name, duration * 1000)

    def _resolve(self, name: str) -> ToolDescriptor | None:
        descriptor = self._tools.get(name)
        if descriptor is not None:
            return descriptor
        for candidate in self._tools.values():
            if self.to_model_name(candidate.name) == name:
                return candidate
        return None

    def _log_tool_call(self, name: str, kwargs: dict[str, Any], run_id: str) -> None:
        params: list[str] = []
        for key, value in kwargs.items():
            try:
                rendered = json.dumps(value, ensure_ascii=False)
            except TypeError:
                rendered = repr(value)
            value = _shorten_text(rendered, width=30, placeholder="...")
            if value.startswith('"') and not value.endswith('"'):
                value = value + '"'
            if value.startswith("{") and not value.endswith("}"):
                value = value + "}"
            if value.startswith("[") and not value.endswith("]"):
                value = value + "]"
            params.append(f"{key}={value}")
        logger.info("tool.call.start name={} run_id={} {{ {} }}", name, run_id, ", ".join(params))
