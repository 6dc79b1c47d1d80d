"""Name-indexed collection of tool handlers, with dispatch."""

from __future__ import annotations

from typing import Mapping, Optional

from .spec import (
    DuplicateToolError,
    ToolCall,
    ToolHandler,
    ToolOutput,
    ToolProgressCallback,
    ToolSpec,
    UnknownToolError,
)
from .xss_scan import XssRiskScanTool

__all__ = ["ToolRegistry", "ToolRegistryBuilder"]


class ToolRegistry:
    """Tool handlers keyed by name."""

    def __init__(self, handlers: Optional[Mapping[str, ToolHandler]] = None) -> None:
        self._handlers: dict[str, ToolHandler] = dict(handlers or {})

    @classmethod
    def builder(cls) -> "ToolRegistryBuilder":
        return ToolRegistryBuilder()

    @classmethod
    def empty(cls) -> "ToolRegistry":
        return cls()

    @classmethod
    def with_builtins(cls) -> "ToolRegistry":
        """A registry holding every built-in tool."""
        return cls.builder().register(XssRiskScanTool()).build()

    def has(self, name: str) -> bool:
        return name in self._handlers

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def spec(self, name: str) -> Optional[ToolSpec]:
        handler = self._handlers.get(name)
        return handler.spec() if handler is not None else None

    def specs(self) -> list[ToolSpec]:
        """Specs of all registered tools, sorted by name."""
        return sorted(
            (handler.spec() for handler in self._handlers.values()),
            key=lambda spec: spec.name,
        )

    def supports_parallel_calls(self, name: str) -> Optional[bool]:
        handler = self._handlers.get(name)
        return handler.supports_parallel_calls() if handler is not None else None

    def _handler_for(self, call: ToolCall) -> ToolHandler:
        try:
            return self._handlers[call.name]
        except KeyError:
            raise UnknownToolError(call.name) from None

    async def dispatch(self, call: ToolCall) -> ToolOutput:
        """Run the handler registered under the call's name."""
        return await self._handler_for(call).handle(call)

    async def dispatch_with_progress(
        self, call: ToolCall, progress: ToolProgressCallback
    ) -> ToolOutput:
        """Run the handler, passing it a progress callback."""
        return await self._handler_for(call).handle_with_progress(call, progress)


class ToolRegistryBuilder:
    """Collects handlers, rejecting duplicate names, then builds a registry."""

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}

    def register(self, handler: ToolHandler) -> "ToolRegistryBuilder":
        name = handler.name
        if name in self._handlers:
            raise DuplicateToolError(name)
        self._handlers[name] = handler
        return self

    def build(self) -> ToolRegistry:
        return ToolRegistry(self._handlers)