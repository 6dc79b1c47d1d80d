"""Routes tool calls to the handlers of a registry."""

from __future__ import annotations

from .registry import ToolRegistry
from .spec import ToolCall, ToolOutput, ToolProgressCallback

__all__ = ["ToolRouter"]


class ToolRouter:
    """Sends calls to a registry's handlers."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def route(self, call: ToolCall) -> ToolOutput:
        return await self._registry.dispatch(call)

    async def route_with_progress(
        self, call: ToolCall, progress: ToolProgressCallback
    ) -> ToolOutput:
        return await self._registry.dispatch_with_progress(call, progress)