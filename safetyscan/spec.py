"""Core data types shared by every tool: specs, calls, outputs, progress and errors."""

from __future__ import annotations

import abc
import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Optional

__all__ = [
    "ToolError",
    "UnknownToolError",
    "DuplicateToolError",
    "InvalidInputError",
    "ExecutionError",
    "ToolSpec",
    "ToolCall",
    "ToolOutput",
    "ToolProgress",
    "ToolProgressCallback",
    "ToolHandler",
]


class ToolError(Exception):
    """Base class for every error raised by tools and the registry."""


class UnknownToolError(ToolError):
    """No handler is registered under the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown tool: {name}")
        self.name = name


class DuplicateToolError(ToolError):
    """A handler with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"duplicate tool: {name}")
        self.name = name


class InvalidInputError(ToolError):
    """The input given to a tool failed validation."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"invalid input for {tool}: {message}")
        self.tool = tool
        self.message = message


class ExecutionError(ToolError):
    """A tool failed while running."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool} failed: {message}")
        self.tool = tool
        self.message = message


@dataclass(frozen=True)
class ToolSpec:
    """Name, description and JSON schema of a tool's input."""

    name: str
    description: str
    input_schema: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


def _new_call_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ToolCall:
    """A request to run a named tool with a JSON input."""

    name: str
    input: Any = None
    id: str = field(default_factory=_new_call_id)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": self.input}


@dataclass(frozen=True)
class ToolOutput:
    """The text result of a tool call, with optional structured metadata."""

    call_id: str
    content: str
    metadata: Optional[Any] = None

    @classmethod
    def text(cls, call_id: str, content: str) -> "ToolOutput":
        return cls(call_id=call_id, content=content)

    def with_metadata(self, metadata: Any) -> "ToolOutput":
        return dataclasses.replace(self, metadata=metadata)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"call_id": self.call_id, "content": self.content}
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


@dataclass(frozen=True)
class ToolProgress:
    """A progress report emitted by a running tool."""

    tool_name: str
    message: str
    completed_units: int
    total_units: int
    percent: int
    metadata: Optional[Any] = None

    @classmethod
    def create(
        cls, tool_name: str, message: str, completed_units: int, total_units: int
    ) -> "ToolProgress":
        """Build a report, deriving the percentage (capped at 100)."""
        if total_units == 0:
            percent = 0
        else:
            percent = min(completed_units * 100 // total_units, 100)
        return cls(
            tool_name=tool_name,
            message=message,
            completed_units=completed_units,
            total_units=total_units,
            percent=percent,
        )

    def with_metadata(self, metadata: Any) -> "ToolProgress":
        return dataclasses.replace(self, metadata=metadata)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "tool_name": self.tool_name,
            "message": self.message,
            "completed_units": self.completed_units,
            "total_units": self.total_units,
            "percent": self.percent,
        }
        if self.metadata is not None:
            result["metadata"] = self.metadata
        return result


ToolProgressCallback = Callable[[ToolProgress], None]


class ToolHandler(abc.ABC):
    """A tool that can be registered and dispatched by name."""

    name: ClassVar[str]

    @abc.abstractmethod
    def spec(self) -> ToolSpec:
        """Describe the tool and its input schema."""

    def supports_parallel_calls(self) -> bool:
        return False

    @abc.abstractmethod
    async def handle(self, call: ToolCall) -> ToolOutput:
        """Run the tool for one call."""

    async def handle_with_progress(
        self, call: ToolCall, progress: ToolProgressCallback
    ) -> ToolOutput:
        """Run the tool, reporting progress; by default progress is not reported."""
        return await self.handle(call)