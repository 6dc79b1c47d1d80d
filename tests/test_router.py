import pytest

from safetyscan.registry import ToolRegistry
from safetyscan.router import ToolRouter
from safetyscan.spec import (
    ToolCall,
    ToolHandler,
    ToolOutput,
    ToolProgress,
    ToolSpec,
    UnknownToolError,
)


class EchoTool(ToolHandler):
    name = "echo"

    def spec(self):
        return ToolSpec(self.name, "Echo text back.", {"type": "object"})

    async def handle(self, call):
        return ToolOutput.text(call.id, call.input["text"])


class CountingTool(ToolHandler):
    name = "counter"

    def spec(self):
        return ToolSpec(self.name, "Counts to a total.", {"type": "object"})

    async def handle(self, call):
        return ToolOutput.text(call.id, "done")

    async def handle_with_progress(self, call, progress):
        total = call.input["total"]
        for completed in range(1, total + 1):
            progress(ToolProgress.create(self.name, "step", completed, total))
        return await self.handle(call)


def make_router():
    registry = ToolRegistry.builder().register(EchoTool()).register(CountingTool()).build()
    return ToolRouter(registry)


@pytest.mark.asyncio
async def test_route_returns_handler_output():
    router = make_router()
    call = ToolCall("echo", {"text": "hello"})
    output = await router.route(call)
    assert output.content == "hello"
    assert output.call_id == call.id


@pytest.mark.asyncio
async def test_route_unknown_tool_raises():
    router = make_router()
    with pytest.raises(UnknownToolError) as excinfo:
        await router.route(ToolCall("missing", {}))
    assert excinfo.value.name == "missing"


@pytest.mark.asyncio
async def test_route_with_progress_forwards_reports():
    router = make_router()
    received = []
    await router.route_with_progress(ToolCall("counter", {"total": 4}), received.append)
    assert [report.completed_units for report in received] == [1, 2, 3, 4]
    assert received[-1].percent == 100
    assert all(report.tool_name == "counter" for report in received)


@pytest.mark.asyncio
async def test_route_with_progress_unknown_tool_raises():
    router = make_router()
    with pytest.raises(UnknownToolError):
        await router.route_with_progress(ToolCall("missing", {}), lambda _p: None)


def test_registry_is_exposed():
    registry = ToolRegistry.with_builtins()
    router = ToolRouter(registry)
    assert router.registry is registry
    assert router.registry.has("xss_risk_scan")