"""
Unit tests for Tool execution (validation, retry, timeout, hooks) and ToolRegistry
"""

import pytest
import asyncio
import time
from pydantic import BaseModel, Field

from backend.agentcore.errors import ConfigurationError, ToolError, ValidationError
from backend.agentcore.runtime.event_bus import EventBus
from backend.agentcore.runtime.types import EventType, StreamEvent
from backend.agentcore.tools import (
    Tool,
    DynamicTool,
    JSONOutput,
    StringOutput,
    ToolOptions,
    RunOptions,
    ToolEvents,
    ToolRegistry,
)


class FlightInput(BaseModel):
    destination: str = Field(description="Arrival airport")
    passengers: int = Field(ge=1)


class FlakyTool(Tool):
    """Fails a fixed number of times before succeeding"""

    def __init__(self, failures: int, **kwargs):
        super().__init__("flaky", "Fails then succeeds", **kwargs)
        self.failures = failures
        self.call_times = []

    def schema(self):
        return FlightInput

    async def execute(self, input, context, options):
        self.call_times.append(time.monotonic())
        if len(self.call_times) <= self.failures:
            raise RuntimeError(f"attempt {len(self.call_times)} failed")
        return {"booked": input.destination, "passengers": input.passengers}


@pytest.mark.asyncio
async def test_retry_with_exponential_backoff():
    """Two failures then success: three calls, waits of ~0.1s then ~0.2s"""
    tool = FlakyTool(failures=2, options=ToolOptions(max_retries=2, retry_delay=0.1))

    output = await tool.run({"destination": "LIS", "passengers": 2})

    assert isinstance(output, JSONOutput)
    assert output.content == {"booked": "LIS", "passengers": 2}
    assert len(tool.call_times) == 3
    assert tool.call_times[1] - tool.call_times[0] >= 0.09
    assert tool.call_times[2] - tool.call_times[1] >= 0.19


@pytest.mark.asyncio
async def test_retries_exhausted_raises_tool_error():
    tool = FlakyTool(failures=5, options=ToolOptions(max_retries=1, retry_delay=0.01))

    with pytest.raises(ToolError) as exc_info:
        await tool.run({"destination": "LIS", "passengers": 1})

    assert "attempt 2 failed" in exc_info.value.message
    assert exc_info.value.context["original_error"] == "RuntimeError"
    assert len(tool.call_times) == 2


@pytest.mark.asyncio
async def test_validation_error_lists_each_field_and_skips_execute():
    tool = FlakyTool(failures=0, options=ToolOptions(max_retries=3, retry_delay=0.01))

    with pytest.raises(ValidationError) as exc_info:
        await tool.run({"passengers": 0})

    fields = {error["field"] for error in exc_info.value.errors}
    assert fields == {"destination", "passengers"}
    for error in exc_info.value.errors:
        assert error["message"]
        assert error["type"]
    assert tool.call_times == []


@pytest.mark.asyncio
async def test_non_object_input_is_a_validation_error():
    tool = FlakyTool(failures=0)

    with pytest.raises(ValidationError) as exc_info:
        await tool.run("LIS")

    assert exc_info.value.errors[0]["type"] == "type_error"


@pytest.mark.asyncio
async def test_timeout_sets_abort_signal():
    started = asyncio.Event()

    async def slow(input, context, options):
        started.set()
        await asyncio.sleep(1.0)

    tool = DynamicTool("slow", "Sleeps", FlightInput, slow, ToolOptions(timeout=0.05))
    signal = asyncio.Event()

    with pytest.raises(ToolError) as exc_info:
        await tool.run({"destination": "LIS", "passengers": 1}, RunOptions(signal=signal))

    assert "timed out" in exc_info.value.message
    assert started.is_set()
    assert signal.is_set()


@pytest.mark.asyncio
async def test_lifecycle_hooks_fire():
    calls = []

    async def on_retry(error, attempt, input, context, options):
        calls.append(("retry", attempt, error.message))

    events = ToolEvents(
        on_start=lambda input, context, options: calls.append(("start", input.destination)),
        on_success=lambda output, input, context, options: calls.append(("success", output.get_content())),
        on_retry=on_retry,
    )
    tool = FlakyTool(failures=1, options=ToolOptions(max_retries=1, retry_delay=0.01), events=events)

    await tool.run({"destination": "OPO", "passengers": 1})

    assert calls[0] == ("start", "OPO")
    assert calls[1] == ("retry", 1, "attempt 1 failed")
    assert calls[2][0] == "success"
    assert '"booked": "OPO"' in calls[2][1]


@pytest.mark.asyncio
async def test_on_error_hook_receives_normalized_error():
    errors = []
    tool = FlakyTool(
        failures=1,
        events=ToolEvents(on_error=lambda error, input, context, options: errors.append(error)),
    )

    with pytest.raises(ToolError):
        await tool.run({"destination": "LIS", "passengers": 1})

    assert len(errors) == 1
    assert isinstance(errors[0], ToolError)


@pytest.mark.asyncio
async def test_failing_hook_does_not_fail_the_tool():
    def broken(*args):
        raise RuntimeError("hook broke")

    tool = FlakyTool(failures=0, events=ToolEvents(on_start=broken, on_success=broken))

    output = await tool.run({"destination": "LIS", "passengers": 1})
    assert output.content["booked"] == "LIS"


@pytest.mark.asyncio
async def test_lifecycle_published_on_event_bus():
    bus = EventBus()
    phases = []
    await bus.subscribe(EventType.TOOL, lambda event: phases.append((event.session_id, event.data.phase)))
    await bus.start()

    tool = FlakyTool(failures=1, options=ToolOptions(max_retries=1, retry_delay=0.01))
    tool.attach_event_bus(bus)
    await tool.run({"destination": "LIS", "passengers": 1}, RunOptions(extra={"session_id": "s1"}))

    await asyncio.sleep(0.1)
    await bus.stop()

    assert phases == [("s1", "start"), ("s1", "retry"), ("s1", "success")]


class StalledBus(EventBus):
    """Reports running but never drains its queue"""

    def is_running(self):
        return True


@pytest.mark.asyncio
async def test_full_event_bus_does_not_leak_into_tool_results():
    bus = StalledBus(maxsize=1, publish_timeout=0.05)
    await bus.publish(StreamEvent(session_id="s1", data="filler"))

    healthy = FlakyTool(failures=0)
    healthy.attach_event_bus(bus)
    output = await healthy.run({"destination": "LIS", "passengers": 1})
    assert output.content["booked"] == "LIS"

    broken = FlakyTool(failures=1, options=ToolOptions(max_retries=0))
    broken.attach_event_bus(bus)
    with pytest.raises(ToolError):
        await broken.run({"destination": "LIS", "passengers": 1})

    assert bus.qsize() == 1


@pytest.mark.asyncio
async def test_string_results_become_string_output():
    tool = DynamicTool("echo", "Echo", FlightInput, lambda input, context, options: input.destination)

    output = await tool.run({"destination": "FAO", "passengers": 1})

    assert isinstance(output, StringOutput)
    assert output.get_content() == "FAO"


def test_function_descriptions():
    tool = DynamicTool("book", "Book a flight", FlightInput, lambda *args: None)

    openai_fn = tool.to_openai_function()
    assert openai_fn["type"] == "function"
    assert openai_fn["function"]["name"] == "book"
    assert "destination" in openai_fn["function"]["parameters"]["properties"]

    claude_tool = tool.to_claude_tool()
    assert claude_tool["name"] == "book"
    assert claude_tool["input_schema"]["required"] == ["destination", "passengers"]


def test_registry_rejects_duplicates_and_excludes_names():
    registry = ToolRegistry()
    registry.register_function("book", "Book", FlightInput, lambda *args: None)
    registry.register_function("cancel", "Cancel", FlightInput, lambda *args: None)

    with pytest.raises(ConfigurationError):
        registry.register_function("book", "Again", FlightInput, lambda *args: None)

    assert registry.names() == ["book", "cancel"]
    assert "book" in registry
    assert len(registry) == 2
    names = [d["function"]["name"] for d in registry.function_descriptions(exclude={"book"})]
    assert names == ["cancel"]


@pytest.mark.asyncio
async def test_registry_execute_unknown_tool():
    registry = ToolRegistry()

    with pytest.raises(ToolError) as exc_info:
        await registry.execute_tool("missing", {})

    assert exc_info.value.context["tool"] == "missing"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
