"""
Tool Execution Engine

Base class for tools the agent can call: schema-validated input, retry with
exponential backoff, timeout-bound execution and lifecycle hooks.
"""

import asyncio
import inspect
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Type, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..context import RuntimeContext
from ..errors import ToolError, ValidationError
from ..runtime.types import ToolEvent, ToolEventData
from ...utils.logger import get_logger

logger = get_logger(__name__)


# ============================================
# Outputs
# ============================================


class ToolOutput(ABC):
    """Result of a tool run"""

    def __init__(self, metadata: Optional[Dict[str, Any]] = None):
        self.metadata = metadata or {}

    @abstractmethod
    def get_content(self) -> str:
        """Text handed back to the model or to handlers."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get_content()!r})"


class StringOutput(ToolOutput):
    def __init__(self, content: str, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(metadata)
        self.content = content

    def get_content(self) -> str:
        return self.content


class JSONOutput(ToolOutput):
    def __init__(self, content: Any, metadata: Optional[Dict[str, Any]] = None):
        super().__init__(metadata)
        self.content = content

    def get_content(self) -> str:
        return json.dumps(self.content, default=str)


# ============================================
# Options & Events
# ============================================


@dataclass
class ToolOptions:
    """Per-tool execution policy"""

    max_retries: int = 0
    retry_delay: float = 1.0  # seconds; attempt n waits retry_delay * 2**n
    timeout: Optional[float] = None  # seconds for the whole run, retries included


@dataclass
class RunOptions:
    """Per-call options"""

    timeout: Optional[float] = None
    signal: Optional[asyncio.Event] = None  # set when the run is aborted
    extra: Dict[str, Any] = field(default_factory=dict)


Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass
class ToolEvents:
    """
    Lifecycle hooks. Each may be sync or async.

    on_start(input, context, options)
    on_success(output, input, context, options)
    on_error(error, input, context, options)
    on_retry(error, attempt, input, context, options)
    """

    on_start: Optional[Hook] = None
    on_success: Optional[Hook] = None
    on_error: Optional[Hook] = None
    on_retry: Optional[Hook] = None


# ============================================
# Tool
# ============================================


class Tool(ABC):
    """
    Base class for all tools.

    Subclasses declare ``schema()`` (a pydantic model) and implement
    ``execute()``. Callers use ``run()``, which never leaks anything but a
    ToolError.
    """

    def __init__(
        self,
        name: str,
        description: str,
        options: Optional[ToolOptions] = None,
        events: Optional[ToolEvents] = None,
    ):
        self.name = name
        self.description = description
        self.options = options or ToolOptions()
        self.events = events or ToolEvents()
        self.context: Optional[RuntimeContext] = None
        self.event_bus = None

    def set_context(self, context: RuntimeContext) -> None:
        self.context = context

    def attach_event_bus(self, event_bus) -> None:
        """Publish lifecycle events on ``event_bus`` as well as calling hooks."""
        self.event_bus = event_bus

    @abstractmethod
    def schema(self) -> Type[BaseModel]:
        """Model describing the tool's input."""

    @abstractmethod
    async def execute(self, input: BaseModel, context: Optional[RuntimeContext], options: RunOptions) -> Any:
        """Do the work. May return a ToolOutput, a string or any JSON-able value."""

    # ------------------------------------------
    # Running
    # ------------------------------------------

    def validate_input(self, input: Any) -> BaseModel:
        """
        Validate raw input against the schema.

        Raises:
            ValidationError: With one entry per violated field
        """
        model = self.schema()
        if isinstance(input, model):
            return input
        if isinstance(input, BaseModel):
            input = input.model_dump()
        if not isinstance(input, dict):
            raise ValidationError(
                "Input validation failed",
                errors=[{"field": "", "message": f"Expected an object, got {type(input).__name__}", "type": "type_error"}],
                context={"tool": self.name},
            )

        try:
            return model.model_validate(input)
        except PydanticValidationError as e:
            errors = [
                {
                    "field": ".".join(str(part) for part in err["loc"]),
                    "message": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors(include_url=False)
            ]
            raise ValidationError("Input validation failed", errors=errors, context={"tool": self.name}) from e

    async def run(self, input: Any, options: Optional[RunOptions] = None) -> ToolOutput:
        """
        Validate, then execute with timeout and retry.

        Raises:
            ValidationError: Input does not match the schema (never retried)
            ToolError: Execution failed, timed out or was aborted
        """
        options = options or RunOptions()
        try:
            validated = self.validate_input(input)

            timeout = options.timeout or self.options.timeout
            run_options = RunOptions(
                timeout=timeout,
                signal=options.signal or asyncio.Event(),
                extra=dict(options.extra),
            )
            preference = self.context.get_tool_preference(self.name) if self.context else None
            if preference:
                run_options.extra.update(preference.custom_options)

            await self._emit("on_start", run_options, validated, self.context, run_options)

            operation = self._with_retry(validated, run_options)
            if timeout:
                try:
                    result = await asyncio.wait_for(operation, timeout=timeout)
                except asyncio.TimeoutError:
                    run_options.signal.set()
                    raise ToolError(
                        f"Tool '{self.name}' timed out after {timeout}s",
                        {"tool": self.name, "timeout": timeout},
                    )
            else:
                result = await operation

            output = self._coerce_output(result)
            await self._emit("on_success", run_options, output, validated, self.context, run_options)
            logger.debug("Tool succeeded", tool=self.name)
            return output

        except asyncio.CancelledError:
            raise
        except Exception as e:
            tool_error = self._normalize(e)
            await self._emit("on_error", options, tool_error, input, self.context, options)
            logger.warning("Tool failed", tool=self.name, error=tool_error.message)
            if tool_error is e:
                raise
            raise tool_error from e

    async def _with_retry(self, input: BaseModel, options: RunOptions) -> Any:
        max_retries = max(self.options.max_retries, 0)
        delay = self.options.retry_delay

        for attempt in range(max_retries + 1):
            try:
                return await self.execute(input, self.context, options)
            except asyncio.CancelledError:
                raise
            except ValidationError:
                raise
            except Exception as e:
                error = self._normalize(e)
                if attempt == max_retries:
                    if error is e:
                        raise
                    raise error from e

                await self._emit("on_retry", options, error, attempt + 1, input, self.context, options)
                logger.info(
                    "Retrying tool",
                    tool=self.name,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    error=error.message,
                )
                await asyncio.sleep(delay * 2 ** attempt)

        raise ToolError("Max retries exceeded", {"tool": self.name})

    def _normalize(self, error: BaseException) -> ToolError:
        if isinstance(error, ToolError):
            return error
        return ToolError(
            str(error) or type(error).__name__,
            {"tool": self.name, "original_error": type(error).__name__},
        )

    @staticmethod
    def _coerce_output(result: Any) -> ToolOutput:
        if isinstance(result, ToolOutput):
            return result
        if isinstance(result, str):
            return StringOutput(result)
        return JSONOutput(result)

    async def _emit(self, hook_name: str, options: RunOptions, *args: Any) -> None:
        hook = getattr(self.events, hook_name)
        if hook is not None:
            try:
                result = hook(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Tool event hook failed", tool=self.name, hook=hook_name, error=str(e), exc_info=True)

        if self.event_bus is not None and self.event_bus.is_running():
            phase = hook_name[len("on_"):]
            error = next((a for a in args if isinstance(a, ToolError)), None)
            attempt = args[1] if phase == "retry" else None
            event = ToolEvent(
                session_id=options.extra.get("session_id", ""),
                data=ToolEventData(
                    tool_name=self.name,
                    phase=phase,
                    attempt=attempt,
                    error=error.message if error else None,
                ),
            )
            try:
                await self.event_bus.publish(event)
            except asyncio.QueueFull:
                logger.warning("Dropped tool event", tool=self.name, phase=phase, session_id=event.session_id)

    # ------------------------------------------
    # Descriptions for the model
    # ------------------------------------------

    def to_openai_function(self) -> Dict[str, Any]:
        """Function-calling definition (OpenAI chat completions format)."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.schema().model_json_schema(),
            },
        }

    def to_claude_tool(self) -> Dict[str, Any]:
        """Tool definition in Anthropic format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.schema().model_json_schema(),
        }


class DynamicTool(Tool):
    """Wraps a plain (sync or async) callable as a Tool."""

    def __init__(
        self,
        name: str,
        description: str,
        input_model: Type[BaseModel],
        handler: Callable[[BaseModel, Optional[RuntimeContext], RunOptions], Any],
        options: Optional[ToolOptions] = None,
        events: Optional[ToolEvents] = None,
    ):
        super().__init__(name, description, options, events)
        self._input_model = input_model
        self._handler = handler

    def schema(self) -> Type[BaseModel]:
        return self._input_model

    async def execute(self, input: BaseModel, context: Optional[RuntimeContext], options: RunOptions) -> Any:
        result = self._handler(input, context, options)
        if inspect.isawaitable(result):
            result = await result
        return result
