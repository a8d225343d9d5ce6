"""
Streaming Response Assembler

Rebuilds a complete model turn from streamed chunks:
- text deltas are re-cut on line boundaries before reaching stream callbacks
- tool-call fragments are accumulated per stream index into complete calls
"""

import inspect
import json
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .types import StreamCompletion, ToolCall, ToolCallFunction
from ...utils.logger import get_logger

logger = get_logger(__name__)

StreamCallback = Callable[[str, Optional[StreamCompletion], Optional[str]], Any]

FLUSH_THRESHOLD = 100


# ============================================
# Line Buffer
# ============================================


class LineBuffer:
    """
    Buffers text deltas and releases complete lines.

    Lines keep their trailing newline. When the buffered partial line grows
    past ``threshold`` characters it is released without waiting for a newline.
    """

    def __init__(self, threshold: int = FLUSH_THRESHOLD):
        self.threshold = threshold
        self._buffer = ""

    def feed(self, delta: str) -> List[str]:
        if not delta:
            return []

        self._buffer += delta
        lines: List[str] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            lines.append(line + "\n")

        if len(self._buffer) > self.threshold:
            lines.append(self._buffer)
            self._buffer = ""

        return lines

    def flush(self) -> str:
        remainder, self._buffer = self._buffer, ""
        return remainder

    @property
    def pending(self) -> str:
        return self._buffer


# ============================================
# Tool Call Reconstruction
# ============================================


class ToolCallAccumulator:
    """Index-keyed buffers for tool calls streamed in fragments."""

    def __init__(self):
        self._calls: Dict[int, ToolCall] = {}

    def add(
        self,
        index: int,
        id: Optional[str] = None,
        name: Optional[str] = None,
        arguments: Optional[str] = None,
    ) -> None:
        call = self._calls.get(index)
        if call is None:
            call = self._calls[index] = ToolCall(id="", function=ToolCallFunction())

        # id and name arrive once, early; arguments arrive piecewise
        if id:
            call.id = id
        if name:
            call.function.name = name
        if arguments:
            call.function.arguments += arguments

    def finalize(self) -> List[ToolCall]:
        """Complete calls ordered by index. Clears the accumulator."""
        calls = [self._calls[index] for index in sorted(self._calls)]
        self._calls = {}
        return calls

    def reset(self) -> None:
        self._calls = {}

    def __len__(self) -> int:
        return len(self._calls)


_MARKER_PATTERNS = [
    # <|tool_call_begin|> functions.get_weather:0 <|tool_call_argument_begin|> {...} <|tool_call_end|>
    re.compile(
        r"<\|tool_call_begin\|>\s*(?:functions\.)?(?P<name>[\w\-.]+?)(?::\d+)?\s*"
        r"<\|tool_call_argument_begin\|>\s*(?P<args>.*?)\s*<\|tool_call_end\|>",
        re.DOTALL,
    ),
    # <tool_call>{"name": "get_weather", "arguments": {...}}</tool_call>
    re.compile(r"<tool_call>\s*(?P<body>\{.*?\})\s*</tool_call>", re.DOTALL),
]


def _json_blob(text: str) -> str:
    """Best-guess JSON object inside ``text`` (first '{' to last '}')."""
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        return "{}"
    return text[start:end + 1]


def extract_marker_tool_calls(text: str) -> List[ToolCall]:
    """
    Recover tool calls from token-delimited markers in free text.

    Compatibility path for providers that emit markers instead of structured
    deltas. Returns an empty list when nothing is found.
    """
    calls: List[ToolCall] = []
    if not text or "tool_call" not in text:
        return calls

    for match in _MARKER_PATTERNS[0].finditer(text):
        calls.append(_synthesize(match.group("name"), _json_blob(match.group("args"))))

    for match in _MARKER_PATTERNS[1].finditer(text):
        try:
            body = json.loads(match.group("body"))
        except json.JSONDecodeError:
            name_match = re.search(r'"name"\s*:\s*"([^"]+)"', match.group("body"))
            if not name_match:
                continue
            args_start = match.group("body").find('"arguments"')
            args = _json_blob(match.group("body")[args_start:]) if args_start != -1 else "{}"
            calls.append(_synthesize(name_match.group(1), args))
            continue
        arguments = body.get("arguments", body.get("parameters", {}))
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments)
        if body.get("name"):
            calls.append(_synthesize(body["name"], arguments))

    if calls:
        logger.debug("Recovered tool calls from text markers", count=len(calls))
    return calls


def _synthesize(name: str, arguments: str) -> ToolCall:
    return ToolCall(
        id=f"call_{uuid.uuid4().hex[:12]}",
        function=ToolCallFunction(name=name, arguments=arguments),
    )


# ============================================
# Callback Registry
# ============================================


class StreamCallbackRegistry:
    """Stream callbacks, kept in registration order and removed by identity."""

    def __init__(self):
        self._callbacks: List[StreamCallback] = []

    def register(self, callback: StreamCallback) -> None:
        if not any(cb is callback for cb in self._callbacks):
            self._callbacks.append(callback)

    def unregister(self, callback: StreamCallback) -> None:
        self._callbacks = [cb for cb in self._callbacks if cb is not callback]

    async def deliver(
        self,
        delta: str,
        completion: Optional[StreamCompletion] = None,
        session_id: Optional[str] = None,
    ) -> None:
        for callback in list(self._callbacks):
            try:
                result = callback(delta, completion, session_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Stream callback failed", session_id=session_id, error=str(e), exc_info=True)

    def __len__(self) -> int:
        return len(self._callbacks)


# ============================================
# Assembler
# ============================================


@dataclass
class AssembledResponse:
    """A finished model turn"""

    content: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    finish_reason: Optional[str] = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def tool_calls_json(self) -> str:
        return json.dumps({"tool_calls": [call.to_dict() for call in self.tool_calls]})


class ResponseAssembler:
    """
    Assembles one streamed model turn.

    Create one per stream: the accumulator and line buffer are private to it.
    """

    def __init__(
        self,
        callbacks: Optional[StreamCallbackRegistry] = None,
        session_id: Optional[str] = None,
        flush_threshold: int = FLUSH_THRESHOLD,
        on_line: Optional[Callable[[str], Any]] = None,
    ):
        self.callbacks = callbacks or StreamCallbackRegistry()
        self.session_id = session_id
        self.on_line = on_line
        self._lines = LineBuffer(flush_threshold)
        self._tool_calls = ToolCallAccumulator()
        self._content: List[str] = []
        self._finish_reason: Optional[str] = None

    async def feed(self, chunk) -> None:
        """Consume one ChatChunk."""
        if chunk.content:
            self._content.append(chunk.content)
            for line in self._lines.feed(chunk.content):
                await self._deliver(line)

        for delta in chunk.tool_calls or []:
            self._tool_calls.add(delta.index, delta.id, delta.name, delta.arguments)

        if chunk.finish_reason:
            self._finish_reason = chunk.finish_reason

    async def finish(self, finish_reason: Optional[str] = None) -> AssembledResponse:
        """Flush remaining text and return the completed turn."""
        reason = finish_reason or self._finish_reason or "stop"
        await self._deliver(self._lines.flush(), StreamCompletion(reason=reason))

        calls = self._tool_calls.finalize() if reason == "tool_calls" else []
        self._tool_calls.reset()

        content = "".join(self._content)
        if not calls:
            calls = extract_marker_tool_calls(content)

        return AssembledResponse(content=content, tool_calls=calls, finish_reason=reason)

    @staticmethod
    def assemble_message(message) -> AssembledResponse:
        """Non-streaming counterpart: wrap a CompletionMessage."""
        calls = list(message.tool_calls or [])
        if not calls:
            calls = extract_marker_tool_calls(message.content or "")
        return AssembledResponse(
            content=message.content or "",
            tool_calls=calls,
            finish_reason=message.finish_reason,
        )

    async def _deliver(self, delta: str, completion: Optional[StreamCompletion] = None) -> None:
        if not delta and completion is None:
            return
        await self.callbacks.deliver(delta, completion, self.session_id)
        if self.on_line is not None and delta:
            result = self.on_line(delta)
            if inspect.isawaitable(result):
                await result
