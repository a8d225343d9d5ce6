"""
Sessions

A Session is one conversation with an agent: it builds messages, hands them to
the agent's mailbox and fans classified results out to registered handlers.
"""

import inspect
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional

from .types import (
    ANSWER_FIELDS,
    Message,
    MessagePriority,
    PayloadType,
    SessionState,
    ToolResultEnvelope,
)
from ..errors import ToolError, ValidationError
from ...utils.logger import get_logger

logger = get_logger(__name__)

Handler = Callable[[Any, "Session"], Any]


class HandlerList:
    """
    Ordered callbacks for one channel.

    ``fire`` calls every handler in registration order (fan-out, not
    first-match). A failing handler is logged and the rest still run.
    """

    def __init__(self, channel: str):
        self.channel = channel
        self._handlers: List[Handler] = []

    def append(self, handler: Handler) -> Handler:
        self._handlers.append(handler)
        return handler

    def remove(self, handler: Handler) -> None:
        self._handlers = [h for h in self._handlers if h is not handler]

    async def fire(self, payload: Any, session: "Session") -> int:
        """Invoke every handler with ``(payload, session)``. Returns how many ran."""
        for handler in list(self._handlers):
            try:
                result = handler(payload, session)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Handler failed",
                    channel=self.channel,
                    session_id=session.session_id,
                    error=str(e),
                    exc_info=True,
                )
        return len(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[Handler]:
        return iter(list(self._handlers))


@dataclass
class SessionContext:
    """Per-session mutable state, written only by the agent's consumer loop"""

    session_id: str
    state: SessionState = SessionState.START
    messages: List[Dict[str, Any]] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.utcnow)
    last_interaction_time: datetime = field(default_factory=datetime.utcnow)
    current_topic: Optional[str] = None
    current_instruction: Optional[str] = None
    pending_tool_results: List[ToolResultEnvelope] = field(default_factory=list)

    def add_message(self, role: str, content: Any, **extra: Any) -> None:
        """Append to the transient history and touch the interaction time."""
        self.last_interaction_time = datetime.utcnow()
        entry = {"role": role, "content": content, "timestamp": self.last_interaction_time}
        entry.update(extra)
        self.messages.append(entry)

    def update_state(self, state: SessionState) -> SessionState:
        """Set the state label and return the previous one."""
        previous = self.state
        if previous != state:
            logger.debug(
                "Session state changed",
                session_id=self.session_id,
                previous=previous.value,
                state=state.value,
            )
        self.state = state
        return previous

    def set_topic(self, topic: Optional[str]) -> None:
        self.current_topic = topic

    def set_instruction(self, instruction: Optional[str]) -> None:
        self.current_instruction = instruction

    def take_pending_tool_results(self) -> List[ToolResultEnvelope]:
        results, self.pending_tool_results = self.pending_tool_results, []
        return results

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "message_count": len(self.messages),
            "start_time": self.start_time.isoformat(),
            "last_interaction_time": self.last_interaction_time.isoformat(),
            "current_topic": self.current_topic,
            "current_instruction": self.current_instruction,
        }


class Session:
    """
    One conversation with an agent.

    Handlers receive ``(payload, session)`` and may be sync or async:
    - event: classified instructions (or the mapped tool's result envelope)
    - tool_result: ToolResultEnvelope for each model-requested tool call
    - conversation: plain answers
    - exception: unparseable responses, with the raw text preserved
    - routing: ROUTING responses
    """

    def __init__(
        self,
        core,
        owner: str,
        description: str = "",
        session_id: Optional[str] = None,
        parent_session_id: Optional[str] = None,
    ):
        """
        Args:
            core: Owning AgentCore
            owner: Id of the user or agent that opened the session
            description: What the conversation is about
            session_id: Explicit id (generated when omitted)
            parent_session_id: Parent when this is a subtask
        """
        self.core = core
        self.owner = owner
        self.description = description
        self.session_id = session_id or str(uuid.uuid4())
        self.parent_session_id = parent_session_id
        self.subtask_ids: List[str] = []
        self.context = SessionContext(session_id=self.session_id)

        self.event_handlers = HandlerList("event")
        self.tool_result_handlers = HandlerList("tool_result")
        self.conversation_handlers = HandlerList("conversation")
        self.exception_handlers = HandlerList("exception")
        self.routing_handlers = HandlerList("routing")

    @property
    def state(self) -> SessionState:
        return self.context.state

    # ============================================
    # Messages
    # ============================================

    def create_message(
        self,
        text: str,
        sender: Optional[str] = None,
        priority: Any = MessagePriority.NORMAL,
        input_type: PayloadType = PayloadType.TEXT,
        parameters: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> Message:
        """Build a message stamped with this session's id."""
        return Message.create(
            session_id=self.session_id,
            text=text,
            sender=sender or self.owner,
            priority=priority,
            input_type=input_type,
            parameters=parameters,
            context=context,
            parent_session_id=self.parent_session_id,
        )

    def chat(self, text: str, priority: Any = MessagePriority.NORMAL, **kwargs: Any) -> Message:
        """Create a message and enqueue it to the owning agent."""
        message = self.create_message(text, priority=priority, **kwargs)
        self.core.receive(message, priority)
        return message

    def create_subtask(self, description: str) -> "Session":
        """Open a child session linked to this one."""
        child = self.core.create_session(
            owner=self.owner,
            description=description,
            parent_session_id=self.session_id,
        )
        self.subtask_ids.append(child.session_id)
        return child

    # ============================================
    # Handler Registration
    # ============================================

    def on_event(self, handler: Handler) -> Handler:
        return self.event_handlers.append(handler)

    def on_tool_result(self, handler: Handler) -> Handler:
        return self.tool_result_handlers.append(handler)

    def on_conversation(self, handler: Handler) -> Handler:
        return self.conversation_handlers.append(handler)

    def on_exception(self, handler: Handler) -> Handler:
        return self.exception_handlers.append(handler)

    def on_routing(self, handler: Handler) -> Handler:
        return self.routing_handlers.append(handler)

    # ============================================
    # Dispatch
    # ============================================

    async def trigger_event_handlers(self, obj: Any) -> None:
        """
        Dispatch a classified instruction.

        If a tool is mapped to the instruction, the tool runs on the
        instruction's fields (reply fields excluded) and handlers get its
        result envelope; otherwise they get the object itself.
        """
        instruction = obj.get("messageType") if isinstance(obj, dict) else None
        tool = self.core.get_tool_for_instruction(instruction) if instruction else None

        if tool is None:
            await self.event_handlers.fire(obj, self)
            return

        arguments = {k: v for k, v in obj.items() if k != "messageType" and k not in ANSWER_FIELDS}
        envelope = await self._run_tool(tool, arguments)
        await self.event_handlers.fire(envelope, self)

    async def trigger_tool_calls_handlers(self, obj: Dict[str, Any]) -> ToolResultEnvelope:
        """
        Run the tool named by ``obj["toolName"]`` and dispatch the envelope.

        Never raises for tool problems: unknown tools, bad arguments and tool
        failures all become failure envelopes.
        """
        tool_name = obj.get("toolName") or ""
        call_id = obj.get("toolCallId")
        arguments = obj.get("arguments") or {}

        tool = self.core.tool_registry.get(tool_name) if tool_name else None
        if tool is None:
            envelope = ToolResultEnvelope.failure(tool_name, f"Unknown tool: {tool_name}", tool_call_id=call_id)
        elif isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError as e:
                envelope = ToolResultEnvelope.failure(
                    tool_name, f"Invalid tool arguments: {e}", tool_call_id=call_id
                )
            else:
                envelope = await self._run_tool(tool, arguments, call_id)
        else:
            envelope = await self._run_tool(tool, arguments, call_id)

        self.context.pending_tool_results.append(envelope)
        await self.tool_result_handlers.fire(envelope, self)
        return envelope

    async def trigger_conversation_handlers(self, obj: Any) -> None:
        await self.conversation_handlers.fire(obj, self)

    async def trigger_exception_handlers(self, obj: Any) -> None:
        await self.exception_handlers.fire(obj, self)

    async def trigger_routing_handlers(self, obj: Any) -> None:
        await self.routing_handlers.fire(obj, self)

    async def _run_tool(self, tool, arguments: Any, tool_call_id: Optional[str] = None) -> ToolResultEnvelope:
        from ..tools.base import RunOptions

        try:
            output = await tool.run(arguments, RunOptions(extra={"session_id": self.session_id}))
        except ValidationError as e:
            return ToolResultEnvelope.failure(tool.name, e.message, details=e.errors, tool_call_id=tool_call_id)
        except ToolError as e:
            return ToolResultEnvelope.failure(tool.name, e.message, details=e.context or None, tool_call_id=tool_call_id)
        return ToolResultEnvelope.success(tool.name, output, tool_call_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "owner": self.owner,
            "description": self.description,
            "parent_session_id": self.parent_session_id,
            "subtask_ids": list(self.subtask_ids),
            "context": self.context.to_dict(),
        }
