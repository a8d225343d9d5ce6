"""
AgentCore Orchestrator

Owns one agent's mailbox, sessions, tools and instructions, and runs each
dequeued message through a full turn: history, prompt, model call, assembly,
classification, routing and memory.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Optional, Tuple

from .assembler import AssembledResponse, ResponseAssembler, StreamCallback, StreamCallbackRegistry
from .error_handler import LLMErrorHandler
from .event_bus import EventBus
from .inbox import PriorityInbox
from .session import Session
from .types import (
    Instruction,
    Message,
    MessageRole,
    ResponseType,
    SessionState,
    StateEvent,
    StreamEvent,
    TurnEvent,
    TurnEventData,
    TurnStage,
)
from ..config import AgentConfig, LLMConfig
from ..context import RuntimeContext
from ..errors import ConfigurationError, TransportError
from ..llm import ChatRequest, ModelTransport, create_transport
from ..memory import ConversationMemory, InMemoryConversationMemory, SQLConversationMemory
from ..tools import Tool, ToolRegistry
from ...utils.logger import get_logger

logger = get_logger(__name__)

_JSON_FENCE = re.compile(r"```json\s*(.*?)```", re.DOTALL)


def clean_response(text: str) -> str:
    """Extract a fenced ```json block, or strip stray backticks."""
    stripped = (text or "").strip()
    match = _JSON_FENCE.search(stripped)
    if match:
        return match.group(1).strip()
    if "```" in stripped:
        return stripped.replace("```", "").strip()
    return stripped


def drop_orphan_tool_messages(history: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Drop tool results at the head of a history window.

    A window cut by record count can start after the assistant message that
    issued the tool calls; providers reject tool results without that call.
    """
    start = 0
    while start < len(history) and history[start].get("role") == MessageRole.TOOL.value:
        start += 1
    return history[start:]


class AgentCore:
    """
    Message-driven agent.

    Features:
    - Priority mailbox with one consumer task (one turn in flight)
    - Sessions with handler fan-out per response type
    - Instruction → tool mapping for classified events
    - Streaming or non-streaming model calls through a ModelTransport
    - Turn stages published on the EventBus when one is running
    """

    def __init__(
        self,
        config: AgentConfig,
        llm_config: Optional[LLMConfig],
        prompt_template,
        classifier,
        *,
        transport: Optional[ModelTransport] = None,
        memory: Optional[ConversationMemory] = None,
        context: Optional[RuntimeContext] = None,
        error_handler: Optional[LLMErrorHandler] = None,
        event_bus: Optional[EventBus] = None,
    ):
        """
        Initialize the agent.

        Args:
            config: Agent identity, instructions and runtime knobs
            llm_config: Provider settings (optional when ``transport`` is given)
            prompt_template: PromptTemplate building the prompts
            classifier: AbstractClassifier strategy
            transport: Explicit model transport (built from llm_config otherwise)
            memory: Conversation memory (SQL when config.database_url is set)
            context: Runtime context shared with tools
            error_handler: Maps transport failures to user replies
            event_bus: Receives turn, stream, tool and state events

        Raises:
            ConfigurationError: No model client, or duplicate instructions
        """
        if llm_config is None and transport is None:
            raise ConfigurationError("No LLM client configured")

        self.config = config
        self.llm_config = llm_config
        self.prompt_template = prompt_template
        self.classifier = classifier
        self.transport = transport or create_transport(llm_config)
        self.context = context or RuntimeContext.from_env()
        self.error_handler = error_handler or LLMErrorHandler()
        self.event_bus = event_bus

        if memory is None:
            if config.database_url:
                memory = SQLConversationMemory.from_url(config.database_url)
            else:
                memory = InMemoryConversationMemory()
        self.memory = memory

        self.tool_registry = ToolRegistry()
        self.inbox = PriorityInbox(config.poll_interval)
        self.sessions: Dict[str, Session] = {}
        self.stream_callbacks = StreamCallbackRegistry()

        self.instructions: Dict[str, Instruction] = {}
        self.instruction_tool_map: Dict[str, str] = {}
        # Configured mappings are applied once their tool is registered
        self._configured_tool_map = dict(config.instruction_tool_map)

        for instruction in config.instructions:
            self.add_instruction(instruction.name, instruction.description, instruction.schema_template)

        logger.info(
            "AgentCore initialized",
            agent=config.name,
            transport=type(self.transport).__name__,
            memory=type(self.memory).__name__,
            instructions=len(self.instructions),
        )

    @property
    def model(self) -> str:
        return self.llm_config.model if self.llm_config else ""

    @property
    def stream_mode(self) -> bool:
        return bool(self.llm_config and self.llm_config.stream_mode)

    # ============================================
    # Tools & Instructions
    # ============================================

    def register_tool(self, tool: Tool) -> Tool:
        """
        Register a tool with this agent.

        Raises:
            ConfigurationError: Duplicate tool name, or a configured mapping
                naming an unknown instruction
        """
        tool.set_context(self.context)
        if self.event_bus is not None:
            tool.attach_event_bus(self.event_bus)
        self.tool_registry.register(tool)

        for instruction, tool_name in self._configured_tool_map.items():
            if tool_name == tool.name:
                self.handle_instruction_with_tool(instruction, tool_name)
        return tool

    def add_instruction(self, name: str, description: str = "", schema: Optional[Dict[str, Any]] = None) -> Instruction:
        """
        Raises:
            ConfigurationError: If an instruction with the same name exists
        """
        if name in self.instructions:
            raise ConfigurationError(f"Instruction '{name}' is already registered")
        instruction = Instruction(name=name, description=description, schema_template=schema or {})
        self.instructions[name] = instruction
        return instruction

    def handle_instruction_with_tool(self, instruction: str, tool_name: str) -> None:
        """
        Run ``tool_name`` whenever a response is classified as ``instruction``.

        Raises:
            ConfigurationError: Unknown instruction or tool
        """
        if instruction not in self.instructions:
            raise ConfigurationError(f"Unknown instruction: {instruction}")
        if not self.tool_registry.has(tool_name):
            raise ConfigurationError(f"Unknown tool: {tool_name}")
        self.instruction_tool_map[instruction] = tool_name
        logger.debug("Mapped instruction to tool", instruction=instruction, tool_name=tool_name)

    def get_tool_for_instruction(self, instruction: str) -> Optional[Tool]:
        tool_name = self.instruction_tool_map.get(instruction)
        return self.tool_registry.get(tool_name) if tool_name else None

    def has_tool_for_instruction(self, instruction: str) -> bool:
        return self.get_tool_for_instruction(instruction) is not None

    # ============================================
    # Sessions & Mailbox
    # ============================================

    def create_session(
        self,
        owner: str,
        description: str = "",
        parent_session_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Session:
        session = Session(
            self,
            owner=owner,
            description=description,
            session_id=session_id,
            parent_session_id=parent_session_id,
        )
        self.sessions[session.session_id] = session
        logger.info(
            "Session created",
            session_id=session.session_id,
            owner=owner,
            parent_session_id=parent_session_id,
        )
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def drop_session(self, session_id: str) -> Optional[Session]:
        """Forget a session. Messages already queued for it recreate it."""
        session = self.sessions.pop(session_id, None)
        if session is not None:
            session.context.update_state(SessionState.TERMINATED)
            logger.info("Session dropped", session_id=session_id)
        return session

    def receive(self, message: Message, priority: Any = None) -> None:
        """Enqueue a message; it is processed by the consumer task."""
        self.inbox.enqueue(message, priority)

    def register_stream_callback(self, callback: StreamCallback) -> None:
        self.stream_callbacks.register(callback)

    def unregister_stream_callback(self, callback: StreamCallback) -> None:
        self.stream_callbacks.unregister(callback)

    # ============================================
    # Lifecycle
    # ============================================

    async def start(self) -> None:
        """Start consuming the mailbox."""
        self.inbox.init(self.process_message)
        logger.info("AgentCore started", agent=self.config.name)

    async def stop(self) -> None:
        """Stop consuming and release the transport and memory."""
        await self.inbox.stop()
        for session in self.sessions.values():
            session.context.update_state(SessionState.TERMINATED)
        await self.transport.close()
        await self.memory.close()
        logger.info("AgentCore stopped", agent=self.config.name)

    # ============================================
    # Turn Processing
    # ============================================

    async def process_message(self, message: Message) -> Optional[ResponseType]:
        """
        Run one turn for ``message``.

        Model failures become a user-facing reply. Classification and routing
        failures are logged and do not propagate.

        Returns:
            The response type, or None when the turn did not classify
        """
        session = self._ensure_session(message)
        await self._stage(session, message, TurnStage.DEQUEUED)
        await self._set_state(session, SessionState.ACTIVE)

        try:
            assembled, raw_text = await self._invoke_model(session, message)
        except TransportError as e:
            await self._recover_from_transport_error(session, message, e)
            return None
        except Exception as e:
            await self._stage(session, message, TurnStage.FAILED, error=str(e))
            raise

        try:
            response_type = await self.classifier.handle_llm_response(raw_text, session)
            await self._stage(session, message, TurnStage.CLASSIFIED, response_type)

            await self._route(session, response_type, raw_text, assembled)
            await self._stage(session, message, TurnStage.ROUTED, response_type)
        except Exception as e:
            logger.error(
                "Turn failed after model call",
                session_id=session.session_id,
                message_id=message.id,
                error=str(e),
                exc_info=True,
            )
            await self._set_state(session, SessionState.ERROR_RECOVERY)
            await self._stage(session, message, TurnStage.FAILED, error=str(e))
            return None

        if response_type != ResponseType.EXCEPTION:
            await self._stage(session, message, TurnStage.REMEMBERED, response_type)
            await self._set_state(session, SessionState.WAITING)
        return response_type

    async def _invoke_model(self, session: Session, message: Message) -> Tuple[AssembledResponse, str]:
        history = drop_orphan_tool_messages(
            await self.memory.recall_recent_messages(session.session_id, self.config.history_limit)
        )
        await self._stage(session, message, TurnStage.HISTORY_LOADED)

        messages = self._build_messages(session, history, message.text)
        await self.memory.remember(
            message.text,
            tags=["user_input"],
            metadata={"role": MessageRole.USER, "session_id": session.session_id},
        )
        session.context.add_message(MessageRole.USER.value, message.text)

        tools = self.tool_registry.function_descriptions(exclude=set(self.instruction_tool_map.values()))
        request = ChatRequest(
            model=self.model,
            messages=messages,
            tools=tools or None,
            stream=self.stream_mode,
            max_tokens=self.llm_config.max_tokens if self.llm_config else None,
            temperature=self.llm_config.temperature if self.llm_config else None,
        )
        await self._stage(session, message, TurnStage.PROMPT_BUILT)

        await self._stage(session, message, TurnStage.MODEL_INVOKED)
        if request.stream:
            await self._stage(session, message, TurnStage.STREAMING)
            assembler = ResponseAssembler(
                callbacks=self.stream_callbacks,
                session_id=session.session_id,
                on_line=lambda line: self._publish(StreamEvent(session.session_id, line)),
            )
            async for chunk in self.transport.stream(request):
                await assembler.feed(chunk)
            assembled = await assembler.finish()
        else:
            await self._stage(session, message, TurnStage.NON_STREAMING)
            assembled = ResponseAssembler.assemble_message(await self.transport.complete(request))

        raw_text = assembled.tool_calls_json() if assembled.has_tool_calls else clean_response(assembled.content)
        await self._stage(session, message, TurnStage.RESPONSE_ASSEMBLED)
        return assembled, raw_text

    def _build_messages(self, session: Session, history: List[Dict[str, Any]], text: str) -> List[Dict[str, Any]]:
        messages = [{"role": "system", "content": self.prompt_template.get_system_prompt(session.context)}]
        assistant_prompt = self.prompt_template.get_assistant_prompt(session.context)
        if assistant_prompt:
            messages.append({"role": "assistant", "content": assistant_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": text})
        return messages

    async def _route(
        self,
        session: Session,
        response_type: ResponseType,
        raw_text: str,
        assembled: AssembledResponse,
    ) -> None:
        session_id = session.session_id
        tool_results = session.context.take_pending_tool_results()

        if response_type == ResponseType.EXCEPTION:
            await self._set_state(session, SessionState.ERROR_RECOVERY)
            return

        if response_type == ResponseType.TOOL_CALL and assembled.has_tool_calls:
            await self.memory.remember(
                None,
                tags=[response_type.value],
                metadata={
                    "role": MessageRole.ASSISTANT,
                    "session_id": session_id,
                    "tool_calls": [call.to_dict() for call in assembled.tool_calls],
                },
            )
            session.context.add_message(MessageRole.ASSISTANT.value, None, tool_calls=len(assembled.tool_calls))
            for envelope in tool_results:
                await self.memory.remember(
                    json.dumps(envelope.to_dict()),
                    tags=["tool_result"],
                    metadata={
                        "role": MessageRole.TOOL,
                        "session_id": session_id,
                        "tool_call_id": envelope.tool_call_id,
                    },
                )
            return

        payload = self.prompt_template.extract_data_from_llm_response(raw_text)
        await self.memory.remember(
            payload,
            tags=[response_type.value],
            metadata={"role": MessageRole.ASSISTANT, "session_id": session_id},
        )
        session.context.add_message(MessageRole.ASSISTANT.value, payload)

        # Tool calls requested inside a tagged JSON reply have no provider call id
        for envelope in tool_results:
            await self.memory.remember(
                json.dumps(envelope.to_dict()),
                tags=["tool_result"],
                metadata={"role": MessageRole.ASSISTANT, "session_id": session_id},
            )

    async def _recover_from_transport_error(self, session: Session, message: Message, error: TransportError) -> None:
        reply = self.error_handler.handle_error(error, session)
        await self._set_state(session, SessionState.ERROR_RECOVERY)
        await session.trigger_conversation_handlers(reply)
        await self.memory.remember(
            reply,
            tags=["error"],
            metadata={"role": MessageRole.ASSISTANT, "session_id": session.session_id},
        )
        session.context.add_message(MessageRole.ASSISTANT.value, reply)
        await self._stage(session, message, TurnStage.FAILED, error=error.message)

    # ============================================
    # Helpers
    # ============================================

    def _ensure_session(self, message: Message) -> Session:
        session = self.sessions.get(message.session_id)
        if session is None:
            session = self.create_session(
                owner=message.metadata.sender,
                parent_session_id=message.parent_session_id,
                session_id=message.session_id,
            )
        return session

    async def _set_state(self, session: Session, state: SessionState) -> None:
        previous = session.context.update_state(state)
        if previous != state:
            await self._publish(StateEvent(session.session_id, state))

    async def _stage(
        self,
        session: Session,
        message: Message,
        stage: TurnStage,
        response_type: Optional[ResponseType] = None,
        error: Optional[str] = None,
    ) -> None:
        logger.debug(
            "Turn stage",
            session_id=session.session_id,
            message_id=message.id,
            stage=stage.value,
            response_type=response_type.value if response_type else None,
        )
        await self._publish(
            TurnEvent(
                session.session_id,
                TurnEventData(stage=stage, message_id=message.id, response_type=response_type, error=error),
            )
        )

    async def _publish(self, event) -> None:
        if self.event_bus is None or not self.event_bus.is_running():
            return
        try:
            await self.event_bus.publish(event)
        except asyncio.QueueFull:
            logger.warning("Dropped runtime event", event_type=event.type.value, session_id=event.session_id)
