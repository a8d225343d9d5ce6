#!/usr/bin/env python3
"""
AgentCore CLI

Interactive chat with a single agent from the terminal.
"""

import sys
import asyncio
import argparse
from typing import Optional

from backend.agentcore.config import AgentConfig, LLMConfig, DEFAULT_MODELS
from backend.agentcore.classifier import DefaultClassifier
from backend.agentcore.prompts import SimplePromptTemplate
from backend.agentcore.runtime.agent_core import AgentCore
from backend.agentcore.runtime.types import ClassificationTypeConfig, StreamCompletion, ValidationOptions
from backend.utils.logger import configure_logging

CONVERSATION_TYPE = ClassificationTypeConfig(
    name="CONVERSATION",
    description="A plain conversational reply to the user",
    schema={
        "properties": {"answer": {"type": "string", "description": "Reply shown to the user"}},
        "required": ["answer"],
    },
)

EXIT_COMMANDS = ("exit", "quit", "/exit", "/quit")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="AgentCore interactive chat")
    parser.add_argument("--provider", choices=sorted(DEFAULT_MODELS), help="Model provider")
    parser.add_argument("--model", help="Model name")
    parser.add_argument("--stream", action="store_true", help="Stream responses line by line")
    parser.add_argument("--log-level", default="WARNING", help="Log level")
    parser.add_argument("--database-url", help="Persist memory to this database (e.g. sqlite:///agent.db)")
    return parser.parse_args(argv)


def build_agent(args: argparse.Namespace) -> AgentCore:
    """
    Build an agent from the environment, overridden by command-line flags.

    Raises:
        ValueError: Invalid configuration
    """
    llm_config = LLMConfig.from_env(provider=args.provider)
    if args.model:
        llm_config.model = args.model
    llm_config.stream_mode = args.stream or llm_config.stream_mode
    llm_config.validate()

    config = AgentConfig.from_env()
    if args.database_url:
        config.database_url = args.database_url
    config.log_level = args.log_level
    config.validate()

    types = [CONVERSATION_TYPE]
    return AgentCore(
        config,
        llm_config,
        SimplePromptTemplate(types, role=config.role, goal=config.goal, capabilities=config.capabilities),
        DefaultClassifier(
            types,
            ValidationOptions(
                level=config.validation_level,
                allow_partial_match=config.allow_partial_match,
                require_message_type=config.require_message_type,
            ),
        ),
    )


async def run(agent: AgentCore) -> None:
    session = agent.create_session(owner="cli-user", description="Interactive chat")

    if agent.stream_mode:

        def print_line(delta: str, completion: Optional[StreamCompletion], session_id: Optional[str]) -> None:
            if delta:
                print(delta, end="", flush=True)
            if completion is not None:
                print()

        agent.register_stream_callback(print_line)
    else:
        session.on_conversation(lambda reply, _session: print(f"\nassistant> {reply}\n"))

    session.on_exception(lambda error, _session: print(f"\n[error] {error['error']}\n", file=sys.stderr))
    session.on_tool_result(lambda envelope, _session: print(f"[tool] {envelope.tool_name}: {envelope.status}"))

    await agent.start()
    loop = asyncio.get_running_loop()
    try:
        while True:
            text = await loop.run_in_executor(None, input, "you> ")
            text = text.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            session.chat(text)
            await agent.inbox.drain()
    except (EOFError, KeyboardInterrupt):
        print()
    finally:
        await agent.stop()


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    configure_logging(log_level=args.log_level, use_colors=True)

    try:
        agent = build_agent(args)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"AgentCore chat ({agent.llm_config.provider}/{agent.model}). Type 'exit' to quit.")
    asyncio.run(run(agent))


if __name__ == "__main__":
    main()
