"""
Agent Runtime Configuration

Loads configuration from environment variables (and a .env file), with defaults.
"""

import json
import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

from dotenv import load_dotenv

from .runtime.types import Instruction, ValidationLevel

ENV_PREFIX = "AGENTCORE_"

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-sonnet-20241022",
}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool = False) -> bool:
    return _env(name, str(default)).lower() in ("1", "true", "yes", "on")


@dataclass
class LLMConfig:
    """Model provider configuration"""

    api_key: str
    provider: str = "openai"
    model: str = DEFAULT_MODELS["openai"]
    base_url: Optional[str] = None
    stream_mode: bool = False
    max_tokens: int = 4096
    temperature: float = 0.7
    request_timeout: float = 120.0  # seconds

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, provider: Optional[str] = None) -> "LLMConfig":
        """Load provider settings from the environment (``provider`` overrides it)"""
        load_dotenv(env_file)

        provider = (provider or _env("PROVIDER", "openai")).lower()
        fallback_key = "ANTHROPIC_API_KEY" if provider == "anthropic" else "OPENAI_API_KEY"
        api_key = _env("API_KEY") or os.getenv(fallback_key)
        if not api_key:
            raise ValueError(
                f"{ENV_PREFIX}API_KEY or {fallback_key} environment variable is required"
            )

        return cls(
            api_key=api_key,
            provider=provider,
            model=_env("MODEL", DEFAULT_MODELS.get(provider, DEFAULT_MODELS["openai"])),
            base_url=_env("BASE_URL"),
            stream_mode=_env_bool("STREAM_MODE"),
            max_tokens=int(_env("MAX_TOKENS", "4096")),
            temperature=float(_env("TEMPERATURE", "0.7")),
            request_timeout=float(_env("REQUEST_TIMEOUT", "120")),
        )

    def validate(self) -> None:
        """Validate configuration on startup (fail fast if invalid)"""
        if not self.api_key:
            raise ValueError("api_key is required")

        if self.provider not in DEFAULT_MODELS:
            raise ValueError(f"provider must be one of {sorted(DEFAULT_MODELS)}")

        if self.max_tokens < 1 or self.max_tokens > 200000:
            raise ValueError("max_tokens must be between 1 and 200000")

        if self.temperature < 0 or self.temperature > 2:
            raise ValueError("temperature must be between 0 and 2")

        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")


@dataclass
class AgentConfig:
    """Agent identity, instructions and runtime knobs"""

    name: str = "assistant"
    role: str = "a helpful assistant"
    goal: str = "answer the user's questions"
    capabilities: str = ""
    instructions: List[Instruction] = field(default_factory=list)
    instruction_tool_map: Dict[str, str] = field(default_factory=dict)

    # Mailbox
    poll_interval: float = 0.05  # seconds between mailbox ticks

    # Turn pipeline
    history_limit: int = 20
    validation_level: ValidationLevel = ValidationLevel.LENIENT
    allow_partial_match: bool = True
    require_message_type: bool = True

    # Memory persistence (None keeps memory in-process)
    database_url: Optional[str] = None

    # Debugging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "AgentConfig":
        """Load agent settings from the environment"""
        load_dotenv(env_file)

        instructions: List[Instruction] = []
        instructions_file = _env("INSTRUCTIONS_FILE")
        if instructions_file and os.path.exists(instructions_file):
            with open(instructions_file, "r", encoding="utf-8") as f:
                instructions = [Instruction.from_dict(item) for item in json.load(f)]

        instruction_tool_map: Dict[str, Any] = {}
        raw_map = _env("INSTRUCTION_TOOL_MAP")
        if raw_map:
            instruction_tool_map = json.loads(raw_map)

        return cls(
            name=_env("NAME", "assistant"),
            role=_env("ROLE", "a helpful assistant"),
            goal=_env("GOAL", "answer the user's questions"),
            capabilities=_env("CAPABILITIES", ""),
            instructions=instructions,
            instruction_tool_map=instruction_tool_map,
            poll_interval=float(_env("POLL_INTERVAL", "0.05")),
            history_limit=int(_env("HISTORY_LIMIT", "20")),
            validation_level=ValidationLevel(_env("VALIDATION_LEVEL", "lenient").lower()),
            allow_partial_match=_env_bool("ALLOW_PARTIAL_MATCH", True),
            require_message_type=_env_bool("REQUIRE_MESSAGE_TYPE", True),
            database_url=_env("DATABASE_URL"),
            log_level=_env("LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate configuration on startup (fail fast if invalid)"""
        if not self.name:
            raise ValueError("name is required")

        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        if self.history_limit < 0:
            raise ValueError("history_limit must be zero or more")
