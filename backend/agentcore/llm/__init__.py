"""
Model Transports

Provider adapters behind a single request/stream interface.
"""

from .base import ChatRequest, ChatChunk, ToolCallDelta, CompletionMessage, ModelTransport
from .openai_compat import OpenAICompatTransport
from .anthropic_transport import AnthropicTransport
from ..config import LLMConfig
from ..errors import ConfigurationError


def create_transport(llm_config: LLMConfig) -> ModelTransport:
    """
    Build the transport for ``llm_config.provider``.

    Raises:
        ConfigurationError: Unknown provider
    """
    if llm_config.provider == "openai":
        return OpenAICompatTransport(
            api_key=llm_config.api_key,
            base_url=llm_config.base_url,
            timeout=llm_config.request_timeout,
        )
    if llm_config.provider == "anthropic":
        return AnthropicTransport(
            api_key=llm_config.api_key,
            base_url=llm_config.base_url,
            timeout=llm_config.request_timeout,
        )
    raise ConfigurationError(f"Unknown LLM provider: {llm_config.provider}")


__all__ = [
    "ChatRequest",
    "ChatChunk",
    "ToolCallDelta",
    "CompletionMessage",
    "ModelTransport",
    "OpenAICompatTransport",
    "AnthropicTransport",
    "create_transport",
]
