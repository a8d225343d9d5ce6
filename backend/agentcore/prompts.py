"""
Prompt Templates

Pure functions producing the system/assistant/classification prompts and the
payload extracted from a response before it is remembered.
"""

import json
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .runtime.session import SessionContext
from .runtime.types import ANSWER_FIELDS, ClassificationTypeConfig

SYSTEM_PROMPT = """You are designated as: {role}
Your goal: {goal}
Your capabilities: {capabilities}

Stay within your capabilities, use the conversation history, and ask for
clarification when a request is ambiguous."""


class PromptTemplate(ABC):
    """Prompt collaborator used by AgentCore."""

    def __init__(
        self,
        types: Sequence[ClassificationTypeConfig],
        role: str = "a helpful assistant",
        goal: str = "answer the user's questions",
        capabilities: str = "",
    ):
        self.types = list(types)
        self.role = role
        self.goal = goal
        self.capabilities = capabilities

    def get_classification_types(self) -> List[ClassificationTypeConfig]:
        return list(self.types)

    def get_system_prompt(self, context: Optional[SessionContext] = None) -> str:
        return SYSTEM_PROMPT.format(
            role=self.role,
            goal=self.goal,
            capabilities=self.capabilities or "general conversation",
        )

    @abstractmethod
    def get_assistant_prompt(self, context: Optional[SessionContext] = None) -> str:
        """Instructions on the response format; empty to omit."""

    @abstractmethod
    def get_message_classification_prompt(self, message: str) -> str:
        """Standalone prompt asking the model to classify ``message``."""

    def extract_data_from_llm_response(self, text: str) -> str:
        """Payload stored in memory for conversational turns."""
        return text


class SimplePromptTemplate(PromptTemplate):
    """Asks for JSON tagged with one of the configured message types."""

    def _formatted_types(self) -> str:
        return "\n".join(f"- {t.name}: {t.description}" for t in self.types)

    def _formatted_schemas(self) -> str:
        return "\n\nor\n\n".join(
            f"{t.name}:\n```json\n{json.dumps(t.to_prompt_schema(), indent=2)}\n```" for t in self.types
        )

    def get_assistant_prompt(self, context: Optional[SessionContext] = None) -> str:
        return (
            f"Respond by choosing one of these message types:\n{self._formatted_types()}\n\n"
            f"Reply with a single JSON object matching its schema:\n{self._formatted_schemas()}"
        )

    def get_message_classification_prompt(self, message: str) -> str:
        return (
            "Classify the following message according to its intent.\n"
            f"Message: {message}\n\n"
            f"Available classifications:\n{self._formatted_types()}\n\n"
            f"Respond in JSON according to the schema:\n{self._formatted_schemas()}"
        )

    def extract_data_from_llm_response(self, text: str) -> str:
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, TypeError):
            return text
        if isinstance(data, dict):
            for key in ANSWER_FIELDS:
                if isinstance(data.get(key), str):
                    return data[key]
        return text


class BarePromptTemplate(PromptTemplate):
    """No format instructions: the model answers in plain text."""

    def get_assistant_prompt(self, context: Optional[SessionContext] = None) -> str:
        return ""

    def get_message_classification_prompt(self, message: str) -> str:
        return message
