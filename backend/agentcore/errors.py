"""
Agent Runtime Errors

Exception hierarchy shared by the mailbox, tools, classifier and orchestrator.
"""

from typing import Any, Dict, List, Optional


class AgentCoreError(Exception):
    """Base class for all runtime errors."""


class ConfigurationError(AgentCoreError):
    """Construction-time misconfiguration. Prevents the agent from starting."""


class TransportError(AgentCoreError):
    """
    The model call failed.

    Args:
        message: Human readable description
        status: HTTP status reported by the provider, if any
        code: Provider error code (e.g. "context_length_exceeded")
    """

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __repr__(self) -> str:
        return f"TransportError(status={self.status}, code={self.code!r}, message={self.message!r})"


class ToolError(AgentCoreError):
    """
    Normalized tool failure. Every error leaving Tool.run is a ToolError.

    Args:
        message: Human readable description
        context: Free-form details (tool name, attempts, original error type, ...)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "context": self.context}


class ValidationError(ToolError):
    """Tool input did not match the tool's schema. Carries one entry per violated field."""

    def __init__(
        self,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


class ClassificationParseError(AgentCoreError):
    """
    The model response is not valid JSON or not an expected structure.

    The raw text is always preserved so exception handlers can inspect it.
    """

    def __init__(self, message: str, raw_text: str = "", instruction: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.raw_text = raw_text
        self.instruction = instruction


__all__ = [
    "AgentCoreError",
    "ConfigurationError",
    "TransportError",
    "ToolError",
    "ValidationError",
    "ClassificationParseError",
]
