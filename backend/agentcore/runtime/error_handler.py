"""
LLM Error Handler

Converts model transport failures into a user-facing reply so a failed call
still completes the turn.
"""

import json
from dataclasses import dataclass
from typing import Optional

from ..errors import TransportError
from ...utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class LLMErrorDetails:
    status: Optional[int]
    code: Optional[str]
    message: str
    user_message: str
    recoverable: bool = True


class LLMErrorHandler:
    """Maps provider errors (by HTTP status and error code) to user messages."""

    USER_MESSAGES = {
        400: "The request to the language model was invalid. Please rephrase and try again.",
        401: "The language model rejected the credentials. Please check the API key.",
        403: "Access to the language model was denied. Please check your permissions.",
        404: "The requested model was not found. Please check the model name.",
        422: "The conversation is too long for the model. Please start a new conversation or shorten your message.",
        429: "The language model is receiving too many requests. Please wait a moment and try again.",
    }
    SERVER_ERROR_MESSAGE = "The language model service is temporarily unavailable. Please try again later."
    GENERIC_MESSAGE = "Something went wrong while contacting the language model. Please try again."

    def extract_error_details(self, error: Exception) -> LLMErrorDetails:
        status = getattr(error, "status", None)
        code = getattr(error, "code", None)
        message = getattr(error, "message", None) or str(error) or type(error).__name__

        if code == "context_length_exceeded" or status == 422:
            user_message = self.USER_MESSAGES[422]
        elif status in self.USER_MESSAGES:
            user_message = self.USER_MESSAGES[status]
        elif status is not None and 500 <= status < 600:
            user_message = self.SERVER_ERROR_MESSAGE
        else:
            user_message = self.GENERIC_MESSAGE

        return LLMErrorDetails(
            status=status,
            code=code,
            message=message,
            user_message=user_message,
            recoverable=status not in (401, 403),
        )

    def handle_error(self, error: Exception, session=None) -> str:
        """
        Log the failure and return the reply for the user.

        Returns:
            JSON string: {"error": true, "message": ..., "userMessage": ...}
        """
        details = self.extract_error_details(error)
        log = logger.warning if details.recoverable and isinstance(error, TransportError) else logger.error
        log(
            "Model call failed",
            session_id=getattr(session, "session_id", None),
            status=details.status,
            code=details.code,
            error=details.message,
            recoverable=details.recoverable,
        )
        return json.dumps(
            {
                "error": True,
                "message": details.message,
                "userMessage": details.user_message,
            }
        )
