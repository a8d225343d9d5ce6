"""
Response classifiers
"""

from .base import AbstractClassifier, extract_message_type, PARSE_ERROR_TYPE
from .schema import ResponseSchemas, build_response_model
from .strategies import BareClassifier, SimpleClassifier, DefaultClassifier, MultiLevelClassifier

__all__ = [
    "AbstractClassifier",
    "BareClassifier",
    "SimpleClassifier",
    "DefaultClassifier",
    "MultiLevelClassifier",
    "ResponseSchemas",
    "build_response_model",
    "extract_message_type",
    "PARSE_ERROR_TYPE",
]
