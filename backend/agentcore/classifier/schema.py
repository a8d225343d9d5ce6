"""
Tagged response models

Builds one pydantic model per classification type, tagged by a literal
``messageType``, so a parsed response is validated against exactly the
schema its tag names.
"""

import re
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, create_model

from ..runtime.types import ClassificationTypeConfig, ValidationLevel

_JSON_TYPES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
    "null": type(None),
}


def _python_type(spec: Dict[str, Any]) -> Any:
    json_type = spec.get("type")
    if isinstance(json_type, list):
        types = tuple(_JSON_TYPES.get(t, Any) for t in json_type)
        if Any in types:
            return Any
        return Optional[types[0]] if type(None) in types and len(types) == 2 else Any
    if "enum" in spec and all(isinstance(v, str) for v in spec["enum"]):
        return Literal[tuple(spec["enum"])]
    return _JSON_TYPES.get(json_type, Any)


def _model_name(name: str) -> str:
    return re.sub(r"\W", "_", name.title()) + "Response"


def build_response_model(config: ClassificationTypeConfig, strict: bool) -> Type[BaseModel]:
    """
    Model for one classification type.

    Strict models forbid unknown fields and type coercion; lenient models
    accept extra fields and coerce compatible values.
    """
    properties = config.schema.get("properties", {})
    required = set(config.schema.get("required", []))

    fields: Dict[str, Tuple[Any, Any]] = {"messageType": (Literal[config.name], ...)}
    for field_name, spec in properties.items():
        if field_name == "messageType":
            continue
        py_type = _python_type(spec if isinstance(spec, dict) else {})
        if field_name in required:
            fields[field_name] = (py_type, ...)
        else:
            fields[field_name] = (Optional[py_type], None)

    model_config = ConfigDict(extra="forbid" if strict else "allow", strict=strict)
    return create_model(_model_name(config.name), __config__=model_config, **fields)


class ResponseSchemas:
    """Strict and lenient models for every configured type, keyed by tag."""

    def __init__(self, types: Sequence[ClassificationTypeConfig]):
        self.types = list(types)
        self._models: Dict[ValidationLevel, Dict[str, Type[BaseModel]]] = {
            ValidationLevel.STRICT: {t.name: build_response_model(t, strict=True) for t in self.types},
            ValidationLevel.LENIENT: {t.name: build_response_model(t, strict=False) for t in self.types},
        }

    def names(self) -> List[str]:
        return [t.name for t in self.types]

    def has(self, name: str) -> bool:
        return any(t.name == name for t in self.types)

    def model_for(self, name: str, level: ValidationLevel) -> Optional[Type[BaseModel]]:
        if level == ValidationLevel.NONE:
            return None
        return self._models[level].get(name)

    def validate(self, data: Dict[str, Any], level: ValidationLevel) -> Dict[str, Any]:
        """
        Validate ``data`` against the model its ``messageType`` names.

        Raises:
            ValueError: Unknown tag or schema mismatch
        """
        tag = data.get("messageType")
        model = self.model_for(tag, level)
        if model is None:
            raise ValueError(f"No schema for messageType '{tag}'")
        try:
            return model.model_validate(data).model_dump(exclude_none=False)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors(include_url=False)
            )
            raise ValueError(f"Response does not match '{tag}' schema: {problems}") from e
