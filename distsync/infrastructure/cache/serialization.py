"""JSON encoding for cached values. Pydantic models use their own JSON dump/validate."""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from distsync.core.exceptions import SerializationError


def dumps(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cache serialization error: {e}") from e


def loads(raw: str, model: type[BaseModel] | None = None) -> Any:
    try:
        if model is not None:
            return model.model_validate_json(raw)
        return json.loads(raw)
    except (ValueError, ValidationError) as e:
        raise SerializationError(f"Cache deserialization error: {e}") from e
