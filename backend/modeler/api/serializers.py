from datetime import datetime
from typing import Any

PRIMITIVE_TYPES = (str, int, float, bool, type(None))


def serialize(obj: Any):
    """
    Turn rows, dataclasses and containers into JSON-compatible structures.
    Objects with ``to_dict`` serialize themselves.
    """
    if isinstance(obj, PRIMITIVE_TYPES):
        return obj

    if isinstance(obj, datetime):
        return obj.isoformat()

    if isinstance(obj, (list, tuple)):
        return [serialize(item) for item in obj]

    if isinstance(obj, dict):
        return {k: serialize(v) for k, v in obj.items()}

    if hasattr(obj, "to_dict"):
        return serialize(obj.to_dict())

    if hasattr(obj, "__dict__"):
        return {
            key: serialize(value)
            for key, value in obj.__dict__.items()
            if not key.startswith("_")
        }

    return str(obj)
