from typing import Any
from bson import ObjectId


def serialize_document(value: Any) -> Any:
    """Recursively turn ObjectIds into strings so documents are JSON safe"""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(item) for item in value]
    return value
