from typing import Optional
from bson import ObjectId
from fastapi import HTTPException, status


def validate_object_id(value: Optional[str], label: str = "resource") -> ObjectId:
    """
    Turn a caller-supplied identifier into an ObjectId or reject the request
    with 400 before anything touches the database.
    """
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label} ID"
        )
    return ObjectId(value)
