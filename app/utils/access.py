from fastapi import HTTPException, status
from app.utils.identifiers import validate_object_id


async def find_or_404(collection, raw_id, label: str, extra: dict = None) -> dict:
    """Load one document by a caller-supplied id; 400 on a bad id, 404 when absent"""
    query = {"_id": validate_object_id(raw_id, label.lower())}
    if extra:
        query.update(extra)
    document = await collection.find_one(query)
    if not document:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found"
        )
    return document


async def find_owned(collection, raw_id, label: str, user: dict) -> dict:
    """Like find_or_404, then 403 unless the caller owns the document"""
    document = await find_or_404(collection, raw_id, label)
    if document.get("owner") != user["_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You are not allowed to modify this {label.lower()}"
        )
    return document
