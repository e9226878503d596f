from typing import Optional, Sequence, Type, TypeVar
from fastapi import HTTPException, UploadFile, status
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, ValidationError
from app.config import settings
from app.utils.storage import MediaStorage

FormModel = TypeVar("FormModel", bound=BaseModel)


def validate_form(model: Type[FormModel], **values) -> FormModel:
    """Run multipart form fields through a schema, failing like a JSON body would"""
    try:
        return model(**values)
    except ValidationError as e:
        raise RequestValidationError(e.errors())


async def read_upload(
    upload: Optional[UploadFile],
    allowed_types: Sequence[str],
    max_bytes: int,
    label: str,
) -> Optional[bytes]:
    if upload is None or not upload.filename:
        return None

    # Validate file type
    if upload.content_type not in allowed_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label.lower()} file type"
        )

    # Validate file size
    data = await upload.read()
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} exceeds maximum size of {max_bytes // (1024 * 1024)}MB"
        )
    return data or None


async def store_image(
    storage: MediaStorage,
    upload: Optional[UploadFile],
    label: str,
    required: bool = True,
) -> Optional[str]:
    """
    Validate and upload an image, returning its public URL.
    A missing or failed upload is a 400 when the image is required.
    """
    data = await read_upload(
        upload, settings.allowed_image_types_list, settings.max_image_size_bytes, label
    )
    url = await storage.upload_file(data, upload.filename, upload.content_type) if data else None
    if url is None and required:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{label} file is required"
        )
    return url


async def store_video(storage: MediaStorage, upload: Optional[UploadFile]) -> str:
    data = await read_upload(
        upload, settings.allowed_video_types_list, settings.max_video_size_bytes, "Video"
    )
    url = await storage.upload_file(data, upload.filename, upload.content_type) if data else None
    if url is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Video file is required"
        )
    return url
