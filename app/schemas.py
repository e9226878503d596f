from typing import Optional, Any
import re
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from app.utils.documents import serialize_document


# Response Models
class APIResponse(BaseModel):
    statusCode: int = 200
    data: Any = None
    message: str = "Success"
    success: bool = True

    @field_validator('data', mode='before')
    @classmethod
    def serialize_data(cls, v):
        return serialize_document(v)

    @model_validator(mode='after')
    def derive_success(self):
        self.success = self.statusCode < 400
        return self


class ErrorResponse(BaseModel):
    success: bool = False
    code: int
    message: str


# User Schemas
class UserRegister(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)

    @field_validator('username')
    @classmethod
    def validate_username(cls, v):
        v = v.strip().lower()
        # Only allow letters, numbers, and underscores
        if not re.match(r'^[a-z0-9_]+$', v):
            raise ValueError('Username can only contain letters, numbers, and underscores')
        return v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()

    @field_validator('full_name')
    @classmethod
    def sanitize_full_name(cls, v):
        # Remove any potentially harmful characters
        v = re.sub(r'[^\w\s\-\'\.]', '', v).strip()
        if not v:
            raise ValueError('Full name is required')
        return v


class UserLogin(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(..., min_length=1)

    @model_validator(mode='after')
    def require_identity(self):
        if not self.username and not self.email:
            raise ValueError('Username or email is required')
        return self


class RefreshTokenRequest(BaseModel):
    refreshToken: Optional[str] = None


class PasswordChange(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UserDetailsUpdate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr

    @field_validator('full_name')
    @classmethod
    def sanitize_full_name(cls, v):
        return re.sub(r'[^\w\s\-\'\.]', '', v).strip()

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


# Video Schemas
class VideoUpload(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    duration: float = Field(0, ge=0)

    @field_validator('title')
    @classmethod
    def sanitize_title(cls, v):
        v = re.sub(r'<[^>]*>', '', v).strip()
        if not v:
            raise ValueError('Title is required')
        return v

    @field_validator('description')
    @classmethod
    def sanitize_description(cls, v):
        return re.sub(r'<[^>]*>', '', v)


class VideoUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)

    @field_validator('title', 'description')
    @classmethod
    def strip_tags(cls, v):
        if v is None:
            return v
        return re.sub(r'<[^>]*>', '', v).strip() or None


# Comment Schemas
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator('content')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('Content is required')
        return v.strip()


# Tweet Schemas
class TweetCreate(CommentCreate):
    content: str = Field(..., min_length=1, max_length=280)


# Playlist Schemas
class PlaylistCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)

    @field_validator('name')
    @classmethod
    def not_blank(cls, v):
        if not v.strip():
            raise ValueError('Name is required')
        return v.strip()


class PlaylistUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
