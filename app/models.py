from datetime import datetime, timezone
from typing import Optional, List, Any
from pydantic import BaseModel, Field, ConfigDict, model_validator
from pydantic_core import core_schema
from bson import ObjectId


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PyObjectId(str):
    """Custom type for MongoDB ObjectId that works with Pydantic v2"""

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler
    ) -> core_schema.CoreSchema:
        return core_schema.union_schema([
            core_schema.is_instance_schema(ObjectId),
            core_schema.chain_schema([
                core_schema.str_schema(),
                core_schema.no_info_plain_validator_function(cls.validate),
            ])
        ],
        serialization=core_schema.plain_serializer_function_ser_schema(
            lambda x: str(x),
            when_used="json"
        ))

    @classmethod
    def validate(cls, v):
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError("Invalid ObjectId")


class MongoModel(BaseModel):
    """Base for stored documents - NOT used for API responses"""
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True
    )

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def to_document(self) -> dict:
        """Dump for insert_one; unset optional references are left out entirely"""
        return self.model_dump(by_alias=True, exclude_none=True)


class UserInDB(MongoModel):
    username: str
    email: str
    password: str  # bcrypt hash
    full_name: str
    avatar: str
    cover_image: str = ""
    refresh_token: Optional[str] = None
    watch_history: List[PyObjectId] = Field(default_factory=list)


class VideoInDB(MongoModel):
    owner: PyObjectId
    video_file: str
    thumbnail: str
    title: str
    description: str
    duration: float = 0
    views: int = 0
    is_published: bool = True


class CommentInDB(MongoModel):
    owner: PyObjectId
    video: PyObjectId
    content: str


class LikeInDB(MongoModel):
    """Exactly one of video, comment or tweet is set"""
    liked_by: PyObjectId
    video: Optional[PyObjectId] = None
    comment: Optional[PyObjectId] = None
    tweet: Optional[PyObjectId] = None

    @model_validator(mode="after")
    def check_single_target(self):
        targets = [t for t in (self.video, self.comment, self.tweet) if t is not None]
        if len(targets) != 1:
            raise ValueError("A like must target exactly one of video, comment or tweet")
        return self


class SubscriptionInDB(MongoModel):
    subscriber: PyObjectId  # One who is subscribing
    channel: PyObjectId  # One to whom the subscriber is subscribing


class PlaylistInDB(MongoModel):
    owner: PyObjectId
    name: str
    description: str = ""
    videos: List[PyObjectId] = Field(default_factory=list)


class TweetInDB(MongoModel):
    owner: PyObjectId
    content: str
