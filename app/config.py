from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # MongoDB
    MONGODB_URL: str
    MONGODB_DB_NAME: str = "streamhub_db"

    # JWT
    SECRET_KEY: str
    REFRESH_SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 10
    COOKIE_SECURE: bool = True

    # S3 compatible object storage (Cloudflare R2, MinIO, AWS S3)
    STORAGE_ENDPOINT_URL: str = ""
    STORAGE_ACCESS_KEY_ID: str = ""
    STORAGE_SECRET_ACCESS_KEY: str = ""
    STORAGE_BUCKET_NAME: str = ""
    STORAGE_PUBLIC_URL: str = ""
    MAX_CONCURRENT_STORAGE_OPS: int = 10

    # Application
    API_PREFIX: str = "/api/v1"
    CORS_ORIGINS: str = "*"
    LOG_LEVEL: str = "INFO"
    RATE_LIMIT_ENABLED: bool = True
    MAX_VIDEO_SIZE_MB: int = 200
    MAX_IMAGE_SIZE_MB: int = 5
    ALLOWED_VIDEO_TYPES: str = "video/mp4,video/mpeg,video/quicktime,video/x-msvideo,video/webm"
    ALLOWED_IMAGE_TYPES: str = "image/jpeg,image/jpg,image/png,image/gif,image/webp"

    # Pagination
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # Blob deletion
    MAX_CONCURRENT_DELETIONS: int = 2  # Maximum number of concurrent deletion tasks
    DELETION_MAX_RETRIES: int = 3
    DELETION_RETRY_DELAY_SECONDS: float = 2.0

    @property
    def allowed_video_types_list(self) -> List[str]:
        return [t.strip() for t in self.ALLOWED_VIDEO_TYPES.split(",")]

    @property
    def allowed_image_types_list(self) -> List[str]:
        return [t.strip() for t in self.ALLOWED_IMAGE_TYPES.split(",")]

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",")]

    @property
    def max_video_size_bytes(self) -> int:
        return self.MAX_VIDEO_SIZE_MB * 1024 * 1024

    @property
    def max_image_size_bytes(self) -> int:
        return self.MAX_IMAGE_SIZE_MB * 1024 * 1024

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
