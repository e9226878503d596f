import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from typing import Optional, Any, Callable
import asyncio
import logging
import re
import uuid
from functools import partial
from app.config import settings

logger = logging.getLogger(__name__)


class MediaStorage:
    """S3 compatible blob store: store a blob and get its public URL back, delete by URL"""

    def __init__(self):
        self._client = None
        self.bucket_name = settings.STORAGE_BUCKET_NAME
        self.public_url = settings.STORAGE_PUBLIC_URL.rstrip("/")

        # Create a semaphore to limit concurrent S3 operations
        self.s3_semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_STORAGE_OPS)

    @property
    def s3_client(self):
        if self._client is None:
            self._client = boto3.client(
                's3',
                endpoint_url=settings.STORAGE_ENDPOINT_URL or None,
                aws_access_key_id=settings.STORAGE_ACCESS_KEY_ID,
                aws_secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
                config=Config(signature_version='s3v4'),
                region_name='auto'
            )
        return self._client

    async def _run_in_executor(self, func: Callable, *args, **kwargs) -> Any:
        """Run a blocking function in a thread pool executor with semaphore to limit concurrency"""
        async with self.s3_semaphore:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    def key_from_url(self, file_url: str) -> str:
        if self.public_url and file_url.startswith(self.public_url + "/"):
            return file_url[len(self.public_url) + 1:]
        return file_url.split('/')[-1]

    async def upload_file(self, file_data: bytes, filename: str, content_type: str) -> Optional[str]:
        """
        Upload file and return the public URL.
        A failed upload is logged and yields None; callers decide whether the
        missing file is an error.
        """
        if not file_data:
            return None

        safe_name = re.sub(r'[^\w.\-]', '_', filename or "file")
        unique_filename = f"{uuid.uuid4()}_{safe_name}"

        try:
            # Upload in a thread pool to avoid blocking the event loop
            await self._run_in_executor(
                self.s3_client.put_object,
                Bucket=self.bucket_name,
                Key=unique_filename,
                Body=file_data,
                ContentType=content_type
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Upload of %s failed: %s", safe_name, e)
            return None

        return f"{self.public_url}/{unique_filename}"

    async def delete_file(self, file_url: str) -> bool:
        """
        Delete file given its public URL
        """
        if not file_url:
            return True
        try:
            await self._run_in_executor(
                self.s3_client.delete_object,
                Bucket=self.bucket_name,
                Key=self.key_from_url(file_url)
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning("Delete of %s failed: %s", file_url, e)
            return False


media_storage = MediaStorage()


def get_storage() -> MediaStorage:
    return media_storage
