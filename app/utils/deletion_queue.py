import asyncio
import logging
from typing import Optional
from datetime import datetime, timezone
from app.utils.storage import MediaStorage, get_storage
from app.config import settings

logger = logging.getLogger(__name__)


class DeletionQueue:
    """
    Background blob cleanup. Documents are deleted first and their blobs are
    queued here, so a storage hiccup is retried instead of failing the request.
    """

    def __init__(self, storage: Optional[MediaStorage] = None):
        self.queue = asyncio.Queue()
        self.processing = False
        self.storage = storage
        self.max_retries = settings.DELETION_MAX_RETRIES
        self.retry_delay = settings.DELETION_RETRY_DELAY_SECONDS
        self.semaphore = asyncio.Semaphore(settings.MAX_CONCURRENT_DELETIONS)
        self.worker_task = None
        self.tasks = set()

    def start_worker(self):
        """Start the background worker task"""
        if not self.processing:
            self.processing = True
            # Schedule the worker as a background task
            self.worker_task = asyncio.create_task(self._worker())
            logger.info("File deletion worker started")

    async def add_to_queue(self, file_url: Optional[str]):
        """Add a blob URL to the deletion queue; empty URLs are ignored"""
        if not file_url:
            return
        await self.queue.put({
            'file_url': file_url,
            'added_at': datetime.now(timezone.utc)
        })
        logger.debug("File queued for deletion. Queue size: %d", self.queue.qsize())

    def _spawn(self, file_url: str):
        delete_task = asyncio.create_task(self.delete_with_retry(file_url))
        self.tasks.add(delete_task)
        delete_task.add_done_callback(self.tasks.discard)

    async def _worker(self):
        """Background worker that processes deletions with concurrency control"""
        while self.processing:
            try:
                # Wait for next file with timeout
                task = await asyncio.wait_for(self.queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                # Queue timeout - this is normal, just continue
                continue

            self._spawn(task['file_url'])
            self.queue.task_done()

    async def delete_with_retry(self, file_url: str) -> bool:
        """Delete a blob, retrying with a linear backoff; True once it is gone"""
        storage = self.storage or get_storage()
        async with self.semaphore:
            for attempt in range(1, self.max_retries + 1):
                if await storage.delete_file(file_url):
                    logger.info("Deleted %s", file_url)
                    return True
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.error("Giving up on deleting %s after %d attempts", file_url, self.max_retries)
        return False

    async def stop_worker(self):
        """Stop the background worker once every queued and running deletion has finished"""
        self.processing = False
        if self.worker_task:
            await self.worker_task
            self.worker_task = None

        while not self.queue.empty():
            task = self.queue.get_nowait()
            self._spawn(task['file_url'])
            self.queue.task_done()

        pending = list(self.tasks)
        if pending:
            logger.info("Finishing %d pending deletions before shutdown", len(pending))
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Deletion failed during shutdown: %s", result)
        logger.info("File deletion worker stopped")

    def get_queue_size(self) -> int:
        """Get current queue size"""
        return self.queue.qsize()


# Global queue instance
deletion_queue = DeletionQueue()


def get_deletion_queue() -> DeletionQueue:
    return deletion_queue
