"""Queue client abstraction - Redis or in-memory fallback.

Jobs are reserved by moving them onto a per-queue processing list and are
only dropped once acknowledged, so a worker that dies mid-job leaves the job
behind to be restored and delivered again (at-least-once delivery).
"""
import json
from collections import deque
from typing import Optional
from threading import Lock
import logging

import redis

logger = logging.getLogger(__name__)


def _encode(item: dict) -> str:
    return json.dumps(item, sort_keys=True)


class QueueClient:
    """Abstraction for work queues - uses Redis if available, else in-memory."""

    def __init__(self, redis_url: Optional[str] = None):
        self.backend = "memory"
        self._memory_queues: dict[str, deque] = {}
        self._memory_lock = Lock()

        if redis_url:
            try:
                self.redis = redis.from_url(redis_url, decode_responses=True)
                self.redis.ping()
                self.backend = "redis"
                logger.info("Using Redis for queues")
            except redis.RedisError as e:
                logger.warning(f"Redis not available, using in-memory queues: {e}")
        else:
            logger.info("Using in-memory queues (Redis URL not provided)")

    @staticmethod
    def processing_name(queue_name: str) -> str:
        return f"{queue_name}:processing"

    def _memory_queue(self, name: str) -> deque:
        if name not in self._memory_queues:
            self._memory_queues[name] = deque()
        return self._memory_queues[name]

    def push(self, queue_name: str, item: dict):
        """Add item to end of queue."""
        if self.backend == "redis":
            self.redis.rpush(queue_name, _encode(item))
        else:
            with self._memory_lock:
                self._memory_queue(queue_name).append(item)

    def reserve(self, queue_name: str) -> Optional[dict]:
        """Move the item at the front of the queue onto the processing list and return it."""
        processing = self.processing_name(queue_name)
        if self.backend == "redis":
            result = self.redis.lmove(queue_name, processing, "LEFT", "RIGHT")
            return json.loads(result) if result else None
        with self._memory_lock:
            queue = self._memory_queue(queue_name)
            if not queue:
                return None
            item = queue.popleft()
            self._memory_queue(processing).append(item)
            return item

    def ack(self, queue_name: str, item: dict) -> bool:
        """Drop a reserved item once it has been handled."""
        processing = self.processing_name(queue_name)
        if self.backend == "redis":
            return self.redis.lrem(processing, 1, _encode(item)) > 0
        with self._memory_lock:
            try:
                self._memory_queue(processing).remove(item)
            except ValueError:
                return False
            return True

    def restore_unacked(self, queue_name: str) -> int:
        """Return every reserved-but-unacknowledged item to the front of the queue."""
        processing = self.processing_name(queue_name)
        restored = 0
        if self.backend == "redis":
            while self.redis.lmove(processing, queue_name, "RIGHT", "LEFT"):
                restored += 1
        else:
            with self._memory_lock:
                pending = self._memory_queue(processing)
                queue = self._memory_queue(queue_name)
                while pending:
                    queue.appendleft(pending.pop())
                    restored += 1
        if restored:
            logger.info(f"Restored {restored} unacknowledged item(s) to {queue_name}")
        return restored

    def length(self, queue_name: str) -> int:
        """Get queue length."""
        if self.backend == "redis":
            return self.redis.llen(queue_name)
        with self._memory_lock:
            return len(self._memory_queues.get(queue_name, ()))

    def peek(self, queue_name: str, index: int = 0) -> Optional[dict]:
        """View item at index without removing it."""
        if self.backend == "redis":
            result = self.redis.lindex(queue_name, index)
            return json.loads(result) if result else None
        with self._memory_lock:
            queue = self._memory_queues.get(queue_name)
            if not queue:
                return None
            try:
                return queue[index]
            except IndexError:
                return None

    def clear(self, queue_name: str) -> None:
        """Drop a queue and its processing list."""
        processing = self.processing_name(queue_name)
        if self.backend == "redis":
            self.redis.delete(queue_name, processing)
        else:
            with self._memory_lock:
                self._memory_queues.pop(queue_name, None)
                self._memory_queues.pop(processing, None)
