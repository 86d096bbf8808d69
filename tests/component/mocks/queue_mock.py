"""
Task Queue and Cache Mocks for Component Testing

MockTaskDispatcher records enqueued and cancelled tasks; duplicate task ids
collapse the way JetStream's Nats-Msg-Id de-duplication does. MockStatsCache
is a dict with the RedisCache surface.
"""
from typing import Any, Dict, List, Optional, Set


class MockTaskDispatcher:
    """Mock implementation of TaskDispatcherProtocol"""

    def __init__(self):
        self.tasks: Dict[str, Dict[str, Any]] = {}
        self.delays: Dict[str, Optional[float]] = {}
        self.cancelled: Set[str] = set()
        self.enqueue_calls: List[str] = []
        self.available = True
        self.fail_after: Optional[int] = None

    async def enqueue(self, task_id: str, payload: Dict[str, Any], delay: Optional[float] = None) -> bool:
        self.enqueue_calls.append(task_id)
        if not self.available:
            return False
        if self.fail_after is not None and len(self.tasks) >= self.fail_after:
            return False
        self.cancelled.discard(task_id)
        self.tasks.setdefault(task_id, payload)
        self.delays[task_id] = delay
        return True

    async def cancel(self, task_id: str) -> bool:
        if not self.available:
            return False
        self.cancelled.add(task_id)
        return True

    # Test helper methods

    def pending(self) -> Dict[str, Dict[str, Any]]:
        """Tasks not cancelled"""
        return {k: v for k, v in self.tasks.items() if k not in self.cancelled}

    def take(self) -> Dict[str, Dict[str, Any]]:
        """Drain pending tasks, as a consumer would"""
        pending = self.pending()
        self.tasks.clear()
        return pending


class MockStatsCache:
    """Mock implementation of StatsCacheProtocol"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.deleted: List[str] = []

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl: int = 30) -> bool:
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def delete(self, key: str) -> bool:
        self.deleted.append(key)
        self.data.pop(key, None)
        return True
