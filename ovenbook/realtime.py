# realtime.py
import asyncio
from collections import defaultdict
from typing import Dict, Set


class ReservationFeed:
    """
    In-process change notifications, keyed by resource id.

    Writers call `notify` after a commit; snapshot streams `wait` on it with a
    timeout so that changes made by other processes are still picked up by
    polling.
    """

    def __init__(self):
        self._waiters: Dict[int, Set[asyncio.Event]] = defaultdict(set)

    def notify(self, resource_id: int):
        for event in self._waiters.get(resource_id, ()):
            event.set()

    async def wait(self, resource_id: int, timeout: float) -> bool:
        """Block until the next change on `resource_id` or until `timeout`. True if notified."""
        event = asyncio.Event()
        self._waiters[resource_id].add(event)
        try:
            await asyncio.wait_for(event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            self._waiters[resource_id].discard(event)
            if not self._waiters[resource_id]:
                del self._waiters[resource_id]
        return True
