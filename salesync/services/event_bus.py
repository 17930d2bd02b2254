"""
event_bus.py - In-process publish/subscribe

Handlers may be plain callables or coroutine functions. Coroutines are
scheduled on the running event loop and tracked so callers (and tests)
can wait for them with join().
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Set

logger = logging.getLogger("EventBus")

# Topics
REACHABILITY = "reachability"
SYNC_STATUS = "sync_status"
SESSION = "session"


class EventBus:

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = defaultdict(list)
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, topic: str, handler: Callable) -> Callable[[], None]:
        """
        Register a handler for a topic.

        Returns a callable that removes the subscription.
        """
        self._handlers[topic].append(handler)

        def unsubscribe():
            if handler in self._handlers[topic]:
                self._handlers[topic].remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None):
        for handler in list(self._handlers[topic]):
            try:
                result = handler(payload)
            except Exception as e:
                logger.error(f"Handler error on '{topic}': {e}")
                continue
            if inspect.isawaitable(result):
                self._schedule(topic, result)

    def _schedule(self, topic: str, awaitable):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running loop; async handler on '{topic}' dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = loop.create_task(awaitable)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_task_done(topic, t))

    def _on_task_done(self, topic: str, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async handler error on '{topic}': {exc}")

    async def join(self):
        """Wait until every scheduled async handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def subscriber_count(self, topic: str) -> int:
        return len(self._handlers[topic])
