from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, DefaultDict, Dict, Set

logger = logging.getLogger(__name__)


class SessionEvents:
    """Per-session change notifications for the rotation event stream.

    All calls happen on the server's event loop, so subscriptions are plain
    set operations and publishing never waits on a slow subscriber.
    """

    def __init__(self) -> None:
        self._queues: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, session_id: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._queues[session_id].add(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(session_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._queues[session_id]

    def publish(self, session_id: str, event_type: str, snapshot: Dict[str, Any] | None = None) -> int:
        """Queue an event for every subscriber of ``session_id``; returns how many were notified."""
        message: Dict[str, Any] = {"type": event_type, "sessionId": session_id}
        if snapshot is not None:
            message["session"] = snapshot
        queues = self._queues.get(session_id, ())
        for queue in queues:
            queue.put_nowait(message)
        if queues:
            logger.debug("%s event for %s sent to %d subscriber(s)", event_type, session_id, len(queues))
        return len(queues)


session_events = SessionEvents()
