"""
In-process change notifications for the persisted tables.

A subscriber registers for one table and, optionally, one owning user. After
every committed insert/update/delete the persistence client publishes a
ChangeEvent; matching callbacks are scheduled as tasks on the running loop so
the writer never waits for listeners.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

TABLES = ("chat_conversations", "chat_messages", "chat_feedback", "notes", "reported_questions")


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    # INSERT | UPDATE | DELETE
    event_type: str
    user_id: str
    record: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ChangeEvent], Awaitable[None]]


@dataclass
class Subscription:
    id: int
    table: str
    user_id: Optional[str]
    callback: Listener
    _feed: "ChangeFeed"

    def unsubscribe(self) -> None:
        self._feed._remove(self.id)

    @property
    def active(self) -> bool:
        return self.id in self._feed._subscriptions


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, table: str, callback: Listener, user_id: Optional[str] = None) -> Subscription:
        if table not in TABLES:
            raise ValueError(f"unknown table: {table}")
        sub = Subscription(id=next(self._ids), table=table, user_id=user_id, callback=callback, _feed=self)
        self._subscriptions[sub.id] = sub
        return sub

    def _remove(self, sub_id: int) -> None:
        self._subscriptions.pop(sub_id, None)

    def listener_count(self, table: Optional[str] = None) -> int:
        return sum(1 for s in self._subscriptions.values() if table is None or s.table == table)

    def publish(self, event: ChangeEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("no running loop, dropping %s event on %s", event.event_type, event.table)
            return

        for sub in list(self._subscriptions.values()):
            if sub.table != event.table:
                continue
            if sub.user_id is not None and sub.user_id != event.user_id:
                continue
            task = loop.create_task(self._deliver(sub, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, sub: Subscription, event: ChangeEvent) -> None:
        try:
            await sub.callback(event)
        except Exception:
            logger.exception("change listener failed table=%s subscription=%s", event.table, sub.id)

    async def drain(self) -> None:
        """Wait until every scheduled notification has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
