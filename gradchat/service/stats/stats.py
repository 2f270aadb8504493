import asyncio
import logging
from datetime import datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.db.realtime import ChangeEvent, Subscription
from gradchat.config.config import LOCAL_TIMEZONE
from gradchat.model.stats.stats import Stats

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("chat_messages", "reported_questions", "notes")


def _local_now() -> datetime:
    return datetime.now(ZoneInfo(LOCAL_TIMEZONE))


def local_day_bounds(now: datetime) -> Tuple[datetime, datetime]:
    """
    Return ``[start of now's local day, start of the next local day)`` in UTC.

    Both midnights are resolved in ``now``'s zone separately, so a day with a
    daylight-saving change is 23 or 25 hours long.
    """
    if now.tzinfo is None:
        now = now.astimezone()
    zone = now.tzinfo
    start = datetime.combine(now.date(), time.min, tzinfo=zone)
    end = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


class StatsAggregator:
    """
    Keeps the sidebar counters current for one user.

    Each refresh recounts everything, so overlapping refreshes are harmless:
    whichever finishes last wins. Cost grows with table size per change.
    """

    def __init__(self, persistence: PersistenceClient, clock: Callable[[], datetime] = _local_now) -> None:
        self._persistence = persistence
        self._clock = clock
        self.user_id: Optional[str] = None
        self.stats = Stats()
        self._subscriptions: List[Subscription] = []

    async def refresh(self) -> Stats:
        user_id = self.user_id
        if not user_id:
            return self.stats
        try:
            start, end = local_day_bounds(self._clock())
            today, total, reports, notes = await asyncio.gather(
                self._persistence.count_user_messages(user_id, start, end),
                self._persistence.count_user_messages(user_id),
                self._persistence.count_reports(user_id),
                self._persistence.count_notes(user_id),
            )
        except Exception:
            logger.exception("error fetching stats user=%s", user_id)
            return self.stats
        if user_id != self.user_id:
            # User switched while counting; these numbers belong to someone else.
            return self.stats
        self.stats = Stats(
            questions_today=today,
            total_questions=total,
            reports_submitted=reports,
            notes_created=notes,
        )
        return self.stats

    async def _on_change(self, event: ChangeEvent) -> None:
        await self.refresh()

    def subscribe(self) -> None:
        self.teardown()
        if not self.user_id:
            return
        for table in WATCHED_TABLES:
            self._subscriptions.append(self._persistence.subscribe(table, self._on_change, user_id=self.user_id))

    def teardown(self) -> None:
        for sub in self._subscriptions:
            sub.unsubscribe()
        self._subscriptions = []

    async def set_user(self, user_id: Optional[str]) -> None:
        if user_id == self.user_id and self._subscriptions:
            return
        self.teardown()
        self.user_id = user_id
        self.stats = Stats()
        if user_id:
            self.subscribe()
            await self.refresh()
