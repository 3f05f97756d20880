"""Card schedule evaluation and the background polling loops.

Every poll the engine walks all cards that carry schedule entries, drops
entries whose ``endDate`` has passed, and copies the image of the first
currently-active entry onto the card. A card whose entries are all inactive
keeps whatever image it already shows.
"""
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from portal.schemas.card import load_schedule_blob, parse_timestamp
from portal.schemas.events import CardEvent, CardImageApplied, CardSchedulesChanged

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 1_000
DEFAULT_EXPORT_INTERVAL_MS = 60 * 60 * 1_000
CARDS_CACHE_PATTERN = "cards:*"
NEAR_START_LOG_WINDOW_MS = 30_000
STOP_GRACE_SEC = 10.0

WITHIN_WINDOW = "within"
MISSED_WINDOW = "missed"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _interval_from_env(name: str, default: int) -> int:
    raw = (os.getenv(name, "") or "").strip()
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


POLL_INTERVAL_MS = _interval_from_env("SCHEDULER_INTERVAL_MS", DEFAULT_POLL_INTERVAL_MS)
EXPORT_INTERVAL_MS = _interval_from_env("SITE_PROMPT_INTERVAL_MS", DEFAULT_EXPORT_INTERVAL_MS)


def to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def entry_start(entry: dict) -> datetime | None:
    return parse_timestamp(entry.get("startDate"))


def is_active(entry: dict, now_ms: int) -> bool:
    start = entry_start(entry)
    if start is None or to_millis(start) > now_ms:
        return False
    raw_end = entry.get("endDate")
    if not raw_end:
        return True
    # An unreadable end never closes the window, and never opens it either.
    end = parse_timestamp(raw_end)
    return end is not None and now_ms <= to_millis(end)


def is_expired(entry: dict, now_ms: int) -> bool:
    raw_end = entry.get("endDate")
    if not raw_end:
        return False
    end = parse_timestamp(raw_end)
    return end is not None and to_millis(end) < now_ms


def prune_expired(entries: list, now_ms: int) -> list[dict]:
    """Drop expired entries and anything that is not an entry object.

    Incomplete drafts (no start date, no image, unreadable end) are kept.
    """
    return [
        entry
        for entry in entries
        if isinstance(entry, dict) and not is_expired(entry, now_ms)
    ]


def select_active(entries: list[dict], now_ms: int) -> dict | None:
    # First match in stored order wins; overlapping entries after it are ignored.
    for entry in entries:
        if is_active(entry, now_ms):
            return entry
    return None


def window_branch(elapsed_ms: int, poll_interval_ms: int) -> str | None:
    if 0 <= elapsed_ms < poll_interval_ms:
        return WITHIN_WINDOW
    if elapsed_ms >= poll_interval_ms:
        return MISSED_WINDOW
    return None


@dataclass
class CycleReport:
    scanned: int = 0
    skipped: int = 0
    pruned: int = 0
    applied: int = 0
    failed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.pruned or self.applied)


class ScheduleEngine:
    """Brings each card's image in line with its active schedule entry.

    ``store`` provides ``get_all_cards()`` and ``update_card(card_id, **fields)``
    (blocking calls, run in a worker thread). ``cache.invalidate(pattern)`` and
    ``notifier.broadcast(event)`` are coroutines; their failures never affect
    the card writes.
    """

    def __init__(self, store, cache, notifier, poll_interval_ms: int = POLL_INTERVAL_MS) -> None:
        self._store = store
        self._cache = cache
        self._notifier = notifier
        self.poll_interval_ms = poll_interval_ms

    async def evaluate_all(self, now: datetime | None = None) -> CycleReport:
        now = now or datetime.now(timezone.utc)
        now_ms = to_millis(now)
        report = CycleReport()

        cards = await asyncio.to_thread(self._store.get_all_cards)
        for card in cards:
            if not card.schedule_weekdays:
                continue
            report.scanned += 1
            try:
                await self._evaluate_card(card, now_ms, report)
            except Exception:
                report.failed += 1
                logger.exception("Schedule evaluation failed for card %s", card.id)

        if report.changed or report.failed:
            logger.debug("Schedule cycle finished: %s", report)
        return report

    async def _evaluate_card(self, card, now_ms: int, report: CycleReport) -> None:
        try:
            entries = load_schedule_blob(card.schedule_weekdays)
        except ValueError as exc:
            report.skipped += 1
            logger.warning("Skipping card %s: malformed schedule data (%s)", card.id, exc)
            return

        kept = prune_expired(entries, now_ms)
        if len(kept) != len(entries):
            if not await self._persist_pruned(card.id, kept, len(entries) - len(kept)):
                report.failed += 1
                return
            report.pruned += 1

        candidate = select_active(kept, now_ms)
        if candidate is None:
            return

        start = entry_start(candidate)
        elapsed_ms = now_ms - to_millis(start)
        branch = window_branch(elapsed_ms, self.poll_interval_ms)
        if abs(elapsed_ms) <= NEAR_START_LOG_WINDOW_MS:
            logger.debug(
                "Schedule check card=%s start=%s elapsed_ms=%d branch=%s",
                card.id,
                start.isoformat(),
                elapsed_ms,
                branch,
            )
        # The active entry wins even without an image; later entries are not
        # consulted in that case.
        image = candidate.get("image")
        if not isinstance(image, str) or not image.strip():
            return
        # Within and missed windows apply alike; a missed window means the
        # loop was not running when the entry opened.
        if branch is None or image == card.image:
            return

        if await self._apply_image(card.id, image, branch):
            report.applied += 1
        else:
            report.failed += 1

    async def _persist_pruned(self, card_id: int, kept: list[dict], removed: int) -> bool:
        try:
            updated = await asyncio.to_thread(
                self._store.update_card, card_id, schedule_weekdays=json.dumps(kept) if kept else None
            )
        except Exception as exc:
            logger.warning("Failed to remove expired schedules for card %s: %s", card_id, exc)
            return False
        if updated is None:
            logger.warning("Card %s not found while removing expired schedules", card_id)
            return False

        await self._invalidate()
        await self._notify(CardSchedulesChanged(card_id=card_id, schedule_weekdays=kept or None))
        logger.info("Removed %d expired schedule(s) for card %s", removed, card_id)
        return True

    async def _apply_image(self, card_id: int, image: str, branch: str) -> bool:
        try:
            updated = await asyncio.to_thread(self._store.update_card, card_id, image=image)
        except Exception as exc:
            logger.warning("Failed to apply schedule for card %s: %s", card_id, exc)
            return False
        if updated is None:
            logger.warning("Card %s not found while applying schedule", card_id)
            return False

        await self._invalidate()
        await self._notify(CardImageApplied(card_id=card_id, image=image))
        logger.info("Applied schedule for card %s (%s window)", card_id, branch)
        return True

    async def _invalidate(self) -> None:
        try:
            await self._cache.invalidate(CARDS_CACHE_PATTERN)
        except Exception:
            logger.debug("Cache invalidation failed", exc_info=True)

    async def _notify(self, event: CardEvent) -> None:
        try:
            await self._notifier.broadcast(event)
        except Exception:
            logger.debug("Change notification failed", exc_info=True)


class SchedulerHandle:
    """Owns the schedule-evaluation and snapshot-export loops of one process.

    Both loops run once on ``start()`` and then at their fixed intervals.
    ``stop()`` lets an in-flight cycle finish and guarantees no further
    cycle begins once it returns.
    """

    def __init__(
        self,
        engine: ScheduleEngine,
        exporter=None,
        poll_interval_ms: int | None = None,
        export_interval_ms: int = EXPORT_INTERVAL_MS,
    ) -> None:
        self._engine = engine
        self._exporter = exporter
        self.poll_interval_ms = poll_interval_ms or engine.poll_interval_ms
        self.export_interval_ms = export_interval_ms
        # The apply-window gate and the loop tick must agree.
        engine.poll_interval_ms = self.poll_interval_ms
        self._tasks: list[asyncio.Task] = []
        self._stopping: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return
        self._stopping = asyncio.Event()
        logger.info("Scheduler starting with interval %dms", self.poll_interval_ms)
        self._tasks = [
            asyncio.create_task(
                self._run_every("schedule", self._engine.evaluate_all, self.poll_interval_ms)
            )
        ]
        if self._exporter is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._run_every("snapshot", self._exporter.export, self.export_interval_ms)
                )
            )

    async def stop(self, grace_sec: float = STOP_GRACE_SEC) -> None:
        if self._stopping is None:
            return
        self._stopping.set()
        tasks, self._tasks = self._tasks, []
        if not tasks:
            return
        _done, pending = await asyncio.wait(tasks, timeout=grace_sec)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Scheduler cycle did not finish within %.1fs; cancelled", grace_sec)
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped")

    async def _run_every(self, name: str, cycle, interval_ms: int) -> None:
        loop = asyncio.get_running_loop()
        stopping = self._stopping
        interval_sec = interval_ms / 1000
        next_at = loop.time()
        while not stopping.is_set():
            await self._guarded(name, cycle)
            next_at += interval_sec
            now = loop.time()
            if next_at < now:
                # Overran the interval; start the next cycle right away.
                next_at = now
            try:
                await asyncio.wait_for(stopping.wait(), timeout=next_at - now)
            except asyncio.TimeoutError:
                continue

    async def _guarded(self, name: str, cycle) -> None:
        try:
            await cycle()
        except Exception:
            logger.exception("%s cycle failed", name.capitalize())
