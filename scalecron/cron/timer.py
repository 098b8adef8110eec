"""Cron timer: parses schedule expressions and fires callbacks at their next run."""

from __future__ import annotations

import asyncio
import itertools
import re
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Awaitable, Callable

from croniter import croniter
from loguru import logger

from scalecron.cron.types import FireTimes
from scalecron.errors import InvalidCronExpression

TimerCallback = Callable[[], Awaitable[Any]]

_DURATION_RE = re.compile(r"(\d+)([smh])")

_DESCRIPTORS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


def _parse_duration_seconds(value: str) -> int:
    text = value.strip().lower().replace(" ", "")
    if not text:
        raise ValueError("empty duration")

    pos = 0
    total = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration '{value}'")
        amount = int(match.group(1))
        unit = match.group(2)
        if unit == "h":
            total += amount * 3600
        elif unit == "m":
            total += amount * 60
        else:
            total += amount
        pos = match.end()

    if pos != len(text) or total <= 0:
        raise ValueError(f"invalid duration '{value}'")
    return total


class CronSpec:
    """A parsed schedule expression."""

    def __init__(self, text: str):
        self.text = text
        self.every_s: int | None = None
        self.expr: str | None = None

        raw = text.strip()
        if not raw:
            raise InvalidCronExpression(text, "empty expression")

        if raw.startswith("@every "):
            try:
                self.every_s = _parse_duration_seconds(raw[len("@every "):])
            except ValueError as e:
                raise InvalidCronExpression(text, str(e)) from None
            return

        if raw.startswith("@"):
            expr = _DESCRIPTORS.get(raw.lower())
            if expr is None:
                raise InvalidCronExpression(text, "unknown descriptor")
            self.expr = expr
            return

        if len(raw.split()) != 5:
            raise InvalidCronExpression(text, "expected 5 fields")
        if not croniter.is_valid(raw):
            raise InvalidCronExpression(text)
        self.expr = raw

    def next_after(self, moment: datetime) -> datetime:
        """First fire time strictly after ``moment``."""
        if self.every_s is not None:
            return moment.replace(microsecond=0) + timedelta(seconds=self.every_s)
        return croniter(self.expr, moment).get_next(datetime)


@dataclass
class TimerEntry:
    """A live timer registration."""

    handle: int
    spec: CronSpec
    callback: TimerCallback
    next_run: datetime
    prev_run: datetime | None = None


class CronTimer:
    """Single-loop cron timer.

    One asyncio task sleeps until the earliest due entry, then launches every
    due callback as its own task and re-arms. Entries can be added and removed
    from any thread; handles are never reused.
    """

    def __init__(
        self,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.tz = tz if tz is not None else datetime.now().astimezone().tzinfo
        self._clock = clock or (lambda: datetime.now(self.tz))
        self._entries: dict[int, TimerEntry] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._timer_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._running = False
        self._fired = 0

    def now(self) -> datetime:
        return self._clock()

    # ========== Registration ==========

    def schedule(self, expression: str, callback: TimerCallback) -> int:
        """Register ``callback`` to fire on ``expression``; returns its handle."""
        spec = CronSpec(expression)
        next_run = spec.next_after(self.now())
        with self._lock:
            handle = next(self._ids)
            self._entries[handle] = TimerEntry(
                handle=handle,
                spec=spec,
                callback=callback,
                next_run=next_run,
            )
        self._request_rearm()
        return handle

    def cancel(self, handle: int) -> None:
        """Remove an entry. Unknown handles are ignored."""
        with self._lock:
            removed = self._entries.pop(handle, None)
        if removed is not None:
            self._request_rearm()

    def reserve_handles(self, floor: int) -> None:
        """Make every handle issued from now on greater than ``floor``."""
        with self._lock:
            upcoming = next(self._ids)
            self._ids = itertools.count(max(upcoming, floor + 1))

    def fire_times(self, handle: int) -> FireTimes:
        now = self.now()
        with self._lock:
            entry = self._entries.get(handle)
            if entry is None:
                return FireTimes()
            next_run = entry.next_run
            prev_run = entry.prev_run
            spec = entry.spec
        if next_run <= now:
            next_run = spec.next_after(now)
        return FireTimes(next=next_run, prev=prev_run)

    def has(self, handle: int) -> bool:
        with self._lock:
            return handle in self._entries

    def handles(self) -> list[int]:
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ========== Lifecycle ==========

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start evaluating entries on the running event loop."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        now = self.now()
        with self._lock:
            for entry in self._entries.values():
                if entry.next_run <= now:
                    entry.next_run = entry.spec.next_after(now)
        self._running = True
        self._arm_timer()
        logger.info("Timer started with {} entries", len(self))

    def stop(self) -> None:
        """Stop the evaluation loop. Callbacks already running are left to finish."""
        self._running = False
        if self._timer_task:
            self._timer_task.cancel()
            self._timer_task = None

    async def wait_inflight(self) -> None:
        """Wait for every callback launched so far to finish."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def health(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "entries": len(self),
            "inflight": len(self._inflight),
            "fired": self._fired,
        }

    # ========== Evaluation loop ==========

    def _request_rearm(self) -> None:
        loop = self._loop
        if not self._running or loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            self._arm_timer()
        else:
            loop.call_soon_threadsafe(self._arm_timer)

    def _get_next_wake(self) -> datetime | None:
        with self._lock:
            if not self._entries:
                return None
            return min(entry.next_run for entry in self._entries.values())

    def _arm_timer(self) -> None:
        if self._timer_task:
            self._timer_task.cancel()
            self._timer_task = None

        if not self._running or self._loop is None:
            return

        next_wake = self._get_next_wake()
        if next_wake is None:
            return

        delay_s = max(0.0, (next_wake - self.now()).total_seconds())

        async def _tick() -> None:
            try:
                await asyncio.sleep(delay_s)
            except asyncio.CancelledError:
                return
            self._timer_task = None
            if self._running:
                self._on_timer()

        self._timer_task = self._loop.create_task(_tick())

    def _on_timer(self) -> None:
        now = self.now()
        due: list[TimerEntry] = []
        with self._lock:
            for entry in self._entries.values():
                if entry.next_run <= now:
                    entry.prev_run = entry.next_run
                    entry.next_run = entry.spec.next_after(now)
                    due.append(entry)

        for entry in due:
            self._launch(entry)

        self._arm_timer()

    def _launch(self, entry: TimerEntry) -> None:
        assert self._loop is not None
        self._fired += 1
        task = self._loop.create_task(self._run_callback(entry.handle, entry.callback))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_callback(self, handle: int, callback: TimerCallback) -> None:
        try:
            await callback()
        except Exception:
            logger.exception("Timer: job {} failed", handle)
