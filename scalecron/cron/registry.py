"""In-memory registry of live schedules, kept 1:1 with timer entries."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from scalecron.cron.timer import CronTimer
from scalecron.cron.types import ScheduleRecord, ScheduleRequest

if TYPE_CHECKING:
    from loguru import Logger

    from scalecron.control.dispatcher import ActionDispatcher


class ScheduleRegistry:
    """Ordered collection of live schedule records.

    Every mutation touches the timer and the record list under the same lock,
    so other registry calls never observe a record without its timer entry or
    the reverse. Nothing in here performs network I/O.
    """

    def __init__(self, timer: CronTimer, dispatcher: ActionDispatcher):
        self._timer = timer
        self._dispatcher = dispatcher
        self._records: list[ScheduleRecord] = []
        self._lock = threading.Lock()

    def add(self, request: ScheduleRequest, token: str, log: "Logger | None" = None) -> int:
        """Register a timer for ``request`` and append its record.

        Raises InvalidCronExpression if the timer rejects the expression; the
        collection is left untouched in that case.
        """
        callback = self._dispatcher.bind(
            request.service_name,
            request.service_type,
            request.turn_on,
            token,
            log=log,
        )
        with self._lock:
            handle = self._timer.schedule(request.cron_expression, callback)
            self._records.append(
                ScheduleRecord(
                    service_name=request.service_name,
                    service_type=request.service_type,
                    action=request.action,
                    cron_expression=request.cron_expression,
                    job_handle=handle,
                )
            )
        return handle

    def list(self) -> list[ScheduleRecord]:
        """Snapshot of the records with live next/last fire times."""
        with self._lock:
            snapshot = list(self._records)

        records: list[ScheduleRecord] = []
        for record in snapshot:
            times = self._timer.fire_times(record.job_handle)
            records.append(
                replace(record, next_fire_time=times.next, last_fire_time=times.prev)
            )
        return records

    def remove(self, job_handle: int) -> bool:
        """Cancel the timer entry and drop the first matching record."""
        with self._lock:
            self._timer.cancel(job_handle)
            for i, record in enumerate(self._records):
                if record.job_handle == job_handle:
                    del self._records[i]
                    return True
        return False

    def get(self, job_handle: int) -> ScheduleRecord | None:
        with self._lock:
            for record in self._records:
                if record.job_handle == job_handle:
                    return record
        return None

    def check_consistency(self) -> dict[str, Any]:
        """Compare registry handles with timer handles."""
        with self._lock:
            record_handles = {r.job_handle for r in self._records}
            timer_handles = set(self._timer.handles())
        return {
            "consistent": record_handles == timer_handles,
            "orphan_records": sorted(record_handles - timer_handles),
            "orphan_timers": sorted(timer_handles - record_handles),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
