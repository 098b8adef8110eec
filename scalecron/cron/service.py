"""Scheduling engine: owns the registry, timer and optional durable store."""

from __future__ import annotations

from dataclasses import replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping

from loguru import logger

from scalecron.cron.registry import ScheduleRegistry
from scalecron.cron.timer import CronTimer
from scalecron.cron.types import ScheduleListing, ScheduleRecord, ScheduleRequest
from scalecron.errors import (
    EngineNotReady,
    InvalidCronExpression,
    PersistenceError,
    ScheduleNotFound,
    ValidationError,
)
from scalecron.logs.capture import token_logger
from scalecron.store.base import ScheduleStore, StoredSchedule

if TYPE_CHECKING:
    from scalecron.control.dispatcher import ActionDispatcher


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    RECONCILED = "reconciled"
    STOPPED = "stopped"


class SchedulingEngine:
    """Creates, lists and deletes recurring scale actions.

    The store, when present, is the last writer on create and is only touched
    on delete after the live schedule is gone. Store failures are reported to
    the caller as PersistenceError but never undo the in-memory change.
    """

    def __init__(
        self,
        dispatcher: "ActionDispatcher",
        timer: CronTimer | None = None,
        store: ScheduleStore | None = None,
        fallback_token: str | None = None,
    ):
        self.timer = timer if timer is not None else CronTimer()
        self.store = store
        self.fallback_token = fallback_token or None
        self.registry = ScheduleRegistry(self.timer, dispatcher)
        self.state = EngineState.UNINITIALIZED

    # ========== Lifecycle ==========

    async def start(self) -> None:
        """Reconcile persisted schedules and start the timer."""
        if self.state is EngineState.UNINITIALIZED:
            self.reconcile()
        await self.timer.start()
        self.state = EngineState.RECONCILED
        logger.info("Scheduling engine started with {} schedules", len(self.registry))

    def stop(self) -> None:
        self.timer.stop()
        self.state = EngineState.STOPPED
        logger.info("Scheduling engine stopped")

    def reconcile(self) -> int:
        """Rebuild live timers from durable rows. Returns how many were re-registered."""
        self.state = EngineState.LOADING
        try:
            restored = self._reconcile_rows()
        finally:
            self.state = EngineState.RECONCILED
        return restored

    def _reconcile_rows(self) -> int:
        if self.store is None:
            logger.info("No schedule store configured, using in-memory storage")
            return 0

        try:
            rows = self.store.list_schedules()
        except PersistenceError as e:
            logger.error("Error reading schedules from store: {}", e)
            return 0

        if not rows:
            return 0

        # Keep fresh handles clear of every durable key, including rows skipped below.
        self.timer.reserve_handles(max(row.job_handle for row in rows))

        if not self.fallback_token:
            logger.warning(
                "No fallback API token set, cannot re-add {} schedule(s) from store",
                len(rows),
            )
            return 0

        log = token_logger(self.fallback_token)
        restored = 0
        for row in rows:
            try:
                request = row.to_request()
                handle = self.registry.add(request, self.fallback_token, log=log)
            except (ValidationError, InvalidCronExpression) as e:
                logger.warning("Skipping stored schedule {}: {}", row.job_handle, e)
                continue

            self._rekey(row, handle)
            restored += 1
            logger.info(
                "Re-added schedule from store: service={} cron={} handle={}",
                row.service_name,
                row.cron_expression,
                handle,
            )
        return restored

    def _rekey(self, row: StoredSchedule, handle: int) -> None:
        """Move ``row`` to ``handle`` in the store. The old row stays unless the new one is written."""
        assert self.store is not None
        try:
            self.store.insert_schedule(replace(row, job_handle=handle))
        except PersistenceError as e:
            logger.error("Failed to re-key stored schedule {} as {}: {}", row.job_handle, handle, e)
            return

        try:
            self.store.delete_schedule(row.job_handle)
        except PersistenceError as e:
            logger.error("Failed to drop stale stored schedule {}: {}", row.job_handle, e)

    def _require_ready(self) -> None:
        if self.state is not EngineState.RECONCILED:
            raise EngineNotReady(f"scheduling engine is {self.state.value}")

    # ========== Public API ==========

    def create_schedule(self, payload: ScheduleRequest | Mapping[str, Any], token: str) -> int:
        """Register a new schedule and return its job handle."""
        self._require_ready()
        if isinstance(payload, ScheduleRequest):
            request = payload
        else:
            request = ScheduleRequest.from_payload(payload)
        if not token:
            raise ValidationError(["token"])

        handle = self.registry.add(request, token, log=token_logger(token))
        logger.info(
            "Cron: added schedule {} ({} {} {} on '{}')",
            handle,
            request.action.value,
            request.service_type.value,
            request.service_name,
            request.cron_expression,
        )

        if self.store is not None:
            record = self.registry.get(handle)
            if record is None:
                # Deleted concurrently before it could be persisted.
                return handle
            try:
                self.store.insert_schedule(StoredSchedule.from_record(record))
            except PersistenceError as e:
                logger.error("Error saving schedule {} to store: {}", handle, e)
                raise
            logger.info("Schedule saved to store: service={} cron={}", request.service_name, request.cron_expression)
        return handle

    def list_schedules(self) -> ScheduleListing:
        self._require_ready()
        current_time = self.timer.now()
        return ScheduleListing(current_time=current_time, schedules=self.registry.list())

    def get_schedule(self, job_handle: int) -> ScheduleRecord:
        self._require_ready()
        for record in self.registry.list():
            if record.job_handle == job_handle:
                return record
        raise ScheduleNotFound(job_handle)

    def delete_schedule(self, job_handle: int) -> None:
        """Cancel a schedule and drop its durable row."""
        self._require_ready()
        if not self.registry.remove(job_handle):
            raise ScheduleNotFound(job_handle)
        logger.info("Cron: removed schedule {}", job_handle)

        if self.store is not None:
            try:
                self.store.delete_schedule(job_handle)
            except PersistenceError as e:
                logger.error("Error deleting schedule {} from store: {}", job_handle, e)
                raise
            logger.info("Schedule deleted from store: handle={}", job_handle)

    def status(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "schedules": len(self.registry),
            "persistence": self.store is not None,
            "timer": self.timer.health(),
            **self.registry.check_consistency(),
        }
