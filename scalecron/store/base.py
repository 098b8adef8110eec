"""Durable schedule rows and the store contract."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from scalecron.cron.types import ScheduleRecord, ScheduleRequest

SQLITE_SUFFIXES = {".db", ".sqlite", ".sqlite3"}


@dataclass(frozen=True)
class StoredSchedule:
    """One persisted schedule. Carries no credential and no fire-time state."""

    job_handle: int
    service_name: str
    service_type: str
    action: str
    cron_expression: str

    @classmethod
    def from_record(cls, record: ScheduleRecord) -> "StoredSchedule":
        return cls(
            job_handle=record.job_handle,
            service_name=record.service_name,
            service_type=record.service_type.value,
            action=record.action.value,
            cron_expression=record.cron_expression,
        )

    def to_request(self) -> ScheduleRequest:
        """Rebuild the request this row was created from.

        Raises ValidationError when the row no longer holds valid values.
        """
        from scalecron.cron.types import ScheduleRequest

        return ScheduleRequest.from_payload(
            {
                "service": self.service_name,
                "serviceType": self.service_type,
                "action": self.action,
                "cron": self.cron_expression,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "service_type": self.service_type,
            "action": self.action,
            "cron": self.cron_expression,
        }


@runtime_checkable
class ScheduleStore(Protocol):
    """Durable mirror of the schedule registry.

    Implementations raise PersistenceError on any storage failure.
    """

    def insert_schedule(self, row: StoredSchedule) -> None: ...

    def delete_schedule(self, job_handle: int) -> bool: ...

    def list_schedules(self) -> list[StoredSchedule]: ...


def open_store(path: str | Path | None) -> ScheduleStore | None:
    """Open the store configured at ``path``; ``None`` means in-memory mode."""
    if path is None or str(path).strip() == "":
        return None

    p = Path(path).expanduser()
    if p.suffix.lower() in SQLITE_SUFFIXES:
        from scalecron.store.sqlite_store import SqliteScheduleStore

        return SqliteScheduleStore(p)

    from scalecron.store.yaml_store import YamlScheduleStore

    return YamlScheduleStore(p)

