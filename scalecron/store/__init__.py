"""Persistence adapters for schedules."""

from scalecron.store.base import ScheduleStore, StoredSchedule, open_store
from scalecron.store.sqlite_store import SqliteScheduleStore
from scalecron.store.yaml_store import YamlScheduleStore

__all__ = ["ScheduleStore", "StoredSchedule", "open_store", "SqliteScheduleStore", "YamlScheduleStore"]
