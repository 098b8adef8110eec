from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from scalecron.control.dispatcher import ActionDispatcher
from scalecron.cron.service import EngineState, SchedulingEngine
from scalecron.cron.timer import CronTimer
from scalecron.errors import PersistenceError
from scalecron.store.base import StoredSchedule
from scalecron.store.sqlite_store import SqliteScheduleStore
from scalecron.store.yaml_store import YamlScheduleStore

NOW = datetime(2026, 7, 1, 9, 0, tzinfo=timezone.utc)

PAYLOADS = [
    {"service": "app-1", "serviceType": "project", "action": "off", "cron": "0 0 * * *"},
    {"service": "app-1", "serviceType": "project", "action": "on", "cron": "0 8 * * 1-5"},
    {"service": "db-main", "serviceType": "database", "action": "off", "cron": "@every 12h"},
]


class _RecordingClient:
    def __init__(self):
        self.calls: list[tuple] = []

    async def set_scale(self, kind, name, scale, token) -> None:
        self.calls.append((kind, name, scale, token))


def _engine(store, fallback_token: str | None = "fallback", client=None) -> SchedulingEngine:
    return SchedulingEngine(
        dispatcher=ActionDispatcher(client or _RecordingClient()),
        timer=CronTimer(tz=timezone.utc, clock=lambda: NOW),
        store=store,
        fallback_token=fallback_token,
    )


@pytest.fixture(params=["yaml", "sqlite"])
def store_factory(request, tmp_path: Path):
    if request.param == "yaml":
        return lambda: YamlScheduleStore(tmp_path / "schedules")
    return lambda: SqliteScheduleStore(tmp_path / "schedules.db")


def _fields(record) -> tuple:
    return (record.service_name, record.service_type, record.action, record.cron_expression)


def test_restart_restores_every_schedule(store_factory) -> None:
    first = _engine(store_factory())
    first.reconcile()
    old_handles = [first.create_schedule(p, "user-token") for p in PAYLOADS]
    originals = [_fields(r) for r in first.list_schedules().schedules]

    second = _engine(store_factory())
    restored = second.reconcile()

    assert restored == len(PAYLOADS)
    assert second.state is EngineState.RECONCILED
    listing = second.list_schedules()
    assert listing.current_time == NOW
    records = listing.schedules
    assert all(r.next_fire_time > NOW for r in records)
    assert [_fields(r) for r in records] == originals
    new_handles = [r.job_handle for r in records]
    assert all(h > max(old_handles) for h in new_handles)
    assert second.registry.check_consistency()["consistent"] is True

    # Durable rows follow the live handles.
    stored = sorted(row.job_handle for row in store_factory().list_schedules())
    assert stored == sorted(new_handles)


def test_delete_after_restart_removes_durable_row(store_factory) -> None:
    first = _engine(store_factory())
    first.reconcile()
    first.create_schedule(PAYLOADS[0], "user-token")

    second = _engine(store_factory())
    second.reconcile()
    handle = second.list_schedules().schedules[0].job_handle
    second.delete_schedule(handle)

    assert store_factory().list_schedules() == []


@pytest.mark.asyncio
async def test_restored_schedules_fire_with_fallback_token(store_factory) -> None:
    first = _engine(store_factory())
    first.reconcile()
    first.create_schedule(PAYLOADS[2], "user-token")

    client = _RecordingClient()
    second = _engine(store_factory(), fallback_token="env-token", client=client)
    second.reconcile()

    for handle in second.timer.handles():
        await second.timer._entries[handle].callback()

    assert [(c[1], c[2], c[3]) for c in client.calls] == [("db-main", 0, "env-token")]


def test_missing_fallback_token_skips_rows_but_keeps_them(store_factory) -> None:
    first = _engine(store_factory())
    first.reconcile()
    old_handles = [first.create_schedule(p, "user-token") for p in PAYLOADS]

    second = _engine(store_factory(), fallback_token=None)
    restored = second.reconcile()

    assert restored == 0
    assert second.state is EngineState.RECONCILED
    assert second.list_schedules().schedules == []
    assert sorted(r.job_handle for r in store_factory().list_schedules()) == sorted(old_handles)

    # New schedules do not collide with the rows left on disk.
    handle = second.create_schedule(PAYLOADS[0], "user-token")
    assert handle > max(old_handles)


def test_invalid_rows_are_skipped(store_factory) -> None:
    store = store_factory()
    store.insert_schedule(StoredSchedule(5, "app-1", "project", "off", "not-a-cron"))
    store.insert_schedule(StoredSchedule(6, "vm-1", "vm", "off", "0 0 * * *"))
    store.insert_schedule(StoredSchedule(7, "app-2", "project", "on", "30 7 * * *"))

    engine = _engine(store_factory())
    restored = engine.reconcile()

    assert restored == 1
    records = engine.list_schedules().schedules
    assert [r.service_name for r in records] == ["app-2"]
    assert records[0].job_handle == 8


def test_in_memory_mode_reconciles_empty() -> None:
    engine = _engine(None)

    assert engine.reconcile() == 0
    assert engine.state is EngineState.RECONCILED
    assert engine.list_schedules().schedules == []


def test_unreadable_store_reconciles_empty() -> None:
    class _UnreadableStore:
        def insert_schedule(self, row) -> None:
            raise PersistenceError("down")

        def delete_schedule(self, job_handle) -> bool:
            raise PersistenceError("down")

        def list_schedules(self):
            raise PersistenceError("down")

    engine = _engine(_UnreadableStore())

    assert engine.reconcile() == 0
    assert engine.state is EngineState.RECONCILED


class _FlakyYamlStore(YamlScheduleStore):
    """YAML store whose inserts fail while ``fail_inserts`` is set."""

    fail_inserts = True

    def insert_schedule(self, row: StoredSchedule) -> None:
        if self.fail_inserts:
            raise PersistenceError("disk full")
        super().insert_schedule(row)


def test_rekey_failure_keeps_durable_row(tmp_path: Path) -> None:
    directory = tmp_path / "schedules"
    YamlScheduleStore(directory).insert_schedule(StoredSchedule(3, "app-1", "project", "off", "0 0 * * *"))
    flaky = _FlakyYamlStore(directory)

    engine = _engine(flaky)

    assert engine.reconcile() == 1
    assert [r.job_handle for r in engine.list_schedules().schedules] == [4]
    # The row could not move to its new key, so it stays under the old one.
    assert [r.job_handle for r in flaky.list_schedules()] == [3]

    restarted = _engine(YamlScheduleStore(directory))
    assert restarted.reconcile() == 1
    assert [r.service_name for r in restarted.list_schedules().schedules] == ["app-1"]


def test_rekey_moves_row_only_after_new_key_is_written(tmp_path: Path) -> None:
    directory = tmp_path / "schedules"
    YamlScheduleStore(directory).insert_schedule(StoredSchedule(3, "app-1", "project", "off", "0 0 * * *"))
    flaky = _FlakyYamlStore(directory)
    flaky.fail_inserts = False

    engine = _engine(flaky)
    engine.reconcile()

    assert [r.job_handle for r in flaky.list_schedules()] == [4]


@pytest.mark.asyncio
async def test_start_reconciles_and_runs_timer(tmp_path: Path) -> None:
    directory = tmp_path / "schedules"
    directory.mkdir()
    (directory / "12.yaml").write_text(
        yaml.safe_dump({"service_name": "app-1", "service_type": "project", "action": "off", "cron": "0 0 * * *"}),
        encoding="utf-8",
    )

    engine = _engine(YamlScheduleStore(directory))
    await engine.start()
    try:
        assert engine.state is EngineState.RECONCILED
        assert engine.timer.running
        assert [r.job_handle for r in engine.list_schedules().schedules] == [13]
        assert (directory / "13.yaml").exists()
        assert not (directory / "12.yaml").exists()
    finally:
        engine.stop()
    assert engine.state is EngineState.STOPPED
