"""Schedule store keeping one YAML file per schedule."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from scalecron.errors import PersistenceError
from scalecron.store.base import StoredSchedule


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class YamlScheduleStore:
    """Stores each schedule as ``<job_handle>.yaml`` inside ``directory``."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()
        self._initialized = False

    def __repr__(self) -> str:
        return f"YamlScheduleStore({str(self.directory)!r})"

    def _ensure_storage(self) -> None:
        if self._initialized:
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"cannot create schedule directory {self.directory}: {e}") from e
        self._initialized = True

    def _path(self, job_handle: int) -> Path:
        return self.directory / f"{job_handle}.yaml"

    def _read_dict(self, path: Path) -> dict[str, Any] | None:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError):
            logger.opt(exception=True).warning("Failed to read schedule {}", path)
            return None
        if not isinstance(payload, dict):
            logger.warning("Schedule {} is not a YAML object", path)
            return None
        return payload

    def _write_dict(self, path: Path, payload: dict[str, Any]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        data = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
        tmp_path.write_text(data, encoding="utf-8")
        tmp_path.replace(path)

    def insert_schedule(self, row: StoredSchedule) -> None:
        with self._lock:
            self._ensure_storage()
            path = self._path(row.job_handle)
            if path.exists():
                raise PersistenceError(f"schedule {row.job_handle} already stored")
            payload = row.to_dict()
            payload["created_at"] = _now_iso()
            try:
                self._write_dict(path, payload)
            except (OSError, yaml.YAMLError) as e:
                raise PersistenceError(f"failed to write schedule {row.job_handle}: {e}") from e

    def delete_schedule(self, job_handle: int) -> bool:
        with self._lock:
            self._ensure_storage()
            path = self._path(job_handle)
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            except OSError as e:
                raise PersistenceError(f"failed to delete schedule {job_handle}: {e}") from e
            return True

    def list_schedules(self) -> list[StoredSchedule]:
        with self._lock:
            self._ensure_storage()
            try:
                paths = sorted(self.directory.glob("*.yaml"), key=lambda p: (len(p.stem), p.stem))
            except OSError as e:
                raise PersistenceError(f"failed to list schedules in {self.directory}: {e}") from e

            rows: list[StoredSchedule] = []
            for path in paths:
                if not path.stem.isdigit():
                    logger.warning("Ignoring schedule file with non-numeric key: {}", path)
                    continue
                payload = self._read_dict(path)
                if payload is None:
                    continue
                rows.append(
                    StoredSchedule(
                        job_handle=int(path.stem),
                        service_name=str(payload.get("service_name") or ""),
                        service_type=str(payload.get("service_type") or ""),
                        action=str(payload.get("action") or ""),
                        cron_expression=str(payload.get("cron") or ""),
                    )
                )
            return rows
