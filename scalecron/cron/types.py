"""Schedule types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from scalecron.errors import ValidationError


class ServiceType(str, Enum):
    PROJECT = "project"
    DATABASE = "database"


class Action(str, Enum):
    ON = "on"
    OFF = "off"


@dataclass(frozen=True)
class FireTimes:
    """Live fire-time state of a timer entry."""

    next: datetime | None = None
    prev: datetime | None = None


@dataclass(frozen=True)
class ScheduleRequest:
    """A validated request to attach a recurring action to a resource."""

    service_name: str
    service_type: ServiceType
    action: Action
    cron_expression: str

    @property
    def turn_on(self) -> bool:
        return self.action is Action.ON

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ScheduleRequest":
        """Build a request from the create payload, collecting every bad field.

        ``serviceType`` and ``action`` must match their values exactly; every
        field must be a string.
        """
        service_name = _text(payload.get("service", payload.get("serviceName")))
        service_type = _text(payload.get("serviceType"))
        action = _text(payload.get("action"))
        cron_expression = _text(payload.get("cron"))

        invalid: list[str] = []
        if not service_name:
            invalid.append("service")
        if service_type not in {t.value for t in ServiceType}:
            invalid.append("serviceType")
        if action not in {a.value for a in Action}:
            invalid.append("action")
        if not cron_expression:
            invalid.append("cron")
        if invalid:
            raise ValidationError(invalid)

        return cls(
            service_name=service_name,
            service_type=ServiceType(service_type),
            action=Action(action),
            cron_expression=cron_expression,
        )


@dataclass(frozen=True)
class ScheduleRecord:
    """A live schedule held by the registry."""

    service_name: str
    service_type: ServiceType
    action: Action
    cron_expression: str
    job_handle: int
    next_fire_time: datetime | None = None
    last_fire_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "serviceName": self.service_name,
            "serviceType": self.service_type.value,
            "action": self.action.value,
            "cron": self.cron_expression,
            "jobHandle": self.job_handle,
        }
        if self.next_fire_time is not None:
            data["nextFireTime"] = self.next_fire_time.isoformat()
        if self.last_fire_time is not None:
            data["lastFireTime"] = self.last_fire_time.isoformat()
        return data


@dataclass
class ScheduleListing:
    """Result of a list query: the records plus the query's own timestamp."""

    current_time: datetime
    schedules: list[ScheduleRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "currentTime": self.current_time.isoformat(),
            "schedules": [s.to_dict() for s in self.schedules],
        }


def _text(value: Any) -> str:
    # Non-strings count as missing.
    if not isinstance(value, str):
        return ""
    return value.strip()
