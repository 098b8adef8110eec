"""Turns a fired schedule into one scale call against the control plane."""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

from loguru import logger

from scalecron.control.client import ControlPlaneClient
from scalecron.cron.types import ServiceType
from scalecron.errors import ControlPlaneError, DispatchFailure

if TYPE_CHECKING:
    from loguru import Logger


class ActionDispatcher:
    """Fire-and-forget scale actions. Failures are logged, never raised or retried."""

    def __init__(self, client: ControlPlaneClient):
        self.client = client

    async def dispatch(
        self,
        service_name: str,
        service_type: ServiceType,
        turn_on: bool,
        token: str,
        log: "Logger | None" = None,
    ) -> bool:
        """Scale ``service_name`` to 1 (on) or 0 (off). Returns whether the call succeeded."""
        log = log or logger
        scale = 1 if turn_on else 0
        try:
            await self.client.set_scale(service_type, service_name, scale, token)
        except ControlPlaneError as e:
            log.error("{}", DispatchFailure(service_name, service_type.value, e))
            return False

        action_text = "turned on" if turn_on else "turned off"
        log.info("Successfully {} {} {}", action_text, service_type.value, service_name)
        return True

    def bind(
        self,
        service_name: str,
        service_type: ServiceType,
        turn_on: bool,
        token: str,
        log: "Logger | None" = None,
    ) -> Callable[[], Awaitable[bool]]:
        """Capture the action parameters and credential for the timer."""

        async def _fire() -> bool:
            return await self.dispatch(service_name, service_type, turn_on, token, log=log)

        return _fire
