"""Control-plane API client for listing and scaling hosted resources."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from scalecron.cron.types import ServiceType
from scalecron.errors import ControlPlaneError

DEFAULT_API_BASE = "https://api.iran.liara.ir"
DEFAULT_TIMEOUT_S = 10.0

_COLLECTIONS = {
    ServiceType.PROJECT: "projects",
    ServiceType.DATABASE: "databases",
}


class Project(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field("", alias="_id")
    project_id: str = ""
    type: str = ""
    status: str = ""
    scale: int = 0
    plan_id: str = Field("", alias="planID")
    created_at: str = ""


class Database(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""
    db_id: str = Field("", alias="DBId")
    type: str = ""
    plan_id: str = Field("", alias="planID")
    status: str = ""
    scale: int = 0
    hostname: str = ""
    port: int = 0
    public_network: bool = Field(False, alias="publicNetwork")
    version: str = ""
    volume_size: int = Field(0, alias="volumeSize")
    db_name: str = Field("", alias="dbName")
    username: str = ""
    hourly_price: int = Field(0, alias="hourlyPrice")
    created_at: str = ""


class ControlPlaneClient:
    """Thin async client over the control-plane REST API.

    Every call opens its own ``httpx.AsyncClient`` so fired jobs and request
    handlers never share connection state.
    """

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        url = f"{self.api_base}{path}"
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(method, url, headers=self._headers(token), json=json_body)
        except httpx.HTTPError as e:
            raise ControlPlaneError(f"API error: {e}") from e

        if response.status_code != httpx.codes.OK:
            raise ControlPlaneError(
                f"API failed with status: {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _decode_list(self, response: httpx.Response, key: str) -> list[dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError as e:
            raise ControlPlaneError(f"error decoding response: {e}") from e
        items = payload.get(key) if isinstance(payload, dict) else None
        if not isinstance(items, list):
            raise ControlPlaneError(f"error decoding response: missing '{key}'")
        return [item for item in items if isinstance(item, dict)]

    async def list_projects(self, token: str) -> list[Project]:
        response = await self._request("GET", "/v1/projects", token)
        return [Project.model_validate(item) for item in self._decode_list(response, "projects")]

    async def list_databases(self, token: str) -> list[Database]:
        response = await self._request("GET", "/v1/databases", token)
        return [Database.model_validate(item) for item in self._decode_list(response, "databases")]

    async def set_scale(self, kind: ServiceType, name: str, scale: int, token: str) -> None:
        """Set the replica count of a project or database."""
        path = f"/v1/{_COLLECTIONS[kind]}/{name}/actions/scale"
        logger.debug("Control plane: POST {} scale={}", path, scale)
        await self._request("POST", path, token, json_body={"scale": scale})
