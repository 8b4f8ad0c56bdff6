from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..domain.models import ControlResponse, DeviceState

logger = logging.getLogger(__name__)


class HttpDeviceControl:
    """Device control over the room hosts' REST bridge.

    ``POST {host}/api/devices/{id}/state`` sets a state,
    ``GET {host}/api/devices/{id}/state`` reads it back.
    """

    def __init__(self, timeout: float = 5.0, api_key: str = "") -> None:
        self._timeout = timeout
        self._headers = {"X-Api-Key": api_key} if api_key else {}

    @staticmethod
    def _url(host: str, device_id: str) -> str:
        base = host if host.startswith(("http://", "https://")) else f"http://{host}"
        return f"{base.rstrip('/')}/api/devices/{device_id}/state"

    async def get_state(self, device_id: str, host: str) -> Optional[DeviceState]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
                resp = await client.get(self._url(host, device_id))
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError):
            logger.warning("get_state(%s) failed", device_id, exc_info=True)
            return None

        state = data.get("state", data) if isinstance(data, dict) else None
        if not isinstance(state, dict):
            logger.warning("get_state(%s): unexpected payload %r", device_id, data)
            return None
        return DeviceState.from_payload(state)

    async def set_state(self, device_id: str, host: str, state: DeviceState) -> ControlResponse:
        payload = state.as_payload()
        try:
            async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
                resp = await client.post(self._url(host, device_id), json=payload)
        except httpx.HTTPError as e:
            logger.warning("set_state(%s, %s) failed", device_id, payload, exc_info=True)
            return ControlResponse(success=False, status_code=0, message=str(e))

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_success:
            logger.info("set_state %s=%s status=%s", device_id, payload, resp.status_code)
            return ControlResponse(
                success=True,
                status_code=resp.status_code,
                data=body if isinstance(body, dict) else None,
            )

        message = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
        return ControlResponse(
            success=False,
            status_code=resp.status_code,
            message=message or f"HTTP {resp.status_code}",
        )
