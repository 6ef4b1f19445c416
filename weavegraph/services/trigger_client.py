"""
Job runner backed by the trigger.dev REST API.

    trigger:  POST {api_url}/api/v1/tasks/{task_id}/trigger   {"payload": ..., "options": {"idempotencyKey": ...}} -> {"id": ...}
    retrieve: GET  {api_url}/api/v3/runs/{run_id}              -> {"status", "output", "error"}

Network failures and non-2xx responses are reported as TransportError; the job
bridge decides whether to retry the call.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import logging

import httpx

from ..config import Settings
from ..core.Errors import TransportError
from ..core.JobBridge import JobRun

logger = logging.getLogger(__name__)


class TriggerDevClient:
    def __init__(self,
                 secret_key: str,
                 api_url: str = "https://api.trigger.dev",
                 timeout: float = 30.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.api_url = api_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {"Authorization": f"Bearer {secret_key}"}

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "TriggerDevClient":
        if not settings.trigger_secret_key:
            raise ValueError("TRIGGER_SECRET_KEY is not set")
        return cls(settings.trigger_secret_key, settings.trigger_api_url, client=client)

    async def trigger(self, job_kind: str, payload: Dict[str, Any], idempotency_key: Optional[str] = None) -> str:
        request: Dict[str, Any] = {"payload": payload}
        if idempotency_key:
            request["options"] = {"idempotencyKey": idempotency_key}
        body = await self._request("POST", f"/api/v1/tasks/{job_kind}/trigger", json=request)
        run_id = body.get("id")
        if not run_id:
            raise TransportError(f"Trigger response for {job_kind} carried no run id")
        return run_id

    async def retrieve(self, job_id: str) -> JobRun:
        body = await self._request("GET", f"/api/v3/runs/{job_id}")
        return JobRun(
            status=str(body.get("status", "")),
            output=body.get("output"),
            error=_error_message(body.get("error")),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"{method} {path} returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON") from exc


def _error_message(error: Any) -> Optional[str]:
    if error is None:
        return None
    if isinstance(error, dict):
        return error.get("message") or error.get("name") or None
    return str(error)
