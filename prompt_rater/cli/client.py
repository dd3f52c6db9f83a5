from typing import Any, Dict, Optional

import httpx

from prompt_rater.api.schemas import ExecuteResponse, ForceCompleteResponse, QueueSnapshot, ResetResponse


class ApiClient:
    """Minimal synchronous API client for the Prompt Rater CLI.

    Sends the identity headers the gateway would normally add, so it can talk
    to a server directly.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        tenant_id: str,
        role: str = "TENANT_ADMIN",
        api_key: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"X-User-Id": user_id, "X-User-Role": role, "X-Tenant-Id": tenant_id}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._http = httpx.Client(base_url=self.base_url, headers=headers, timeout=30.0)

    def get_queue(self) -> QueueSnapshot:
        resp = self._http.get("/queue")
        resp.raise_for_status()
        return QueueSnapshot.model_validate(resp.json())

    def trigger_worker(self) -> Dict[str, Any]:
        resp = self._http.post("/queue")
        resp.raise_for_status()
        return resp.json()

    def execute(self, config_id: str) -> ExecuteResponse:
        resp = self._http.post(f"/configs/{config_id}/execute")
        resp.raise_for_status()
        return ExecuteResponse.model_validate(resp.json())

    def force_complete(self, config_id: str) -> ForceCompleteResponse:
        resp = self._http.post(f"/configs/{config_id}/force-complete")
        resp.raise_for_status()
        return ForceCompleteResponse.model_validate(resp.json())

    def reset(self, config_id: str, mode: str = "soft") -> ResetResponse:
        resp = self._http.post(f"/configs/{config_id}/reset", json={"mode": mode})
        resp.raise_for_status()
        return ResetResponse.model_validate(resp.json())

    def cancel_run(self, run_id: str) -> Dict[str, Any]:
        resp = self._http.patch(f"/queue/{run_id}", json={"action": "cancel"})
        resp.raise_for_status()
        return resp.json()

    def retry_run(self, run_id: str) -> Dict[str, Any]:
        resp = self._http.patch(f"/queue/{run_id}", json={"action": "retry"})
        resp.raise_for_status()
        return resp.json()

    def export(self, config_id: str, fmt: str = "json") -> bytes:
        resp = self._http.get(f"/exports/{config_id}", params={"format": fmt})
        resp.raise_for_status()
        return resp.content
