from __future__ import annotations

import logging
from typing import Any

import httpx

from app.client.cache import ResponseCache, get_response_cache
from app.core.config import settings

_LOG = logging.getLogger("app.client")

ENTITIES = ("jobs", "applications", "users")


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def _error_detail(response: httpx.Response) -> Any:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and "detail" in data:
        return data["detail"]
    return data


class ApiClient:
    """Async client for the list and mutation endpoints.

    List responses go through the response cache; every mutation invalidates
    the cached lists of the entity it changed.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        *,
        timeout: float | None = None,
        cache: ResponseCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.CLIENT_API_BASE_URL
        self.token = token
        self.timeout = timeout if timeout is not None else settings.CLIENT_TIMEOUT_SECONDS
        self.cache = cache if cache is not None else get_response_cache()
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers(),
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, json=payload)
        _LOG.debug("%s %s status=%s", method, path, response.status_code)
        if response.status_code >= 400:
            detail = _error_detail(response)
            _LOG.warning("API error method=%s path=%s status=%s detail=%s", method, path, response.status_code, detail)
            raise ApiError(response.status_code, detail)
        return response.json() if response.content else None

    async def list(self, entity: str, descriptor: dict[str, Any] | None = None) -> dict[str, Any]:
        if entity not in ENTITIES:
            raise ValueError(f"Unknown entity: {entity}")
        body = dict(descriptor or {})

        async def _fetch() -> dict[str, Any]:
            return await self._request("POST", f"/{entity}/list", body)

        return await self.cache.get_or_fetch(entity, body, _fetch)

    async def create_job(self, payload: dict[str, Any]) -> dict[str, Any]:
        job = await self._request("POST", "/jobs", payload)
        self.cache.invalidate("jobs")
        return job

    async def update_job(self, job_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        job = await self._request("PATCH", f"/jobs/{job_id}", payload)
        self.cache.invalidate("jobs")
        return job

    async def archive_job(self, job_id: str) -> dict[str, Any]:
        job = await self._request("POST", f"/jobs/{job_id}/archive")
        self.cache.invalidate("jobs")
        return job

    async def update_application_workflow(self, application_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        application = await self._request("PATCH", f"/applications/{application_id}/workflow", payload)
        self.cache.invalidate("applications")
        return application
