"""
ReportStoreClient - Authenticated HTTP access to the reports API.

Contract consumed:
  GET   {API_BASE}/reports/{id}                    → 200 report | 404
  PATCH {API_BASE}/reports/{id}  {result, status}  → 200 updated report

Both calls carry the worker's service credential as a bearer token and go
through retry(). A 404 on fetch is not retried; it is raised as
ReportNotFound.
"""

import logging
from typing import Any

import httpx

from worker.core.config import Settings
from worker.core.errors import ReportNotFound
from worker.core.retry import retry
from worker.models.report import Report, ReportStatus

logger = logging.getLogger(__name__)


class ReportStoreClient:
    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = settings.api_base.rstrip("/")
        self._service_key = settings.service_key
        self._timeout = settings.http_timeout_seconds
        self._attempts = settings.retry_attempts
        self._base_delay_ms = settings.retry_base_delay_ms
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self._service_key}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def get(self, report_id: str) -> Report:
        """Fetch one report. Raises ReportNotFound on 404."""

        async def _fetch() -> dict[str, Any] | None:
            async with self._client() as client:
                response = await client.get(f"/reports/{report_id}")
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()

        data = await retry(_fetch, self._attempts, self._base_delay_ms)
        if data is None:
            raise ReportNotFound(report_id)
        return Report.model_validate(data)

    async def patch(
        self,
        report_id: str,
        result: dict[str, Any],
        status: ReportStatus,
    ) -> Any:
        """
        Write the run result and status back to the store.

        Returns the decoded response body as-is. Once the store has accepted
        the write, nothing about its reply can fail the patch.
        """

        async def _patch() -> Any:
            async with self._client() as client:
                response = await client.patch(
                    f"/reports/{report_id}",
                    json={"result": result, "status": status},
                )
                response.raise_for_status()
                try:
                    return response.json()
                except ValueError:
                    return response.text or None

        data = await retry(_patch, self._attempts, self._base_delay_ms)
        logger.info("Updated report %s status=%s", report_id, status)
        return data
