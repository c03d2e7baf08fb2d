"""Runtime endpoint probe.

Probes health endpoints, the service registry and the router API. Every call
is a single bounded-timeout GET; failures come back as ``fail`` results.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote

import httpx

from ..core.config import RuntimeSettings
from ..core.errors import ProbeError
from ..models.audit import CheckResult, CheckStatus
from ..utils.sanitize import sanitize_error
from .base import BaseProbe


class HttpRuntimeProbe(BaseProbe):
    name = "http"

    def __init__(
        self,
        settings: RuntimeSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=settings.timeout_seconds, transport=transport)
        self.settings = settings

    async def _fetch(self, url: str) -> httpx.Response | CheckResult:
        try:
            return await self.request_with_retry("GET", url)
        except ProbeError as e:
            return CheckResult(status=CheckStatus.FAIL, reason=str(e), url=url)
        except httpx.InvalidURL as e:
            # malformed domain or URL never reaches the transport
            return CheckResult(status=CheckStatus.FAIL, reason=sanitize_error(f"invalid URL: {e}"), url=url)

    async def check_health(self, domain: str) -> CheckResult:
        if not domain:
            return CheckResult(status=CheckStatus.NOT_APPLICABLE, reason="no domain")

        url = f"https://{domain}{self.settings.health_path}"
        response = await self._fetch(url)
        if isinstance(response, CheckResult):
            return response

        if not response.is_success:
            return CheckResult(status=CheckStatus.FAIL, reason=f"HTTP {response.status_code}", url=url)

        try:
            body = response.json()
        except ValueError:
            return CheckResult(status=CheckStatus.FAIL, reason="invalid JSON body", url=url)

        status = body.get("status") if isinstance(body, dict) else None
        if status == "ok":
            return CheckResult(status=CheckStatus.PASS, url=url)
        return CheckResult(status=CheckStatus.FAIL, reason=f"status={status}", url=url)

    async def _check_exists(self, url: str) -> CheckResult:
        response = await self._fetch(url)
        if isinstance(response, CheckResult):
            return response
        if response.is_success:
            return CheckResult(status=CheckStatus.PASS, url=url)
        return CheckResult(status=CheckStatus.FAIL, reason=f"HTTP {response.status_code}", url=url)

    async def check_registry(self, service_name: str) -> CheckResult:
        if not service_name:
            return CheckResult(status=CheckStatus.NOT_APPLICABLE)
        url = f"{self.settings.registry_url.rstrip('/')}/{quote(service_name, safe='')}"
        return await self._check_exists(url)

    async def check_router(self, domain: str) -> CheckResult:
        if not domain:
            return CheckResult(status=CheckStatus.NOT_APPLICABLE, reason="no domain")
        url = f"{self.settings.router_url.rstrip('/')}/{quote(domain, safe='')}"
        return await self._check_exists(url)
