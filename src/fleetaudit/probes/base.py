"""Probe abstraction with retry logic.

The audit core only sees the two protocols below. Concrete clients own their
own timeout, retry and rate-limit state.
"""

from __future__ import annotations

import asyncio
import os
from typing import Optional, Protocol, runtime_checkable

import httpx

from ..core.config import AuditSettings
from ..core.errors import ProbeError
from ..models.audit import CheckResult
from ..models.probe import BranchProtection, DependencyCheck, IssueRef
from ..utils.sanitize import sanitize_error

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


@runtime_checkable
class SourceControlProbe(Protocol):
    """Read (and, for remediation, write) access to service repositories."""

    name: str

    async def file_exists(self, repo: str, path: str) -> bool: ...

    async def has_dependency(self, repo: str, package: str) -> DependencyCheck: ...

    async def has_workflow_matching(self, repo: str, patterns: list[str]) -> bool: ...

    async def get_file_content(self, repo: str, path: str) -> Optional[str]: ...

    async def get_branch_protection(self, repo: str, branch: str) -> BranchProtection: ...

    async def find_open_issue(self, repo: str, title: str) -> Optional[IssueRef]: ...

    async def create_issue(self, repo: str, title: str, body: str, labels: list[str]) -> IssueRef: ...

    async def update_issue(self, repo: str, number: int, body: str) -> IssueRef: ...


@runtime_checkable
class RuntimeProbe(Protocol):
    """Live HTTP checks against deployed services."""

    name: str

    async def check_health(self, domain: str) -> CheckResult: ...

    async def check_registry(self, service_name: str) -> CheckResult: ...

    async def check_router(self, domain: str) -> CheckResult: ...


class BaseProbe:
    """Base class with shared HTTP client construction and retry logic."""

    name: str = "base"

    def __init__(
        self,
        timeout: float,
        retry_attempts: int = 1,
        retry_delay: float = 0,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.max_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.headers = headers or {}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self.headers,
            transport=self._transport,
            follow_redirects=True,
        )

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"

    def _backoff(self, attempt: int, response: Optional[httpx.Response]) -> float:
        if response is not None and self._is_rate_limited(response):
            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.isdigit():
                return float(retry_after)
            # Rate limits: longer base. Others: standard backoff.
            return self.retry_delay * 5 * min(attempt, 3)
        return self.retry_delay * min(attempt, 3)

    async def _before_request(self) -> None:
        """Hook for subclasses that meter outgoing requests."""

    async def request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request, retrying transport errors, 5xx and rate limits.

        Non-retryable responses are returned as-is for the caller to interpret.
        Raises ProbeError once every attempt failed at the transport level.
        """
        last_error = ""
        for attempt in range(1, self.max_attempts + 1):
            await self._before_request()
            response: Optional[httpx.Response] = None
            try:
                async with self._client() as client:
                    response = await client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                last_error = f"timed out after {self.timeout}s"
            except httpx.TransportError as e:
                last_error = str(e) or type(e).__name__

            if response is not None:
                retryable = response.status_code in RETRYABLE_STATUS or self._is_rate_limited(response)
                if not retryable or attempt >= self.max_attempts:
                    return response
                last_error = f"HTTP {response.status_code}"

            if attempt >= self.max_attempts:
                break
            await asyncio.sleep(self._backoff(attempt, response))

        raise ProbeError(sanitize_error(f"{method} {url} failed: {last_error}"))


def get_probes(
    settings: AuditSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> tuple[SourceControlProbe, RuntimeProbe]:
    """Factory for the configured source-control and runtime probes."""
    from .github import GitHubProbe
    from .runtime import HttpRuntimeProbe

    token = os.environ.get(settings.github.token_env) or None
    source = GitHubProbe(settings.github, token=token, transport=transport)
    runtime = HttpRuntimeProbe(settings.runtime, transport=transport)
    return source, runtime
