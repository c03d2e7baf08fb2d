"""GitHub REST API source-control probe."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import re
from typing import Any, Optional
from urllib.parse import quote

import httpx

from ..core.config import GitHubSettings
from ..core.errors import ProbeError
from ..models.probe import BranchProtection, DependencyCheck, IssueRef
from ..utils.sanitize import sanitize_error
from .base import BaseProbe
from .ratelimit import RateLimiter

PER_PAGE = 100
MAX_PAGES = 10


class GitHubProbe(BaseProbe):
    name = "github"

    def __init__(
        self,
        settings: GitHubSettings,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "fleetaudit",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        super().__init__(
            timeout=settings.timeout_seconds,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay_seconds,
            headers=headers,
            transport=transport,
        )
        self.api_url = settings.api_url.rstrip("/")
        self.limiter = RateLimiter(settings.requests_per_second)
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_requests)
        self._cache: dict[str, tuple[int, Any]] = {}
        self._key_locks: dict[str, asyncio.Lock] = {}

    async def _before_request(self) -> None:
        await self.limiter.acquire()

    def _url(self, path: str) -> str:
        return f"{self.api_url}/{path.lstrip('/')}"

    def _raise_for(self, method: str, path: str, response: httpx.Response) -> None:
        if self._is_rate_limited(response):
            self.limiter.pause(self._backoff(self.max_attempts, response))
            raise ProbeError(f"GitHub rate limit exceeded for {path}", response.status_code)
        detail = ""
        try:
            detail = response.json().get("message", "")
        except (ValueError, AttributeError):
            detail = response.text[:200]
        message = f"{method} {path}: HTTP {response.status_code}"
        if detail:
            message += f" | {detail}"
        raise ProbeError(sanitize_error(message), response.status_code)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with self._semaphore:
            return await self.request_with_retry(method, self._url(path), **kwargs)

    async def _get(self, path: str, params: Optional[dict] = None) -> tuple[int, Any]:
        """GET with response caching. Returns (status_code, parsed JSON or None).

        Concurrent callers asking for the same resource wait on one request.
        """
        cache_key = f"{path}?{json.dumps(params or {}, sort_keys=True)}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        lock = self._key_locks.setdefault(cache_key, asyncio.Lock())
        async with lock:
            if cache_key in self._cache:
                return self._cache[cache_key]
            return await self._fetch_and_cache(cache_key, path, params)

    async def _fetch_and_cache(self, cache_key: str, path: str, params: Optional[dict]) -> tuple[int, Any]:
        response = await self._request("GET", path, params=params)
        if response.status_code == 404:
            result: tuple[int, Any] = (404, None)
        elif response.is_success:
            try:
                result = (response.status_code, response.json())
            except ValueError as e:
                raise ProbeError(f"GET {path}: invalid JSON response") from e
        else:
            return response.status_code, response

        self._cache[cache_key] = result
        return result

    def _json(self, method: str, path: str, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProbeError(f"{method} {path}: invalid JSON response", response.status_code) from e

    def _issue_ref(
        self, method: str, path: str, response: httpx.Response, body: str, number: Optional[int] = None
    ) -> IssueRef:
        data = self._json(method, path, response)
        if not isinstance(data, dict):
            raise ProbeError(f"{method} {path}: unexpected response payload", response.status_code)
        number = data.get("number", number)
        if not isinstance(number, int):
            raise ProbeError(f"{method} {path}: response has no issue number", response.status_code)
        return IssueRef(number=number, url=data.get("html_url"), body=data.get("body") or body)

    def _contents_path(self, repo: str, path: str) -> str:
        return f"repos/{repo}/contents/{quote(path, safe='/')}"

    async def file_exists(self, repo: str, path: str) -> bool:
        status, data = await self._get(self._contents_path(repo, path))
        if status == 404:
            return False
        if isinstance(data, httpx.Response):
            self._raise_for("GET", self._contents_path(repo, path), data)
        return True

    async def get_file_content(self, repo: str, path: str) -> Optional[str]:
        status, data = await self._get(self._contents_path(repo, path))
        if status == 404:
            return None
        if isinstance(data, httpx.Response):
            self._raise_for("GET", self._contents_path(repo, path), data)
        if not isinstance(data, dict) or "content" not in data:
            # a directory listing or a submodule
            return None
        try:
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as e:
            raise ProbeError(f"Could not decode {repo}/{path}: {e}") from e

    async def has_dependency(self, repo: str, package: str) -> DependencyCheck:
        content = await self.get_file_content(repo, "package.json")
        if content is None:
            return DependencyCheck(exists=False, has_manifest=False)
        try:
            manifest = json.loads(content)
        except ValueError:
            manifest = None
        if not isinstance(manifest, dict):
            return DependencyCheck(exists=False, has_manifest=True, parse_error=True)
        in_deps = bool((manifest.get("dependencies") or {}).get(package))
        in_dev = bool((manifest.get("devDependencies") or {}).get(package))
        return DependencyCheck(
            exists=in_deps or in_dev,
            has_manifest=True,
            in_dependencies=in_deps,
            in_dev_dependencies=in_dev,
        )

    async def list_workflows(self, repo: str) -> list[str]:
        """Return ``"<path>:<name>"`` for every workflow in the repository."""
        entries: list[str] = []
        path = f"repos/{repo}/actions/workflows"
        for page in range(1, MAX_PAGES + 1):
            status, data = await self._get(path, params={"per_page": PER_PAGE, "page": page})
            if status == 404:
                return entries
            if isinstance(data, httpx.Response):
                self._raise_for("GET", path, data)
            workflows = (data or {}).get("workflows") or []
            for wf in workflows:
                entries.append(f"{wf.get('path', '')}:{wf.get('name', '')}")
            if len(workflows) < PER_PAGE:
                break
        return entries

    async def has_workflow_matching(self, repo: str, patterns: list[str]) -> bool:
        regex = re.compile("|".join(f"(?:{p})" for p in patterns), re.IGNORECASE)
        workflows = await self.list_workflows(repo)
        return any(regex.search(w) for w in workflows)

    async def get_branch_protection(self, repo: str, branch: str) -> BranchProtection:
        path = f"repos/{repo}/branches/{quote(branch, safe='')}/protection"
        status, data = await self._get(path)
        if status == 404:
            return BranchProtection(enabled=False)
        if isinstance(data, httpx.Response):
            if data.status_code == 403 and not self._is_rate_limited(data):
                # reading protection needs admin rights; treat as not visible
                return BranchProtection(enabled=False)
            self._raise_for("GET", path, data)
        data = data or {}
        return BranchProtection(
            enabled=True,
            required_reviews=bool(data.get("required_pull_request_reviews")),
            no_force_push=not bool((data.get("allow_force_pushes") or {}).get("enabled")),
            enforce_admins=bool((data.get("enforce_admins") or {}).get("enabled")),
            required_status_checks=list((data.get("required_status_checks") or {}).get("contexts") or []),
        )

    async def find_open_issue(self, repo: str, title: str) -> Optional[IssueRef]:
        path = f"repos/{repo}/issues"
        for page in range(1, MAX_PAGES + 1):
            # issue listings are not cached; they change as remediation runs
            response = await self._request(
                "GET", path, params={"state": "open", "per_page": PER_PAGE, "page": page}
            )
            if not response.is_success:
                self._raise_for("GET", path, response)
            issues = self._json("GET", path, response) or []
            if not isinstance(issues, list):
                raise ProbeError(f"GET {path}: unexpected response payload", response.status_code)
            for issue in issues:
                if not isinstance(issue, dict) or "pull_request" in issue:
                    continue
                if issue.get("title") == title and isinstance(issue.get("number"), int):
                    return IssueRef(
                        number=issue["number"],
                        url=issue.get("html_url"),
                        body=issue.get("body") or "",
                    )
            if len(issues) < PER_PAGE:
                break
        return None

    async def create_issue(self, repo: str, title: str, body: str, labels: list[str]) -> IssueRef:
        path = f"repos/{repo}/issues"
        response = await self._request("POST", path, json={"title": title, "body": body, "labels": labels})
        if not response.is_success:
            self._raise_for("POST", path, response)
        return self._issue_ref("POST", path, response, body)

    async def update_issue(self, repo: str, number: int, body: str) -> IssueRef:
        path = f"repos/{repo}/issues/{number}"
        response = await self._request("PATCH", path, json={"body": body})
        if not response.is_success:
            self._raise_for("PATCH", path, response)
        return self._issue_ref("PATCH", path, response, body, number=number)
