"""Azure DevOps REST client.

Handles authentication, URL resolution, retry with exponential backoff and the
translation of HTTP failures into UpstreamError subclasses. Classification
into user-facing errors happens later, at the tool layer.
"""
import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .errors import UpstreamError, UpstreamHTTPError, UpstreamTransportError, redact

logger = logging.getLogger("ado-core.client")

CONTINUATION_HEADER = "x-ms-continuationtoken"
JSON_PATCH = "application/json-patch+json"
MAX_PAGES = 50


class RetryPolicy(BaseModel):
    """Retry tuning; read-only once the client is built."""

    max_retries: int = Field(3, ge=1)  # total attempts
    delay_ms: int = Field(1000, ge=0)
    backoff_factor: float = Field(2.0, ge=1.0)

    model_config = ConfigDict(frozen=True)


def build_auth_header(token: str, scheme: str = "basic") -> str:
    """Authorization header value for a personal access token."""
    if scheme == "bearer":
        return f"Bearer {token}"
    encoded = base64.b64encode(f":{token}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


class AdoApiClient:
    """Authenticated client for one organization.

    Usage:
        async with AdoApiClient.from_settings(settings) as client:
            projects = await client.get_list("projects")
    """

    def __init__(
        self,
        organization: str,
        token: str,
        project: Optional[str] = None,
        base_url: str = "https://dev.azure.com",
        api_version: str = "7.0",
        auth_scheme: str = "basic",
        retry: Optional[RetryPolicy] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        log: Optional[logging.Logger] = None,
    ):
        self.organization = organization
        self.default_project = project or None
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._log = log or logger
        auth_header = build_auth_header(token, auth_scheme)
        self._secrets = (token, auth_header.split(" ", 1)[1])
        self._http = httpx.AsyncClient(
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": auth_header,
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "AdoApiClient":
        return cls(
            organization=settings.organization,
            token=settings.pat.get_secret_value(),
            project=settings.project,
            base_url=settings.api_url,
            api_version=settings.api_version,
            auth_scheme=settings.auth_scheme,
            retry=RetryPolicy(
                max_retries=settings.max_retries,
                delay_ms=settings.delay_ms,
                backoff_factor=settings.backoff_factor,
            ),
            timeout=settings.timeout_seconds,
            **kwargs,
        )

    async def __aenter__(self) -> "AdoApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # URL resolution
    # ------------------------------------------------------------------

    def resolve_url(self, resource: str, project: Optional[str] = None) -> str:
        """<base>/<organization>[/<project>]/_apis/<resource>"""
        parts = [self.base_url, quote(self.organization, safe="")]
        if project:
            parts.append(quote(project, safe=""))
        parts.append("_apis")
        parts.append(resource.strip("/"))
        return "/".join(parts)

    def _scope(self, project: Optional[str], use_default_project: bool) -> Optional[str]:
        if project:
            return project
        return self.default_project if use_default_project else None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        resource: str,
        *,
        project: Optional[str] = None,
        use_default_project: bool = False,
        params: Optional[dict] = None,
        json: Any = None,
        content_type: Optional[str] = None,
    ) -> Any:
        """Perform one call (with retries) and return the parsed JSON body."""
        response = await self._send(method, resource, project, use_default_project, params, json, content_type)
        return self._parse(response)

    async def get(self, resource: str, **kwargs: Any) -> Any:
        return await self.request("GET", resource, **kwargs)

    async def post(self, resource: str, **kwargs: Any) -> Any:
        return await self.request("POST", resource, **kwargs)

    async def get_list(self, resource: str, **kwargs: Any) -> list:
        """GET a collection; accepts both {count, value} and bare arrays."""
        return normalize_list(await self.get(resource, **kwargs))

    async def get_all(
        self,
        resource: str,
        *,
        project: Optional[str] = None,
        use_default_project: bool = False,
        params: Optional[dict] = None,
    ) -> list:
        """GET a whole collection, following x-ms-continuationtoken pages."""
        items: list = []
        token: Optional[str] = None
        for _ in range(MAX_PAGES):
            query = dict(params or {})
            if token:
                query["continuationToken"] = token
            page, token = await self.get_page(
                resource, project=project, use_default_project=use_default_project, params=query
            )
            items.extend(page)
            if not token:
                break
        else:
            self._log.warning(f"Stopped following continuation pages of {resource} after {MAX_PAGES} pages")
        return items

    async def get_page(
        self,
        resource: str,
        *,
        project: Optional[str] = None,
        use_default_project: bool = False,
        params: Optional[dict] = None,
    ) -> tuple[list, Optional[str]]:
        """GET one page of a natively paginated collection.

        Returns:
            (items, upstream continuation token or None)
        """
        response = await self._send("GET", resource, project, use_default_project, params, None, None)
        token = response.headers.get(CONTINUATION_HEADER) or None
        return normalize_list(self._parse(response)), token

    async def _send(
        self,
        method: str,
        resource: str,
        project: Optional[str],
        use_default_project: bool,
        params: Optional[dict],
        json: Any,
        content_type: Optional[str],
    ) -> httpx.Response:
        url = self.resolve_url(resource, self._scope(project, use_default_project))
        query = {k: v for k, v in (params or {}).items() if v is not None}
        query["api-version"] = self.api_version
        headers = {"Content-Type": content_type} if content_type else None

        async def attempt() -> httpx.Response:
            try:
                response = await self._http.request(method, url, params=query, json=json, headers=headers)
            except httpx.TimeoutException as e:
                raise UpstreamTransportError(f"Request timed out: {method} {url}", timed_out=True) from e
            except httpx.TransportError as e:
                raise UpstreamTransportError(
                    redact(f"Connection failed: {type(e).__name__}: {e}", self._secrets)
                ) from e

            self._log.debug(f"Response: {response.status_code} {method} {url}")
            if response.status_code >= 400:
                raise self._http_error(response, method, url)
            return response

        return await self._with_retry(attempt, f"{method} {url}")

    async def _with_retry(self, operation: Callable[[], Awaitable[httpx.Response]], context: str) -> httpx.Response:
        """Run operation, retrying transient failures with exponential backoff.

        Terminal failures (400, 401, 403 and other non-429 4xx) are raised on
        the first attempt. After the last attempt the last error is raised.
        """
        policy = self.retry
        delay = policy.delay_ms / 1000
        for attempt in range(1, policy.max_retries):
            self._log.debug(f"Request: {context} (attempt {attempt}/{policy.max_retries})")
            try:
                return await operation()
            except UpstreamError as e:
                if not e.retryable:
                    raise
                self._log.warning(f"Attempt {attempt} of {context} failed ({e.message}), retrying in {delay:.3f}s")
                await self._sleep(delay)
                delay *= policy.backoff_factor

        self._log.debug(f"Request: {context} (attempt {policy.max_retries}/{policy.max_retries})")
        return await operation()

    def _http_error(self, response: httpx.Response, method: str, url: str) -> UpstreamHTTPError:
        body: dict = {}
        upstream_message = response.text
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            body = data
            upstream_message = data.get("message") or upstream_message
        upstream_message = redact(upstream_message or response.reason_phrase or "no details", self._secrets)
        return UpstreamHTTPError(
            status_code=response.status_code,
            message=f"Azure DevOps API error ({response.status_code}): {upstream_message}",
            body=body,
            method=method,
            url=url,
        )

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


def normalize_list(payload: Any) -> list:
    """Collections come back as {count, value: [...]} or as a bare array."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        value = payload.get("value")
        if isinstance(value, list):
            return value
        if not payload:
            return []
    raise UpstreamError(f"Unexpected list payload of type {type(payload).__name__}")
