"""HTTP adapter for release API operations."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..errors import ConflictFailure, NetworkFailure, TimeoutFailure
from ..models import DEFAULT_REQUEST_TIMEOUT, ReleaseConfig, ReleaseDescriptor, RequestOptions
from ..protocols import IRequestExecutor

logger = logging.getLogger(__name__)

MAX_ERROR_DETAIL = 500


@dataclass
class RequestSpec:
    """Description of one HTTP request, before it is bound to a client."""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    json: Any = None
    data: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, Any]] = None
    # Extra keyword arguments for httpx (params, cookies, extensions...)
    options: Dict[str, Any] = field(default_factory=dict)


def combine_request_options(spec: RequestSpec, request_options: RequestOptions) -> RequestSpec:
    """
    Merge caller-supplied request options into a request.

    ``request_options`` is either a mapping or a callable receiving the request
    and returning a mapping. Headers are merged with the request's own headers
    winning; every other value the request already sets is kept as is.
    """
    if callable(request_options):
        request_options = request_options(spec)
    options = dict(request_options or {})
    if not options:
        return spec

    headers = dict(options.pop("headers", None) or {})
    headers.update(spec.headers)

    overrides: Dict[str, Any] = {"headers": headers}
    for name in ("json", "data", "files"):
        value = options.pop(name, None)
        if value is not None and getattr(spec, name) is None:
            overrides[name] = value
    options.pop("method", None)
    options.pop("url", None)

    extra = dict(options)
    extra.update(spec.options)
    overrides["options"] = extra
    return replace(spec, **overrides)


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json()
    except Exception:
        detail = response.text
    text = str(detail)
    if len(text) > MAX_ERROR_DETAIL:
        text = text[:MAX_ERROR_DETAIL] + "..."
    return text


class HTTPRequestExecutor:
    """
    Performs one HTTP call per ``execute`` with a caller-supplied timeout.

    No retries and no interpretation beyond success/failure: 2xx responses
    are returned, everything else raises a NetworkFailure subclass.

    Implements IRequestExecutor protocol.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def execute(self, spec: RequestSpec, timeout: Optional[float] = None) -> httpx.Response:
        if not self._client:
            raise RuntimeError("HTTPRequestExecutor not initialized. Use 'async with' context.")

        timeout = self._timeout if timeout is None else timeout
        try:
            request = self._client.build_request(
                spec.method,
                spec.url,
                headers=spec.headers,
                json=spec.json,
                data=spec.data,
                files=spec.files,
                **spec.options,
            )
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            # e.g. an invalid URL or a non-ASCII header value
            raise NetworkFailure(
                f"Could not build request {spec.method} {spec.url}: {exc}",
                url=spec.url,
            ) from exc

        # wait_for owns the timer: it is cancelled on every exit path, and
        # on expiry the in-flight send is cancelled before we return.
        try:
            response = await asyncio.wait_for(self._client.send(request), timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutFailure(
                f"Request timed out after {timeout:g}s on {spec.method} {spec.url}",
                url=spec.url,
                timeout=timeout,
            ) from exc
        except httpx.TimeoutException as exc:
            raise TimeoutFailure(
                f"Request timed out on {spec.method} {spec.url}: {exc}",
                url=spec.url,
                timeout=timeout,
            ) from exc
        except httpx.RequestError as exc:
            message = str(exc) or type(exc).__name__
            raise NetworkFailure(
                f"Request failed on {spec.method} {spec.url}: {message}",
                url=spec.url,
            ) from exc
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            raise NetworkFailure(
                f"Could not send request {spec.method} {spec.url}: {exc}",
                url=spec.url,
            ) from exc

        if response.is_success:
            return response

        detail = _error_detail(response)
        message = f"API error {response.status_code} on {spec.method} {spec.url}: {detail}"
        if response.status_code == 409:
            raise ConflictFailure(message, url=spec.url)
        raise NetworkFailure(message, status_code=response.status_code, url=spec.url)


class ReleaseAPIClient:
    """
    Builds the create-release and upload-file requests.

    Implements IReleaseAPI protocol.
    """

    def __init__(self, executor: IRequestExecutor, config: ReleaseConfig):
        self._executor = executor
        self._config = config

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._config.api_key}"}

    def release_url(self) -> str:
        return f"{self._config.releases_url()}/"

    def files_url(self, version: str) -> str:
        return f"{self._config.releases_url()}/{quote(version, safe='')}/files/"

    async def create_release(self, descriptor: ReleaseDescriptor) -> httpx.Response:
        headers = self._auth_headers()
        headers["Content-Type"] = "application/json"
        spec = RequestSpec(
            method="POST",
            url=self.release_url(),
            headers=headers,
            json=descriptor.body,
        )
        spec = combine_request_options(spec, self._config.create_release_request_options)
        logger.debug(f"Creating release {descriptor.version} for {', '.join(descriptor.projects)}")
        return await self._executor.execute(spec, self._config.timeout)

    async def upload_file(self, version: str, source_path: Path, remote_name: str) -> httpx.Response:
        source_path = Path(source_path)
        with source_path.open("rb") as stream:
            spec = RequestSpec(
                method="POST",
                url=self.files_url(version),
                headers=self._auth_headers(),
                data={"name": remote_name},
                files={"file": (source_path.name, stream)},
            )
            spec = combine_request_options(spec, self._config.upload_file_request_options)
            return await self._executor.execute(spec, self._config.timeout)
