"""HTTP fetching of property values and forwarding of rendered output."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

import aiohttp
from aiohttp import BasicAuth, ClientError, ClientSession, ClientTimeout
from jsonpath_ng.exceptions import JSONPathError
from jsonpath_ng.ext import parse as parse_jsonpath

from ..config import HttpSettings, get_settings
from ..exceptions import HttpFetchError, HttpForwardError

logger = logging.getLogger(__name__)

RequestSpec = Union[str, Dict[str, Any]]


@dataclass
class HttpResponse:
    """Response from an outbound request."""

    status: int
    body: str
    headers: Dict[str, str] = field(default_factory=dict)

    def data(self) -> Any:
        """Body parsed as JSON, or the raw text if it is not JSON."""
        try:
            return json.loads(self.body)
        except ValueError:
            return self.body


def _to_basic_auth(auth: Any) -> Optional[BasicAuth]:
    if auth is None:
        return None
    if isinstance(auth, str):
        username, _, password = auth.partition(":")
        return BasicAuth(username, password)
    return BasicAuth(auth.get("username", ""), auth.get("password", ""))


def normalize_request_spec(spec: RequestSpec) -> Dict[str, Any]:
    """Turn a URL or request specification into aiohttp request arguments.

    Request specifications may use node-style fields, e.g.
    ``{"host": "example.com", "port": 8080, "path": "/data", "auth": "user:pass"}``.

    Returns:
        Dictionary with ``method``, ``url`` and optional ``headers``, ``auth``,
        ``json`` or ``data`` keys
    """
    if isinstance(spec, str):
        return {"method": "GET", "url": spec}

    config = dict(spec)
    host = config.pop("host", None)
    hostname = config.pop("hostname", None)
    port = config.pop("port", None)
    protocol = config.pop("protocol", None)
    path = config.pop("pathname", None) or config.pop("path", None)
    config.pop("path", None)

    if host is not None or path is not None:
        if host is None:
            host = f"{hostname}:{port}" if hostname and port else (hostname or "")
        scheme = (protocol or "http").rstrip(":")
        config["url"] = f"{scheme}://{host}{path or ''}"

    if "url" not in config:
        raise ValueError(f"Request specification needs a url or host: {spec}")

    request: Dict[str, Any] = {
        "method": str(config.pop("method", "GET")).upper(),
        "url": config.pop("url"),
    }
    if "headers" in config:
        request["headers"] = dict(config.pop("headers"))
    auth = _to_basic_auth(config.pop("auth", None))
    if auth is not None:
        request["auth"] = auth
    if "data" in config:
        body = config.pop("data")
        request["json" if isinstance(body, (dict, list)) else "data"] = body

    return request


def project(value: Any, path_query: Optional[str]) -> Any:
    """Pick the first JSONPath match from a value, or the value itself without a query."""
    if not path_query:
        return value
    try:
        matches = parse_jsonpath(path_query).find(value)
    except JSONPathError as e:
        raise ValueError(f"Invalid pathQuery {path_query}: {e}") from e
    return matches[0].value if matches else None


class HttpClient:
    """Thin aiohttp wrapper used for template HTTP operations.

    Example:
        async with HttpClient() as client:
            response = await client.request("https://example.com/data.json")
    """

    def __init__(self, settings: Optional[HttpSettings] = None) -> None:
        self.settings = settings or get_settings().http
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "HttpClient":
        connector = aiohttp.TCPConnector(ssl=None if self.settings.verify_ssl else False)
        self._session = ClientSession(
            connector=connector,
            timeout=ClientTimeout(total=self.settings.timeout),
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def request(self, spec: RequestSpec, **overrides: Any) -> HttpResponse:
        """Issue a request.

        Args:
            spec: URL or request specification
            **overrides: Extra aiohttp request arguments, winning over ``spec``

        Raises:
            aiohttp.ClientError: On transport failure or an error status
        """
        if self._session is None:
            raise RuntimeError("HttpClient must be used as an async context manager")

        kwargs = normalize_request_spec(spec)
        headers = {**kwargs.pop("headers", {}), **overrides.pop("headers", {})}
        if "data" in overrides or "json" in overrides:
            kwargs.pop("data", None)
            kwargs.pop("json", None)
        kwargs.update(overrides)
        if headers:
            kwargs["headers"] = headers
        method = kwargs.pop("method")
        url = kwargs.pop("url")
        logger.debug(f"{method} {url}")

        async with self._session.request(method, url, raise_for_status=True, **kwargs) as response:
            return HttpResponse(
                status=response.status,
                body=await response.text(),
                headers=dict(response.headers),
            )


async def fetch_property_values(
    properties: Dict[str, Dict[str, Any]], client: HttpClient
) -> Dict[str, Any]:
    """Fetch the value of every property that declares a ``url``.

    Requests run concurrently; results are keyed by property name.

    Raises:
        HttpFetchError: If any request fails, naming its URL
    """

    async def fetch_one(name: str, prop_def: Dict[str, Any]) -> Any:
        url = normalize_request_spec(prop_def["url"])["url"]
        try:
            response = await client.request(prop_def["url"])
            return project(response.data(), prop_def.get("pathQuery"))
        except (ClientError, asyncio.TimeoutError, ValueError) as e:
            raise HttpFetchError(f"error loading {url}:\n{e}", resource=url) from e

    names = [name for name, prop_def in properties.items() if prop_def.get("url")]
    values = await asyncio.gather(*(fetch_one(name, properties[name]) for name in names))
    return dict(zip(names, values))


async def forward_rendered(
    rendered: str, destination: RequestSpec, content_type: str, client: HttpClient
) -> HttpResponse:
    """POST rendered output to a destination.

    Raises:
        HttpForwardError: If the request fails
    """
    url = normalize_request_spec(destination)["url"]
    try:
        return await client.request(
            destination,
            method="POST",
            data=rendered.encode("utf-8"),
            headers={"Content-Type": content_type},
        )
    except (ClientError, asyncio.TimeoutError) as e:
        raise HttpForwardError(f"error forwarding to {url}: {e}", resource=url) from e
