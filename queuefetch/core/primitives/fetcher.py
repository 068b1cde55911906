"""
Fetcher primitive: performs the HTTP call for one queued task.

This is an atomic primitive that does ONE thing:
turn a task into exactly one HTTP request and return the decoded
response body together with the response headers.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from queuefetch.core.exceptions import FetchError, InvalidTaskError

logger = logging.getLogger(__name__)


class HttpMethod(StrEnum):
    """Request methods a task may ask for."""
    GET = "get"
    DELETE = "delete"
    HEAD = "head"
    OPTIONS = "options"
    POST = "post"
    PUT = "put"
    PATCH = "patch"
    POST_FORM = "postForm"
    PUT_FORM = "putForm"
    PATCH_FORM = "patchForm"
    REQUEST = "request"

    @classmethod
    def _missing_(cls, value: object) -> "HttpMethod | None":
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None

    @property
    def takes_body(self) -> bool:
        """True if params["data"] is sent as the request body."""
        return self in (
            HttpMethod.POST,
            HttpMethod.PUT,
            HttpMethod.PATCH,
            HttpMethod.POST_FORM,
            HttpMethod.PUT_FORM,
            HttpMethod.PATCH_FORM,
        )

    @property
    def is_form(self) -> bool:
        """True if the body is sent as form fields."""
        return self.value.endswith("Form")

    @property
    def verb(self) -> str:
        """HTTP verb sent on the wire (generic requests carry their own)."""
        return self.value.removesuffix("Form").upper()


@dataclass(frozen=True)
class FetchTask:
    """Structured description of one fetch."""
    url: str
    method: HttpMethod = HttpMethod.GET
    params: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.method, HttpMethod):
            object.__setattr__(self, "method", _parse_method(self.method))

    @classmethod
    def from_task(cls, task: "Task") -> "FetchTask":
        """Normalize a queued task (URL string, mapping or FetchTask)."""
        if isinstance(task, FetchTask):
            return task

        if isinstance(task, str):
            if not task:
                raise InvalidTaskError("Task URL must not be empty")
            return cls(url=task)

        if isinstance(task, Mapping):
            url = task.get("url")
            if not isinstance(url, str) or not url:
                raise InvalidTaskError(f"Task has no usable url: {task!r}")

            params = task.get("params") or {}
            if not isinstance(params, Mapping):
                raise InvalidTaskError(f"Task params must be a mapping for {url}")

            return cls(
                url=url,
                method=_parse_method(task.get("method") or HttpMethod.GET),
                params=params,
            )

        raise InvalidTaskError(f"Unsupported task type: {type(task).__name__}")


Task = str | FetchTask | Mapping[str, Any]


@dataclass
class FetchResponse:
    """Decoded response of a single fetch."""
    url: str
    status_code: int
    data: Any
    headers: httpx.Headers

    @property
    def ok(self) -> bool:
        """True if request was successful (2xx status)."""
        return 200 <= self.status_code < 300


@dataclass
class FetcherConfig:
    """Configuration for Fetcher."""
    timeout: float = 30.0
    user_agent: str = "queuefetch/0.1"
    extra_headers: dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True
    verify_ssl: bool = True


def _parse_method(value: Any) -> HttpMethod:
    try:
        return HttpMethod(value)
    except ValueError as e:
        raise InvalidTaskError(f"Unknown HTTP method: {value!r}") from e


def _encode_body(data: Any, form: bool, files: Any = None) -> dict[str, Any]:
    """Map a task body onto httpx request arguments."""
    if form:
        if isinstance(data, (str, bytes)):
            return {"content": data}
        encoded: dict[str, Any] = {"data": data}
        if files:
            encoded["files"] = files
        return encoded

    if isinstance(data, (str, bytes)):
        return {"content": data}

    return {"json": data}


def build_request(client: httpx.AsyncClient, task: FetchTask) -> httpx.Request:
    """
    Build the single HTTP request for a task.

    Body-less methods take params wholesale as request options. Body methods
    send params["data"] as the body and use the rest as options. A generic
    request merges the url into one options object that may also carry
    "method" and "data".
    """
    options = dict(task.params)
    url = task.url
    body: Any = None
    has_body = False
    form = False

    if task.method is HttpMethod.REQUEST:
        options = {**options, "url": url}
        url = options.pop("url")
        verb = _parse_method(options.pop("method", HttpMethod.GET)).verb
        if "data" in options:
            body = options.pop("data")
            has_body = True
    else:
        verb = task.method.verb
        if task.method.takes_body:
            form = task.method.is_form
            if "data" in options:
                body = options.pop("data")
                has_body = True

    kwargs: dict[str, Any] = {}
    if options.get("params") is not None:
        kwargs["params"] = options["params"]
    if options.get("headers"):
        kwargs["headers"] = options["headers"]
    if options.get("timeout") is not None:
        kwargs["timeout"] = options["timeout"]
    if has_body and body is not None:
        kwargs.update(_encode_body(body, form, options.get("files")))
    elif form and options.get("files"):
        kwargs["files"] = options["files"]

    return client.build_request(verb, url, **kwargs)


def decode_body(response: httpx.Response) -> Any:
    """Parse JSON responses, return text for everything else."""
    if not response.content:
        return ""

    content_type = response.headers.get("content-type", "").lower()
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            logger.debug(f"Invalid JSON from {response.url}, returning text")

    return response.text


class Fetcher:
    """
    HTTP client used by the dispatcher, one request per task.

    Usage:
        async with Fetcher() as fetcher:
            response = await fetcher.fetch("https://example.com")
            print(response.data)

    Outside of an ``async with`` block every fetch opens its own client.
    """

    def __init__(
        self,
        config: FetcherConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or FetcherConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._depth = 0

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.config.timeout,
            follow_redirects=self.config.follow_redirects,
            verify=self.config.verify_ssl,
            headers={
                "User-Agent": self.config.user_agent,
                **self.config.extra_headers,
            },
            transport=self._transport,
        )

    async def __aenter__(self) -> "Fetcher":
        if self._client is None:
            self._client = self._create_client()
        self._depth += 1
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._depth -= 1
        if self._depth == 0 and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()

    async def fetch(self, task: Task) -> FetchResponse:
        """Fetch a task, raising FetchError on transport or HTTP errors."""
        fetch_task = FetchTask.from_task(task)

        if self._client is not None:
            return await self._send(self._client, fetch_task)

        async with self._create_client() as client:
            return await self._send(client, fetch_task)

    async def _send(self, client: httpx.AsyncClient, task: FetchTask) -> FetchResponse:
        try:
            request = build_request(client, task)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise FetchError(task.url, str(e) or type(e).__name__) from e

        try:
            response = await client.send(request)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise FetchError(
                task.url,
                f"Request failed with status code {status_code}",
                status_code=status_code,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(task.url, str(e) or type(e).__name__) from e

        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            data=decode_body(response),
            headers=response.headers,
        )


async def fetch(task: Task, config: FetcherConfig | None = None) -> FetchResponse:
    """Fetch a single task (convenience function)."""
    fetcher = Fetcher(config)
    return await fetcher.fetch(task)
