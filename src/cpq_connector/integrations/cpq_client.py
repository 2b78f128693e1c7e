"""ConnectWise CPQ (Sell) connector.

Purpose
- Provide a small, testable wrapper around the CPQ REST API.
- Keep auth header construction, retries and pagination in one place.

This module is intentionally independent of FastAPI and the operation catalogue.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import requests

from cpq_connector.config.settings import DEFAULT_BASE_URL, CPQSettings
from cpq_connector.integrations.cpq_errors import CPQApiError

logger = logging.getLogger(__name__)

USER_AGENT = "cpq-connector"
CONTENT_TYPE = "application/json; version=1.0"

MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 50

MAX_ATTEMPTS = 3
BACKOFF_BASE_SECONDS = 0.5


@dataclass(frozen=True, slots=True)
class CPQCredentials:
    access_key: str
    public_key: str
    private_key: str
    base_url: str = DEFAULT_BASE_URL
    enable_debug: bool = False
    debug_show_auth_token: bool = False

    @property
    def username(self) -> str:
        return f"{self.access_key.strip()}+{self.public_key.strip()}"

    @classmethod
    def from_settings(cls, settings: CPQSettings) -> "CPQCredentials":
        return cls(
            access_key=settings.access_key,
            public_key=settings.public_key,
            private_key=settings.private_key,
            base_url=settings.base_url,
            enable_debug=settings.enable_debug,
            debug_show_auth_token=settings.debug_show_auth_token,
        )


def build_auth_token(credentials: CPQCredentials) -> str:
    """Return base64(accessKey+publicKey:privateKey) for the Basic scheme."""

    raw = f"{credentials.username}:{credentials.private_key.strip()}"
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def build_headers(credentials: CPQCredentials) -> dict[str, str]:
    return {
        "Authorization": f"Basic {build_auth_token(credentials)}",
        "Content-Type": CONTENT_TYPE,
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }


def clamp_page_size(page_size: int) -> int:
    return max(1, min(int(page_size), MAX_PAGE_SIZE))


def extract_page_items(response: Any, property_name: str | None = None) -> list[Any]:
    """Pull the record list out of one page response.

    Some endpoints wrap records in an object, others return a bare list.
    Anything else counts as an empty page.
    """

    if property_name and isinstance(response, dict):
        items = response.get(property_name)
        if isinstance(items, list):
            return items
    if isinstance(response, list):
        return response
    return []


def _encode_query(query: dict[str, Any] | None) -> dict[str, Any] | None:
    if not query:
        return None
    out: dict[str, Any] = {}
    for k, v in query.items():
        if v is None:
            continue
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        else:
            out[k] = v
    return out


def _decode_body(resp: Any) -> Any:
    text = resp.text or ""
    if not text.strip():
        return None
    try:
        return resp.json()
    except ValueError:
        return text


# (method, url, *, headers, params, body, timeout) -> decoded body; raises CPQApiError.
Transport = Callable[..., Any]


def requests_transport(
    method: str,
    url: str,
    *,
    headers: dict[str, str],
    params: dict[str, Any] | None,
    body: Any,
    timeout: float,
) -> Any:
    """Send one request with `requests`; return the decoded body or raise CPQApiError."""

    try:
        resp = requests.request(
            method,
            url,
            headers=headers,
            params=params,
            json=body,
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise CPQApiError(
            f"Request failed: {e}",
            method=method,
            url=url,
        ) from e

    if resp.status_code >= 400:
        raise CPQApiError(
            f"HTTP {resp.status_code}: {resp.text}",
            status_code=resp.status_code,
            response_body=resp.text,
            method=method,
            url=url,
        )
    return _decode_body(resp)


class CPQClient:
    def __init__(
        self,
        *,
        credentials: CPQCredentials,
        timeout_seconds: float = 30.0,
        max_pages: int | None = None,
        transport: Transport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._credentials = credentials
        self._timeout_seconds = timeout_seconds
        self._max_pages = max_pages
        self._transport = transport or requests_transport
        self._sleep = sleep or time.sleep

    @classmethod
    def from_settings(cls, settings: CPQSettings) -> "CPQClient":
        return cls(
            credentials=CPQCredentials.from_settings(settings),
            timeout_seconds=settings.timeout_seconds,
            max_pages=settings.max_pages,
        )

    @classmethod
    def from_env(cls) -> "CPQClient":
        return cls.from_settings(CPQSettings.from_env())

    @property
    def credentials(self) -> CPQCredentials:
        return self._credentials

    def _url(self, path: str) -> str:
        base = (self._credentials.base_url or DEFAULT_BASE_URL).rstrip("/")
        return f"{base}{path if path.startswith('/') else '/' + path}"

    def _masked(self, headers: dict[str, str]) -> dict[str, str]:
        masked = dict(headers)
        if not self._credentials.debug_show_auth_token:
            masked["Authorization"] = "Basic ***"
        return masked

    def execute(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
    ) -> Any:
        """Issue one authenticated call, retrying 429/5xx with exponential backoff."""

        method = method.upper()
        url = self._url(path)
        params = _encode_query(query)
        headers = build_headers(self._credentials)
        debug = self._credentials.enable_debug

        for attempt in range(MAX_ATTEMPTS):
            if debug:
                logger.info(
                    f"[CPQ] Request {method} {url} params={params} "
                    f"headers={self._masked(headers)} username={self._credentials.username}"
                )
            try:
                response = self._transport(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    body=body,
                    timeout=self._timeout_seconds,
                )
            except CPQApiError as e:
                e.attempts = attempt + 1
                if debug:
                    logger.info(
                        f"[CPQ] Request failed {method} {url} status={e.status_code} "
                        f"message={e} body={e.response_body}"
                    )
                if e.retryable and attempt < MAX_ATTEMPTS - 1:
                    delay = BACKOFF_BASE_SECONDS * (2**attempt)
                    logger.warning(
                        f"[CPQ] HTTP {e.status_code} on {method} {url}; retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{MAX_ATTEMPTS})"
                    )
                    self._sleep(delay)
                    continue
                raise

            if debug:
                body_type = "array" if isinstance(response, list) else type(response).__name__
                logger.info(f"[CPQ] Response OK {url} body_type={body_type}")
            return response

        raise CPQApiError(f"Request failed after {MAX_ATTEMPTS} attempts", method=method, url=url)

    def fetch_all(
        self,
        method: str,
        path: str,
        *,
        property_name: str | None = None,
        body: Any = None,
        query: dict[str, Any] | None = None,
        limit: int | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int | None = None,
    ) -> list[Any]:
        """Walk a paged list endpoint from page 1.

        Stops on the first short page, or once `limit` records are collected
        (the result is then truncated to exactly `limit`).
        """

        page_size = clamp_page_size(page_size)
        if limit is not None and limit <= 0:
            return []
        max_pages = max_pages if max_pages is not None else self._max_pages
        if max_pages is not None and max_pages < 1:
            raise ValueError(f"max_pages must be at least 1, got {max_pages}")

        records: list[Any] = []
        page = 1
        while True:
            if max_pages is not None and page > max_pages:
                logger.warning(
                    f"[CPQ] Stopped paging {path} after {max_pages} pages "
                    f"({len(records)} records); raise CPQ_MAX_PAGES to fetch more"
                )
                break

            response = self.execute(
                method,
                path,
                body=body,
                query={**(query or {}), "page": page, "pageSize": page_size},
            )
            items = extract_page_items(response, property_name)
            records.extend(items)

            if limit is not None and len(records) >= limit:
                return records[:limit]
            if len(items) < page_size:
                break
            page += 1

        return records

    def test_connection(self) -> bool:
        """Cheap authenticated call used to validate credentials."""

        self.execute("GET", "/api/quotes", query={"page": 1, "pageSize": 1})
        return True
