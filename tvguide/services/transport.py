"""
Upstream transport

Transport is the one seam between the orchestrator and the network.
HttpTransport implements it on httpx: token login, JSON / NDJSON response
parsing, and retry with exponential backoff for transient failures.
"""
from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from enum import IntEnum
from typing import Any, Protocol

import httpx

from tvguide.exceptions import (
    ApiResponseError,
    AuthenticationError,
    ConnectivityError,
    HttpStatusError,
    ServiceOffline,
)
from tvguide.services.fetch_types import BatchRequest
from tvguide.utils.raw_record import RawRecord


logger = logging.getLogger(__name__)

API_VERSION = "20141201"
DEFAULT_BASE_URL = "https://json.schedulesdirect.org"
DEFAULT_USER_AGENT = "tvguide-client/1.0"


class ResponseCode(IntEnum):
    """Upstream response codes this client reacts to"""
    NOT_PROVIDED = -1
    OK = 0
    INVALID_JSON = 1001
    INVALID_LINEUP = 2100
    LINEUP_NOT_FOUND = 2101
    SERVICE_OFFLINE = 3000
    INVALID_USER = 4003
    TOKEN_EXPIRED = 4006
    NO_LINEUPS = 4102
    INVALID_PROGID = 6000
    PROGRAMID_QUEUED = 6001
    SCHEDULE_QUEUED = 7000


class Transport(Protocol):
    def submit(self, request: BatchRequest) -> list[RawRecord]: ...

    def download(self, url: str) -> bytes: ...


LINEUP_NOT_FOUND_CODES = frozenset({ResponseCode.INVALID_LINEUP, ResponseCode.LINEUP_NOT_FOUND})


def hash_password(password: str) -> str:
    return hashlib.sha1(password.encode("utf-8")).hexdigest()


def parse_body(text: str) -> RawRecord:
    """
    Parse a response body: one JSON document, or a list for NDJSON.

    Raises:
        ValueError: If the body is neither JSON nor NDJSON
    """
    stripped = text.strip()
    if not stripped:
        return []
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return [json.loads(line) for line in stripped.splitlines() if line.strip()]


def parse_records(text: str) -> list[RawRecord]:
    """
    Parse a response body into a list of records.

    A top-level array yields its elements, a single object a one-element
    list, and newline-delimited JSON one record per non-blank line.
    """
    body = parse_body(text)
    return body if isinstance(body, list) else [body]


def _error_code(document: Any) -> int:
    if not isinstance(document, dict) or "code" not in document:
        return ResponseCode.OK
    try:
        return int(document["code"])
    except (TypeError, ValueError):
        return ResponseCode.NOT_PROVIDED


def raise_for_api_error(document: Any) -> None:
    """Raise the matching ApiResponseError for a top-level error document."""
    code = _error_code(document)
    if code == ResponseCode.OK:
        return
    message = str(document.get("message") or document.get("response") or f"Upstream error {code}")
    if code == ResponseCode.SERVICE_OFFLINE:
        raise ServiceOffline(message, code)
    raise ApiResponseError(message, code)


class HttpTransport:
    """
    Transport over an httpx.Client.

    Safe to share between threads: httpx.Client is thread-safe and the
    session token is guarded by a lock.
    """

    def __init__(
        self,
        username: str,
        password: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = API_VERSION,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.username = username
        self._password_hash = hash_password(password)
        self.api_root = f"{base_url.rstrip('/')}/{api_version}"
        self.api_version = api_version
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None
        self._headers = {"User-Agent": user_agent, "Accept": "application/json"}
        self._token: str | None = None
        self._token_lock = threading.Lock()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def token(self) -> str | None:
        return self._token

    def url_for(self, path: str) -> str:
        """Absolute URL of a path; uris returned by the upstream already carry the version."""
        path = path.lstrip("/")
        version_prefix = f"{self.api_version}/"
        if path.startswith(version_prefix):
            path = path[len(version_prefix):]
        return f"{self.api_root}/{path}"

    def _login(self) -> str:
        request = BatchRequest(
            "POST",
            "token",
            body={"username": self.username, "password": self._password_hash},
            authenticated=False,
        )
        try:
            document = self._send(request, token=None)
            raise_for_api_error(document)
        except ServiceOffline:
            raise
        except ApiResponseError as exc:
            raise AuthenticationError(str(exc), exc.code) from exc
        token = document.get("token") if isinstance(document, dict) else None
        if not token:
            raise AuthenticationError("Login response carried no token", ResponseCode.NOT_PROVIDED)
        logger.info(f"Authenticated with upstream as {self.username}")
        return token

    def _ensure_token(self, stale: str | None = None) -> str:
        with self._token_lock:
            if self._token is None or self._token == stale:
                self._token = self._login()
            return self._token

    def submit(self, request: BatchRequest) -> list[RawRecord]:
        """
        Send one request and return its records.

        A top-level error document raises; per-record error objects inside
        an array are returned for the decoder to report.

        Raises:
            ConnectivityError: If the upstream could not be reached
            HttpStatusError: On a non-success HTTP status without an error document
            ApiResponseError: On an upstream error document
        """
        token = self._ensure_token() if request.authenticated else None
        try:
            body = self._send(request, token)
            raise_for_api_error(body)
        except ApiResponseError as exc:
            if exc.code != ResponseCode.TOKEN_EXPIRED or not request.authenticated:
                raise
            logger.info("Session token expired, logging in again")
            body = self._send(request, self._ensure_token(stale=token))
            raise_for_api_error(body)
        return body if isinstance(body, list) else [body]

    def _exchange(self, method: str, url: str, headers: dict[str, str], **kwargs: Any) -> httpx.Response:
        """
        Perform one HTTP exchange with exponential backoff retry logic.

        Retries on transient network errors (timeouts, connection errors)
        and 5xx responses. Does NOT retry on 4xx responses.

        Returns:
            The first response below 500; callers handle 4xx themselves
        """
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.request(method, url, headers=headers, **kwargs)
            except httpx.TransportError as e:
                # Transient network errors - retry
                last_error = ConnectivityError(f"{method} {url} failed: {type(e).__name__}: {e}")
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_factor ** attempt
                    logger.warning(
                        f"Request attempt {attempt + 1}/{self.max_retries} failed (transient error): "
                        f"{type(e).__name__}. Retrying in {wait_time:.1f}s..."
                    )
                    self._sleep(wait_time)
                else:
                    logger.error(f"Request failed after {self.max_retries} attempts (transient error)")
                continue

            if response.status_code < 500:
                return response

            # 5xx server error - retry
            last_error = HttpStatusError(
                f"HTTP {response.status_code} for {method} {url}", response.status_code, response.text
            )
            if attempt < self.max_retries - 1:
                wait_time = self.backoff_factor ** attempt
                logger.warning(
                    f"Request attempt {attempt + 1}/{self.max_retries} failed "
                    f"(HTTP {response.status_code} server error). Retrying in {wait_time:.1f}s..."
                )
                self._sleep(wait_time)
            else:
                logger.error(f"Request failed after {self.max_retries} attempts (HTTP {response.status_code})")

        # If we exhausted all retries, raise the last error
        if last_error:
            raise last_error
        raise ConnectivityError(f"{method} {url} failed after {self.max_retries} attempts")

    def _send(self, request: BatchRequest, token: str | None) -> RawRecord:
        """Perform an API request and return its parsed body."""
        url = self.url_for(request.path)
        headers = dict(self._headers)
        if token:
            headers["token"] = token

        response = self._exchange(
            request.method, url, headers, json=request.body, params=request.params
        )
        if response.status_code < 400:
            return self._parse(response)

        details = response.text
        # The upstream usually explains a 4xx with an error document
        try:
            body = parse_body(details)
        except ValueError:
            body = None
        if _error_code(body) != ResponseCode.OK:
            raise_for_api_error(body)
        logger.error(f"HTTP {response.status_code} (client error) for {request.method} {url}")
        raise HttpStatusError(
            f"HTTP {response.status_code} for {request.method} {url}", response.status_code, details
        )

    def download(self, url: str) -> bytes:
        """
        Download a binary resource such as a station logo.

        Args:
            url: Absolute URL, or a path relative to the API root

        Raises:
            ConnectivityError: If the host could not be reached
            HttpStatusError: On a non-success HTTP status
        """
        if "://" not in url:
            url = self.url_for(url)
        logger.info(f"Downloading file from {url}...")
        response = self._exchange("GET", url, {"User-Agent": self._headers["User-Agent"]})
        if response.status_code >= 400:
            logger.error(f"HTTP {response.status_code} (client error) for GET {url}")
            raise HttpStatusError(f"HTTP {response.status_code} for GET {url}", response.status_code, response.text)
        logger.info(f"Downloaded {len(response.content)} bytes from {url}")
        return response.content

    @staticmethod
    def _parse(response: httpx.Response) -> RawRecord:
        try:
            return parse_body(response.text)
        except ValueError as exc:
            raise ApiResponseError(
                f"Unparseable response from {response.request.url}: {exc}", ResponseCode.INVALID_JSON
            ) from exc
