"""REST client shared by the exchange adapters."""

from __future__ import annotations

import json
import logging
import random
import ssl
import time
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode, urlsplit
from urllib.request import Request, urlopen

from dca_client.auth import ApiCredentials, RequestSigner, serialize_body
from engine.errors import VenueError

logger = logging.getLogger(__name__)

USER_AGENT = "dcabot/0.1.0"


@dataclass
class RestRequest:
    method: str
    path: str
    params: Mapping[str, Any] | None = None
    body: Mapping[str, Any] | None = None
    signed: bool = True


@dataclass
class RestResponse:
    payload: Any
    headers: Mapping[str, str] = field(default_factory=dict)


class RestError(VenueError):
    """Base exception for REST client errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(RestError):
    """Raised when the API indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class TransientApiError(RestError):
    """Raised for transient REST errors that may succeed on retry."""


class RestClient:
    """Minimal REST client with signing, retry and rate-limit handling."""

    def __init__(
        self,
        base_url: str,
        credentials: ApiCredentials | None = None,
        signer: RequestSigner | None = None,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        verify_ssl: bool = True,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.credentials = credentials
        self.signer = signer
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._ssl_context = ssl_context
        if ssl_context is None and verify_ssl:
            self._ssl_context = ssl.create_default_context()
        elif ssl_context is None and not verify_ssl:
            self._ssl_context = ssl._create_unverified_context()
            logger.warning(
                "SSL certificate verification is DISABLED. "
                "This should never be used against a live exchange."
            )

    def build_url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def send(self, request: RestRequest) -> Any:
        return self.send_with_headers(request).payload

    def send_with_headers(self, request: RestRequest) -> RestResponse:
        attempts = 0
        while True:
            try:
                return self._send_once(request)
            except RateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or self._compute_backoff(attempts)
                logger.warning(
                    "Rate limited on %s, retrying in %.2fs", request.path, delay
                )
                time.sleep(delay)
            except TransientApiError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = self._compute_backoff(attempts)
                logger.warning(
                    "Transient error on %s (%s), retrying in %.2fs",
                    request.path,
                    exc,
                    delay,
                )
                time.sleep(delay)

    def _send_once(self, request: RestRequest) -> RestResponse:
        method = request.method.upper()
        url = self.build_url(request.path)
        params = {k: v for k, v in (request.params or {}).items() if v is not None}
        if params:
            url = f"{url}?{urlencode(params, doseq=True)}"
        body = dict(request.body or {})
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}

        send_body = method != "GET" and bool(body)
        if request.signed:
            if self.credentials is None or self.signer is None:
                raise RestError(
                    f"Credentials are required for signed request {method} {request.path}"
                )
            parts = urlsplit(url)
            request_path = parts.path + (f"?{parts.query}" if parts.query else "")
            signed = self.signer.build_headers(
                self.credentials,
                method,
                request_path,
                body if method != "GET" else None,
            )
            headers.update(signed.headers)
            send_body = send_body and signed.send_body

        data_bytes = None
        if send_body:
            data_bytes = serialize_body(body).encode("utf8")
            headers["Content-Type"] = "application/json"

        logger.debug("%s %s", method, url)
        http_request = Request(url=url, method=method, headers=headers, data=data_bytes)
        try:
            with urlopen(
                http_request, timeout=self.timeout, context=self._ssl_context
            ) as response:
                payload = response.read().decode("utf8")
                response_headers = dict(response.headers.items())
        except HTTPError as exc:
            if exc.code == 429:
                retry_after = self._parse_retry_after(exc.headers.get("Retry-After"))
                raise RateLimitError(
                    "Rate limit exceeded", retry_after=retry_after
                ) from exc
            error_payload = exc.read().decode("utf8") if exc.fp else ""
            if exc.code == 401:
                raise RestError(
                    self._build_unauthorized_message(error_payload, request.path),
                    status_code=401,
                ) from exc
            if exc.code in {500, 502, 503, 504}:
                raise TransientApiError(
                    f"Transient HTTP error {exc.code}", status_code=exc.code
                ) from exc
            raise RestError(
                self._build_http_error_message(exc.code, error_payload),
                status_code=exc.code,
            ) from exc
        except URLError as exc:
            raise TransientApiError("Network error while contacting API") from exc
        except (OSError, HTTPException) as exc:
            # read timeouts and dropped connections surface outside URLError
            raise TransientApiError(
                f"Connection error while contacting API: {exc!r}"
            ) from exc

        if not payload:
            return RestResponse(payload={}, headers=response_headers)
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise RestError(f"Invalid JSON response from {request.path}") from exc
        return RestResponse(payload=parsed, headers=response_headers)

    def _compute_backoff(self, attempt: int) -> float:
        base = self.backoff_factor * (2 ** (attempt - 1))
        return base + random.uniform(0, base)

    def _parse_retry_after(self, header_value: str | None) -> float | None:
        if header_value is None:
            return None
        try:
            return float(header_value)
        except ValueError:
            return None

    def _build_unauthorized_message(self, payload: str, path: str) -> str:
        guidance = (
            "HTTP error 401: Not Authorized. Verify the API key/secret (and "
            "passphrase where the venue uses one), ensure the key has trade and "
            "transfer permissions, and check for clock skew on this machine."
        )
        guidance = f"{guidance} Endpoint: {path}"
        message = self._extract_error_message(payload)
        if message:
            return f"{guidance} Response: {message}"
        return guidance

    def _build_http_error_message(self, status_code: int, payload: str) -> str:
        message = self._extract_error_message(payload)
        if message:
            return f"HTTP error {status_code}: {message}"
        return f"HTTP error {status_code}"

    @staticmethod
    def _extract_error_message(payload: str) -> str | None:
        if not payload:
            return None
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError:
            return payload.strip() or None
        if isinstance(parsed, dict):
            for key in ("message", "error", "reason", "detail"):
                value = parsed.get(key)
                if isinstance(value, str) and value:
                    return value
            errors = parsed.get("errors")
            if isinstance(errors, list) and errors:
                first = errors[0]
                if isinstance(first, dict) and isinstance(first.get("message"), str):
                    return first["message"]
        return payload.strip() or None
