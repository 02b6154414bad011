"""Request signing for the supported exchange REST APIs."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol


@dataclass(frozen=True)
class ApiCredentials:
    api_key: str
    api_secret: str
    passphrase: str | None = None


@dataclass(frozen=True)
class SignedHeaders:
    headers: dict[str, str]
    signature: str
    timestamp: str
    signed_message: str
    send_body: bool = True


class RequestSigner(Protocol):
    def build_headers(
        self,
        credentials: ApiCredentials,
        method: str,
        request_path: str,
        body: Mapping[str, Any] | None,
    ) -> SignedHeaders:
        """Return authentication headers for a request."""


def serialize_body(body: Mapping[str, Any] | None) -> str:
    if not body:
        return ""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


class CoinbaseExchangeSigner:
    """Signer for the Coinbase Exchange (formerly Pro) API.

    The secret is base64 encoded; the signature is a base64 HMAC-SHA256 of
    ``timestamp + METHOD + request_path + body``.
    """

    def __init__(self, time_provider: Callable[[], float] | None = None) -> None:
        self._time_provider = time_provider or time.time

    def build_headers(
        self,
        credentials: ApiCredentials,
        method: str,
        request_path: str,
        body: Mapping[str, Any] | None,
    ) -> SignedHeaders:
        timestamp = str(int(self._time_provider()))
        message = f"{timestamp}{method.upper()}{request_path}{serialize_body(body)}"
        try:
            key = base64.b64decode(credentials.api_secret)
        except binascii.Error as exc:
            raise ValueError("Coinbase API secret must be base64 encoded.") from exc
        digest = hmac.new(key, message.encode("utf8"), hashlib.sha256).digest()
        signature = base64.b64encode(digest).decode("utf8")
        headers = {
            "CB-ACCESS-KEY": credentials.api_key,
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": credentials.passphrase or "",
        }
        return SignedHeaders(
            headers=headers,
            signature=signature,
            timestamp=timestamp,
            signed_message=message,
        )


class CoinbaseHmacSigner:
    """Signer for Coinbase v2 and Advanced Trade API keys.

    The signature is a hex HMAC-SHA256 of ``timestamp + METHOD + path + body``.
    Advanced Trade signs the path without the query string.
    """

    def __init__(
        self,
        time_provider: Callable[[], float] | None = None,
        *,
        include_query: bool = True,
        api_version: str | None = None,
    ) -> None:
        self._time_provider = time_provider or time.time
        self._include_query = include_query
        self._api_version = api_version

    def build_headers(
        self,
        credentials: ApiCredentials,
        method: str,
        request_path: str,
        body: Mapping[str, Any] | None,
    ) -> SignedHeaders:
        timestamp = str(int(self._time_provider()))
        path = request_path if self._include_query else request_path.split("?")[0]
        message = f"{timestamp}{method.upper()}{path}{serialize_body(body)}"
        signature = hmac.new(
            credentials.api_secret.encode("utf8"),
            message.encode("utf8"),
            hashlib.sha256,
        ).hexdigest()
        headers = {
            "CB-ACCESS-KEY": credentials.api_key,
            "CB-ACCESS-SIGN": signature,
            "CB-ACCESS-TIMESTAMP": timestamp,
        }
        if self._api_version:
            headers["CB-VERSION"] = self._api_version
        return SignedHeaders(
            headers=headers,
            signature=signature,
            timestamp=timestamp,
            signed_message=message,
        )


class GeminiSigner:
    """Signer for Gemini private endpoints.

    Gemini carries the request in a base64 ``X-GEMINI-PAYLOAD`` header signed
    with HMAC-SHA384; the HTTP body stays empty.
    """

    def __init__(self, time_provider: Callable[[], float] | None = None) -> None:
        self._time_provider = time_provider or time.time
        self._last_nonce = 0

    def build_headers(
        self,
        credentials: ApiCredentials,
        method: str,
        request_path: str,
        body: Mapping[str, Any] | None,
    ) -> SignedHeaders:
        nonce = self._next_nonce()
        payload = {"request": request_path.split("?")[0], "nonce": str(nonce)}
        payload.update(body or {})
        encoded = base64.b64encode(serialize_body(payload).encode("utf8")).decode(
            "utf8"
        )
        signature = hmac.new(
            credentials.api_secret.encode("utf8"),
            encoded.encode("utf8"),
            hashlib.sha384,
        ).hexdigest()
        headers = {
            "Content-Type": "text/plain",
            "Content-Length": "0",
            "Cache-Control": "no-cache",
            "X-GEMINI-APIKEY": credentials.api_key,
            "X-GEMINI-PAYLOAD": encoded,
            "X-GEMINI-SIGNATURE": signature,
        }
        return SignedHeaders(
            headers=headers,
            signature=signature,
            timestamp=str(nonce),
            signed_message=encoded,
            send_body=False,
        )

    def _next_nonce(self) -> int:
        nonce = int(self._time_provider() * 1000)
        # nonces must strictly increase per key
        if nonce <= self._last_nonce:
            nonce = self._last_nonce + 1
        self._last_nonce = nonce
        return nonce


class FtxSigner:
    """Signer for FTX and FTX US.

    The signature is a hex HMAC-SHA256 of ``ts + METHOD + path + body`` with a
    millisecond timestamp. FTX US uses ``FTXUS-`` header names.
    """

    def __init__(
        self,
        time_provider: Callable[[], float] | None = None,
        *,
        header_prefix: str = "FTX",
        subaccount: str | None = None,
    ) -> None:
        self._time_provider = time_provider or time.time
        self._prefix = header_prefix
        self._subaccount = subaccount

    def build_headers(
        self,
        credentials: ApiCredentials,
        method: str,
        request_path: str,
        body: Mapping[str, Any] | None,
    ) -> SignedHeaders:
        timestamp = str(int(self._time_provider() * 1000))
        message = f"{timestamp}{method.upper()}{request_path}{serialize_body(body)}"
        signature = hmac.new(
            credentials.api_secret.encode("utf8"),
            message.encode("utf8"),
            hashlib.sha256,
        ).hexdigest()
        headers = {
            f"{self._prefix}-KEY": credentials.api_key,
            f"{self._prefix}-SIGN": signature,
            f"{self._prefix}-TS": timestamp,
        }
        if self._subaccount:
            headers[f"{self._prefix}-SUBACCOUNT"] = self._subaccount
        return SignedHeaders(
            headers=headers,
            signature=signature,
            timestamp=timestamp,
            signed_message=message,
        )
