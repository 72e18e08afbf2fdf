"""
Resilient client for the wallet backend.

Every call resolves the bearer credential first (no network traffic without
one), applies a hard timeout, retries transient transport failures with linear
backoff, and maps every other outcome onto the ApiError taxonomy.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Dict, Optional

import httpx

from walletflow.settings import settings
from walletflow.backend.credentials import CredentialStore, NoCredential
from walletflow.backend.errors import (
    ApiError,
    AuthRequired,
    MalformedResponse,
    NetworkUnavailable,
    RequestTimeout,
    ServerError,
    SessionExpired,
)
from walletflow.backend.schemas import (
    BalanceResponse,
    PinStatusResponse,
    PurchaseResponse,
    parse_response,
)
from walletflow.observability.logging import log

BALANCE_ENDPOINT = "/balance"
PIN_STATUS_ENDPOINT = "/purchase/pin-status"
PURCHASE_ENDPOINT = "/purchase"
RECHARGE_ENDPOINT = "/recharge/generate"
HISTORY_ENDPOINT = "/purchase/history"


def _path_only(endpoint: str) -> str:
    return endpoint.split("?", 1)[0]


def _error_message(data: Any, resp: httpx.Response) -> str:
    if isinstance(data, dict):
        for key in ("message", "error"):
            val = data.get(key)
            if isinstance(val, str) and val.strip():
                return val
    return f"HTTP {resp.status_code}: {resp.reason_phrase}"


class ResilientApiClient:
    def __init__(
        self,
        credentials: CredentialStore,
        *,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_sec: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=None,
    ):
        self.credentials = credentials
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else settings.REQUEST_TIMEOUT_SEC)
        self.max_retries = int(max_retries if max_retries is not None else settings.MAX_RETRIES)
        self.backoff_sec = float(backoff_sec if backoff_sec is not None else settings.RETRY_BACKOFF_SEC)
        self.preserve_error_body = {_path_only(p) for p in settings.PRESERVE_ERROR_BODY_ENDPOINTS}
        self._sleep = sleep or asyncio.sleep
        self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_sec), transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ResilientApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        try:
            token = self.credentials.resolve()
        except NoCredential as e:
            raise AuthRequired("Authentication required", endpoint=endpoint) from e

        attempt = 0
        start = time.monotonic()
        while True:
            try:
                return await self._send_once(endpoint, method, payload, headers, token)
            except NetworkUnavailable as e:
                if attempt >= self.max_retries:
                    try:
                        log(
                            event="api_request_failed",
                            endpoint=endpoint,
                            method=method,
                            kind=e.kind,
                            attempts=attempt + 1,
                            elapsedMs=int((time.monotonic() - start) * 1000),
                        )
                    except Exception:
                        pass
                    raise
                attempt += 1
                delay = self.backoff_sec * attempt
                try:
                    log(event="api_retry_scheduled", endpoint=endpoint, attempt=attempt, kind=e.kind, backoffSec=delay)
                except Exception:
                    pass
                await self._sleep(delay)

    async def _send_once(self, endpoint, method, payload, headers, token) -> Any:
        request_headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        request_headers.update(headers or {})

        started = time.monotonic()
        try:
            resp = await self._http.request(
                method, f"{self.base_url}{endpoint}", headers=request_headers, json=payload
            )
        except httpx.TimeoutException as e:
            raise RequestTimeout(
                f"Request timed out after {self.timeout_sec:g} seconds", endpoint=endpoint
            ) from e
        except httpx.TransportError as e:
            raise NetworkUnavailable(
                "Network connection failed. Please check your internet connection.", endpoint=endpoint
            ) from e
        except httpx.InvalidURL as e:
            raise ApiError(f"Invalid request URL for {endpoint}", endpoint=endpoint) from e
        except httpx.HTTPError as e:
            # Decoding, redirect and protocol errors: a response arrived but is unusable
            raise MalformedResponse(f"Unreadable response from server: {e}", endpoint=endpoint) from e

        try:
            log(
                event="api_request",
                endpoint=endpoint,
                method=method,
                statusCode=int(resp.status_code),
                elapsedMs=int((time.monotonic() - started) * 1000),
            )
        except Exception:
            pass
        return self._interpret(endpoint, resp)

    def _interpret(self, endpoint: str, resp: httpx.Response) -> Any:
        status = resp.status_code

        # 401 purges the credential whatever the body says
        if status == 401:
            self.credentials.invalidate()
            raise SessionExpired("Session expired. Please login again.", status=status, endpoint=endpoint)

        text = resp.text or ""
        data: Any = {}
        if text.strip():
            try:
                data = json.loads(text)
            except ValueError as e:
                raise MalformedResponse(
                    f"Invalid JSON response from server. Status: {status}", status=status, endpoint=endpoint
                ) from e

        if not resp.is_success:
            response_data = None
            if _path_only(endpoint) in self.preserve_error_body and isinstance(data, dict):
                response_data = data
            raise ServerError(
                _error_message(data, resp), status=status, endpoint=endpoint, response_data=response_data
            )
        return data

    # Typed endpoint helpers

    async def fetch_balance(self) -> BalanceResponse:
        data = await self.request(BALANCE_ENDPOINT)
        return parse_response(BalanceResponse, data, BALANCE_ENDPOINT)

    async def fetch_pin_status(self) -> PinStatusResponse:
        data = await self.request(PIN_STATUS_ENDPOINT)
        return parse_response(PinStatusResponse, data, PIN_STATUS_ENDPOINT)

    async def submit_purchase(self, endpoint: str, payload: Dict[str, Any]) -> PurchaseResponse:
        data = await self.request(endpoint, method="POST", payload=payload)
        return parse_response(PurchaseResponse, data, endpoint)

    async def fetch_history(self) -> Any:
        return await self.request(HISTORY_ENDPOINT)

    async def fetch_plans(self, category: str, provider: str) -> Any:
        """Catalog data for Draft-state pickers (read-only)."""
        return await self.request(f"/{category}/plans/{provider}")

    async def validate_recipient(self, category: str, kind: str, payload: Dict[str, Any]) -> Any:
        """e.g. POST /cable/validate-smartcard; the response is passed through unchanged."""
        return await self.request(f"/{category}/validate-{kind}", method="POST", payload=payload)

