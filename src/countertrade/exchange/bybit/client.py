# src/countertrade/exchange/bybit/client.py
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Mapping
from urllib.parse import urlencode

import aiohttp
import structlog

from countertrade.errors import ExchangeError

log = structlog.get_logger()


def _ts_ms() -> int:
    return int(time.time() * 1000)


def sign(secret: str, payload: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class BybitRestClient:
    """
    Bybit v5 REST client for one sub-account (signed + public).

    Every call returns the decoded envelope {"retCode", "retMsg", "result", ...}
    as-is: interpreting retCode is the caller's job. Transport problems
    (HTTP status >= 400, non-JSON bodies) raise ExchangeError; aiohttp
    errors propagate unchanged. No retries.

    Signature (v5, HMAC-SHA256):
      sign = HMAC(secret, timestamp + api_key + recv_window + payload)
      payload = query string for GET, raw JSON body for POST
    """

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession,
        api_key: str,
        api_secret: str,
        base_url: str,
        recv_window: int = 5000,
        name: str = "bybit",
    ) -> None:
        self._session = session
        self._api_key = api_key
        self._api_secret = api_secret
        self._base_url = base_url.rstrip("/")
        self._recv_window = int(recv_window)
        self.name = name

    # ---------------------------------------------------------------------
    # Core request
    # ---------------------------------------------------------------------

    def _auth_headers(self, payload: str) -> dict[str, str]:
        ts = str(_ts_ms())
        recv_window = str(self._recv_window)
        return {
            "X-BAPI-API-KEY": self._api_key,
            "X-BAPI-TIMESTAMP": ts,
            "X-BAPI-RECV-WINDOW": recv_window,
            "X-BAPI-SIGN": sign(self._api_secret, ts + self._api_key + recv_window + payload),
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
        signed: bool = True,
    ) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        headers: dict[str, str] = {}
        data: str | None = None

        if method == "GET":
            # the signed payload must match the sent query string byte for byte
            query = urlencode({k: v for k, v in (params or {}).items() if v is not None})
            if query:
                url = f"{url}?{query}"
            payload = query
        else:
            data = json.dumps(dict(body or {}), separators=(",", ":"))
            headers["Content-Type"] = "application/json"
            payload = data

        if signed:
            headers.update(self._auth_headers(payload))

        async with self._session.request(method, url, data=data, headers=headers) as resp:
            text = await resp.text()
            if resp.status >= 400:
                raise ExchangeError(f"Bybit HTTP {resp.status} {method} {path}: {text[:300]}")

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            raise ExchangeError(f"Bybit {method} {path}: non-JSON response: {text[:300]}") from e

        if not isinstance(decoded, dict) or "retCode" not in decoded:
            raise ExchangeError(f"Bybit {method} {path}: unexpected response shape")

        log.debug(
            "bybit.response",
            client=self.name,
            method=method,
            path=path,
            ret_code=decoded.get("retCode"),
            ret_msg=decoded.get("retMsg"),
        )
        return decoded

    # ---------------------------------------------------------------------
    # API methods
    # ---------------------------------------------------------------------

    async def get_wallet_balance(self, *, account_type: str, coin: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/v5/account/wallet-balance",
            params={"accountType": account_type, "coin": coin},
        )

    async def get_instruments_info(self, *, category: str, symbol: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/v5/market/instruments-info",
            params={"category": category, "symbol": symbol},
            signed=False,
        )

    async def get_tickers(self, *, category: str, symbol: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/v5/market/tickers",
            params={"category": category, "symbol": symbol},
            signed=False,
        )

    async def create_order(self, params: Mapping[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/v5/order/create", body=params)
