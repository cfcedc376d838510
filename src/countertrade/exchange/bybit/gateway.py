# src/countertrade/exchange/bybit/gateway.py
from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

import structlog
from pydantic import ValidationError

from countertrade.core.config.settings import AccountName
from countertrade.errors import ExchangeError
from countertrade.exchange.bybit.client import BybitRestClient
from countertrade.exchange.bybit.wire import LotSizeFilter, TickerInfo, WalletCoin, order_params
from countertrade.mirror.models import AccountBalance, CounterOrderRequest, InstrumentConstraints, SubmitResult

log = structlog.get_logger()

UNIFIED_ACCOUNT_TYPE = "CONTRACT"


def _first(result: Mapping[str, Any] | None, key: str = "list") -> Mapping[str, Any] | None:
    items = (result or {}).get(key) or []
    return items[0] if items else None


class BybitGateway:
    """
    Adapts the two sub-account REST clients to the mirror ports.

    Balances come from whichever account is asked for. Instrument info,
    prices and order placement go through the counter-trading client.

    Read failures (non-zero retCode, missing coin/symbol, malformed payloads)
    are logged and mapped to None. submit_order returns the exchange verdict
    as a SubmitResult; transport errors propagate to the caller.
    """

    def __init__(
        self,
        *,
        clients: Mapping[AccountName, BybitRestClient],
        category: str = "linear",
    ) -> None:
        missing = {"trading", "counter"} - set(clients)
        if missing:
            raise ValueError(f"missing Bybit clients for: {sorted(missing)}")
        self._clients = dict(clients)
        self._category = category

    @property
    def counter(self) -> BybitRestClient:
        return self._clients["counter"]

    # ---------------- BalanceSource ----------------

    async def get_balance(self, account: AccountName, coin: str) -> AccountBalance | None:
        resp = await self._clients[account].get_wallet_balance(account_type=UNIFIED_ACCOUNT_TYPE, coin=coin)
        if resp.get("retCode") != 0:
            log.error(
                "bybit.balance_failed",
                account=account,
                ret_code=resp.get("retCode"),
                ret_msg=resp.get("retMsg"),
            )
            return None

        wallet = _first(resp.get("result"))
        for raw in (wallet or {}).get("coin") or []:
            if raw.get("coin") != coin:
                continue
            try:
                return WalletCoin.model_validate(raw).to_balance()
            except ValidationError as e:
                log.error("bybit.balance_malformed", account=account, coin=coin, error=str(e))
                return None

        log.error("bybit.balance_coin_missing", account=account, coin=coin)
        return None

    # ---------------- InstrumentSource ----------------

    async def get_instrument_constraints(self, symbol: str) -> InstrumentConstraints | None:
        resp = await self.counter.get_instruments_info(category=self._category, symbol=symbol)
        if resp.get("retCode") != 0:
            log.error(
                "bybit.instrument_failed",
                symbol=symbol,
                ret_code=resp.get("retCode"),
                ret_msg=resp.get("retMsg"),
            )
            return None

        info = _first(resp.get("result"))
        if info is None or "lotSizeFilter" not in info:
            log.error("bybit.instrument_missing", symbol=symbol)
            return None

        try:
            return LotSizeFilter.model_validate(info["lotSizeFilter"]).to_constraints()
        except (ValidationError, ValueError) as e:
            log.error("bybit.instrument_malformed", symbol=symbol, error=str(e))
            return None

    # ---------------- PriceSource ----------------

    async def get_reference_price(self, symbol: str) -> Decimal | None:
        resp = await self.counter.get_tickers(category=self._category, symbol=symbol)
        if resp.get("retCode") != 0:
            log.error("bybit.ticker_failed", symbol=symbol, ret_code=resp.get("retCode"), ret_msg=resp.get("retMsg"))
            return None

        raw = _first(resp.get("result"))
        if raw is None:
            log.error("bybit.ticker_missing", symbol=symbol)
            return None

        try:
            return TickerInfo.model_validate(raw).reference_price
        except ValidationError as e:
            log.error("bybit.ticker_malformed", symbol=symbol, error=str(e))
            return None

    # ---------------- OrderSink ----------------

    async def submit_order(self, request: CounterOrderRequest) -> SubmitResult:
        resp = await self.counter.create_order(order_params(request, category=self._category))
        try:
            ret_code = int(resp["retCode"])
        except (TypeError, ValueError) as e:
            raise ExchangeError(f"Bybit order/create: bad retCode {resp.get('retCode')!r}") from e
        return SubmitResult(
            ret_code=ret_code,
            ret_msg=str(resp.get("retMsg", "")),
            result=resp.get("result") or {},
        )
