from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from typing import Sequence

import aiohttp
import structlog

from countertrade import __version__
from countertrade.core.config.settings import AccountName, AppSettings, load_settings
from countertrade.core.engine.state import ServiceState
from countertrade.core.events.bus import EventBus
from countertrade.core.logging.setup import bind_context, configure_logging
from countertrade.core.service import MirrorService
from countertrade.errors import ConfigurationError
from countertrade.exchange.bybit.client import BybitRestClient
from countertrade.exchange.bybit.gateway import BybitGateway
from countertrade.exchange.bybit.stream import BybitOrderStream
from countertrade.mirror.orchestrator import MirrorOrchestrator
from countertrade.mirror.ports import Notifier
from countertrade.notifications.telegram import NullNotifier, TelegramNotifier
from countertrade.storage.jsonl import EventJournal, JsonlEventStore

log = structlog.get_logger()

SERVICE_ID = "countertrade"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="countertrade",
        description="Mirror Bybit trading sub-account orders as inverted counter-orders.",
    )
    p.add_argument("--mainnet", action="store_true", help="use production endpoints (default: testnet)")
    p.add_argument(
        "--check-balances",
        action="store_true",
        help="print both sub-account balances and exit",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


def _clients(session: aiohttp.ClientSession, settings: AppSettings) -> dict[AccountName, BybitRestClient]:
    clients: dict[AccountName, BybitRestClient] = {}
    for account in ("trading", "counter"):
        key, secret = settings.credentials(account)
        clients[account] = BybitRestClient(
            session=session,
            api_key=key,
            api_secret=secret,
            base_url=settings.rest_base_url,
            recv_window=settings.recv_window,
            name=account,
        )
    return clients


def _notifier(session: aiohttp.ClientSession, settings: AppSettings) -> Notifier:
    if not settings.telegram_enabled:
        log.warning("app.telegram_disabled", reason="TELEGRAM_BOT_TOKEN is not set")
        return NullNotifier()

    assert settings.telegram_bot_token is not None and settings.telegram_channel_id is not None
    log.info("app.telegram_enabled", channel_id=settings.telegram_channel_id)
    return TelegramNotifier(
        session=session,
        bot_token=settings.telegram_bot_token.get_secret_value(),
        channel_id=settings.telegram_channel_id,
    )


async def check_balances(settings: AppSettings) -> int:
    timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        gateway = BybitGateway(clients=_clients(session, settings), category=settings.category)

        failed = False
        for account in ("trading", "counter"):
            try:
                balance = await gateway.get_balance(account, settings.coin)
            except Exception as e:
                log.error("app.balance_check_failed", account=account, error_type=type(e).__name__, error=str(e))
                balance = None
            if balance is None:
                failed = True
                print(f"{account}: unavailable")
                continue
            print(
                f"{account}: wallet={balance.wallet_balance:f} "
                f"available={balance.available_to_withdraw:f} equity={balance.equity:f} {settings.coin}"
            )
    return 1 if failed else 0


async def run(settings: AppSettings) -> int:
    timeout = aiohttp.ClientTimeout(total=settings.http_timeout)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        clients = _clients(session, settings)
        gateway = BybitGateway(clients=clients, category=settings.category)
        notifier = _notifier(session, settings)

        bus = EventBus()
        state = ServiceState(service_id=SERVICE_ID)

        store: JsonlEventStore | None = None
        if settings.journal_path is not None:
            store = JsonlEventStore(path=settings.journal_path)
            bus.attach([EventJournal(store)])
            log.info("app.journal_enabled", path=str(settings.journal_path))

        orchestrator = MirrorOrchestrator(
            balances=gateway,
            instruments=gateway,
            prices=gateway,
            orders=gateway,
            notifier=notifier,
            bus=bus,
            state=state,
            coin=settings.coin,
            insufficient_balance_code=settings.insufficient_balance_code,
        )
        service = MirrorService(bus=bus, state=state, orchestrator=orchestrator)

        key, secret = settings.credentials("trading")
        stream = BybitOrderStream(
            url=settings.ws_private_url,
            api_key=key,
            api_secret=secret,
            channel=service.channel,
            reconnect_timeout=settings.reconnect_timeout,
        )

        def shutdown() -> None:
            log.info("app.shutdown_requested")
            stream.stop()
            service.stop()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # add_signal_handler is unavailable on Windows event loops
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, shutdown)

        stream_task = asyncio.create_task(stream.run(), name="bybit-order-stream")
        log.info("app.running", network=settings.network, ws_url=settings.ws_private_url)
        try:
            await service.run()
        finally:
            stream.stop()
            stream_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stream_task
            if store is not None:
                store.close()

    log.info("app.stopped")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {"mainnet": True} if args.mainnet else {}
    try:
        settings = load_settings(**overrides)
    except ConfigurationError as e:
        configure_logging()
        log.error("app.configuration_error", error=str(e))
        return 1

    configure_logging(level=settings.log_level, log_file=settings.log_file)
    bind_context(network=settings.network)
    log.info("app.starting", version=__version__, rest_url=settings.rest_base_url)

    if args.check_balances:
        return asyncio.run(check_balances(settings))
    return asyncio.run(run(settings))


if __name__ == "__main__":
    sys.exit(main())
