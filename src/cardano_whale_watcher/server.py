"""
HTTP + WebSocket front end for the whale watcher.

Routes:
    GET    /api/whale-data
    GET    /api/ada-price
    POST   /api/track-wallet
    GET    /api/tracked-wallets
    GET    /api/wallet/{address}
    GET    /api/wallet/{address}/transactions?page=&count=
    DELETE /api/wallet/{address}
    GET    /api/popular-handles
    GET    /health
    GET    /ws            (WebSocket event stream)
"""

import asyncio
import json
import logging
import os
import signal
from datetime import timedelta
from typing import Any, Callable, Optional

from aiohttp import web, WSMsgType

from .api_clients import BlockfrostClient, CoinGeckoClient
from .broadcast import Broadcaster
from .config import Config
from .exceptions import ConflictError, UpstreamError, WhaleWatcherError
from .resolver import AddressResolver, default_services, popular_handles
from .scheduler import UpdateScheduler
from .store import TrackingStore, utc_now

logger = logging.getLogger(__name__)

REFRESH_MESSAGE = "refresh-data"


def _int_param(request: web.Request, name: str, default: int) -> int:
    """Integer query parameter; missing, zero or unparsable values give the default."""
    try:
        return int(request.query.get(name) or default) or default
    except ValueError:
        return default


class WhaleWatcherServer:
    """Wires the gateways, store, scheduler and broadcaster behind an aiohttp app."""

    def __init__(self, config: Config, chain=None, prices=None,
                 resolver: Optional[AddressResolver] = None,
                 start_scheduler: bool = True, clock=utc_now):
        self.config = config
        self.chain = chain or BlockfrostClient(config)
        self.prices = prices or CoinGeckoClient(config)
        self.broadcaster = Broadcaster()
        self.store = TrackingStore(
            self.chain,
            self.broadcaster,
            resolver or AddressResolver(default_services(config.handle_timeout)),
            stale_after=timedelta(minutes=config.stale_after_minutes),
            history_size=config.wallet_history_size,
            clock=clock,
        )
        self.scheduler = UpdateScheduler(
            self.chain,
            self.prices,
            self.broadcaster,
            interval=config.update_interval,
            initial_delay=config.initial_delay,
            snapshot_size=config.snapshot_size,
            fallback_price=config.fallback_price,
            clock=clock,
        )
        self.broadcaster.set_state_providers(
            snapshot=lambda: self.scheduler.snapshot.to_dict(),
            wallets=lambda: [w.to_dict() for w in self.store.list()],
        )
        self.start_scheduler = start_scheduler
        self.drained = True

        self.app = web.Application()
        self._setup_routes()
        self.app.on_startup.append(self._on_startup)
        self.app.on_shutdown.append(self._on_shutdown)

    def _setup_routes(self):
        self.app.router.add_get("/api/whale-data", self.whale_data)
        self.app.router.add_get("/api/ada-price", self.ada_price)
        self.app.router.add_post("/api/track-wallet", self.track_wallet)
        self.app.router.add_get("/api/tracked-wallets", self.tracked_wallets)
        self.app.router.add_get("/api/wallet/{address}", self.get_wallet)
        self.app.router.add_get("/api/wallet/{address}/transactions", self.wallet_transactions)
        self.app.router.add_delete("/api/wallet/{address}", self.remove_wallet)
        self.app.router.add_get("/api/popular-handles", self.popular)
        self.app.router.add_get("/health", self.health)
        self.app.router.add_get("/ws", self.websocket)

    async def _on_startup(self, app: web.Application):
        if self.start_scheduler:
            self.scheduler.start()

    async def _on_shutdown(self, app: web.Application):
        self.scheduler.stop()
        await self.broadcaster.close()
        self.drained = await self.scheduler.drain(self.config.shutdown_timeout / 2)
        if not self.drained:
            logger.warning("Whale update still in flight at shutdown")
        self.store.clear()

    @staticmethod
    def _error(e: WhaleWatcherError, **extra: Any) -> web.Response:
        return web.json_response({"error": str(e), **extra}, status=e.status_code)

    # ----------------------------------------------------------------------
    # HTTP handlers
    # ----------------------------------------------------------------------

    async def whale_data(self, request: web.Request) -> web.Response:
        return web.json_response(self.scheduler.snapshot.to_dict())

    async def ada_price(self, request: web.Request) -> web.Response:
        try:
            quote = await asyncio.to_thread(self.prices.get_ada_price)
            return web.json_response(quote)
        except UpstreamError as e:
            logger.warning(f"Price fetch error: {e}")
            return web.json_response({
                "price": self.scheduler.snapshot.price,
                "error": "Using cached price",
            })

    async def track_wallet(self, request: web.Request) -> web.Response:
        """
        Resolve and start tracking a wallet.

        POST /api/track-wallet
        Body: {"input": "$alice", "nickname": "Alice"}
        """
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = {}
        if not isinstance(body, dict):
            body = {}

        try:
            wallet = await self.store.resolve_and_track(
                body.get("input"), body.get("nickname"))
            return web.json_response(wallet.to_dict())
        except ConflictError as e:
            return self._error(e, wallet=e.existing.to_dict())
        except WhaleWatcherError as e:
            if e.status_code >= 500:
                logger.error(f"Track wallet error: {e}")
                return web.json_response(
                    {"error": "Failed to track wallet", "details": str(e)}, status=500)
            return self._error(e)
        except Exception as e:
            logger.exception("Track wallet error")
            return web.json_response(
                {"error": "Failed to track wallet", "details": str(e)}, status=500)

    async def tracked_wallets(self, request: web.Request) -> web.Response:
        return web.json_response([w.to_dict() for w in self.store.list()])

    async def get_wallet(self, request: web.Request) -> web.Response:
        address = request.match_info["address"]
        try:
            wallet = await self.store.get(address)
            return web.json_response(wallet.to_dict())
        except WhaleWatcherError as e:
            if e.status_code < 500:
                return self._error(e)
            logger.error(f"Wallet fetch error: {e}")
            return web.json_response({"error": "Failed to fetch wallet data"}, status=500)

    async def wallet_transactions(self, request: web.Request) -> web.Response:
        address = request.match_info["address"]
        page = _int_param(request, "page", 1)
        count = _int_param(request, "count", 20)

        try:
            transactions = await self.store.transactions(address, page, count)
            return web.json_response({"transactions": [tx.to_dict() for tx in transactions]})
        except WhaleWatcherError as e:
            if e.status_code < 500:
                return self._error(e)
            logger.error(f"Paginated wallet transactions error: {e}")
            return web.json_response(
                {"error": "Failed to fetch wallet transactions"}, status=500)

    async def remove_wallet(self, request: web.Request) -> web.Response:
        address = request.match_info["address"]
        try:
            wallet = await self.store.untrack(address)
        except WhaleWatcherError as e:
            return self._error(e)
        return web.json_response(
            {"success": True, "message": f"Stopped tracking {wallet.nickname}"})

    async def popular(self, request: web.Request) -> web.Response:
        return web.json_response(popular_handles())

    async def health(self, request: web.Request) -> web.Response:
        snapshot = self.scheduler.snapshot
        return web.json_response({
            "status": "healthy",
            "lastUpdate": snapshot.last_update.isoformat() if snapshot.last_update else None,
            "trackedWallets": len(self.store),
            "subscribers": self.broadcaster.subscriber_count,
            "schedulerState": self.scheduler.state.value,
        })

    # ----------------------------------------------------------------------
    # WebSocket
    # ----------------------------------------------------------------------

    async def websocket(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30)
        await ws.prepare(request)

        await self.broadcaster.subscribe(ws)
        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    if self._is_refresh_request(msg.data):
                        logger.info("Manual refresh requested")
                        self.scheduler.trigger()
                elif msg.type == WSMsgType.ERROR:
                    logger.warning(f"WebSocket closed with error: {ws.exception()}")
        finally:
            self.broadcaster.unsubscribe(ws)

        return ws

    @staticmethod
    def _is_refresh_request(data: str) -> bool:
        if data.strip() == REFRESH_MESSAGE:
            return True
        try:
            message = json.loads(data)
        except json.JSONDecodeError:
            return False
        return isinstance(message, dict) and message.get("event") == REFRESH_MESSAGE

    # ----------------------------------------------------------------------
    # Process lifecycle
    # ----------------------------------------------------------------------

    async def serve(self, force_exit: Callable[[int], None] = os._exit) -> int:
        """Run until SIGINT/SIGTERM or an unhandled background error, then shut down."""
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.config.host, self.config.port)
        await site.start()

        logger.info(
            f"Cardano Whale Watcher running on http://{self.config.host}:{self.config.port}")

        stop = asyncio.Event()
        reason = {"signal": None}
        loop = asyncio.get_running_loop()

        def request_stop(name: str):
            if stop.is_set():
                logger.info("Shutdown already in progress...")
                return
            reason["signal"] = name
            stop.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, request_stop, sig.name)
            except NotImplementedError:
                # Signal handlers are unavailable on Windows event loops
                pass

        def on_loop_error(loop, context):
            logger.error(f"Unhandled error: {context.get('exception') or context.get('message')}")
            request_stop("unhandled-error")

        loop.set_exception_handler(on_loop_error)

        await stop.wait()
        logger.info(f"Received {reason['signal']}, shutting down gracefully...")

        try:
            await asyncio.wait_for(runner.cleanup(), timeout=self.config.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.error("Force exiting...")
            force_exit(1)
            return 1

        code = 1 if reason["signal"] == "unhandled-error" else 0
        if not self.drained:
            # Worker threads blocked in HTTP calls would otherwise hold the interpreter open
            logger.error("Force exiting...")
            force_exit(code)
            return code

        logger.info("Server closed successfully")
        return code
