"""
Tic-tac-toe API и WebSocket.
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .ai import build_ai
from .auth import IdentityProvider
from .clock import TurnClock
from .config import get_config
from .lifecycle import SessionLifecycle
from .persistence import build_gateway
from .rating import ResultReporter
from .store import SessionStore
from .ws_handlers import Services, ws_auth_and_loop
from .ws_manager import WSManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_services(config) -> Services:
    clock = TurnClock()
    manager = WSManager()
    gateway = build_gateway(config)
    lifecycle = SessionLifecycle(
        store=SessionStore(clock, config.turn_time_ms),
        clock=clock,
        transport=manager,
        reporter=ResultReporter(gateway, k=config.elo_k, default_rating=config.default_rating),
        ai=build_ai(config),
        grace_ms=config.disconnect_grace_ms,
        tick_interval_ms=config.tick_interval_ms,
        max_idle_ms=config.max_idle_s * 1000,
        sweep_interval_s=config.sweep_interval_s,
    )
    return Services(
        manager=manager,
        lifecycle=lifecycle,
        identity=IdentityProvider(config.telegram_bot_token, config.debug, config.guest_secret),
        gateway=gateway,
    )


def create_app(services: Services | None = None) -> FastAPI:
    config = get_config()
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper = asyncio.create_task(services.lifecycle.run_sweeper())
        logger.info("Idle sweeper started (every %ss)", services.lifecycle.sweep_interval_s)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            services.lifecycle.shutdown()
            close = getattr(services.gateway, "close", None)
            if close is not None:
                await close()

    app = FastAPI(title="Tic-tac-toe API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        store = services.lifecycle.store
        return {"status": "ok", "sessions": store.session_count, "queued": store.queue_size}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        logger.info("WS: connection attempt from %s", ws.client)
        await ws_auth_and_loop(ws, services)

    return app


app = create_app()


def run() -> None:
    import uvicorn

    config = get_config()
    uvicorn.run("tictactoe.main:app", host=config.host, port=config.port, reload=False)


if __name__ == "__main__":
    run()
