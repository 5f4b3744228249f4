"""
Bridge lifecycle: listening socket, gateway server, session sweeper and
mDNS announcement.

Startup order is socket, server, sweeper, announcement. Shutdown runs the
reverse and keeps going when a step fails.
"""

import asyncio
import contextlib
import errno
import logging
import socket

import uvicorn

from .core.config import BridgeSettings
from .core.exceptions import BindFailure
from .core.session_store import SessionStore, SessionSweeper
from .core.state import CLIENTS_STATE, CONNECTION_STATE, ClientCounter, StatusStore, create_status_store
from .server import create_app
from .services.announcer import ServiceAnnouncer
from .utils.metrics import record_sessions_swept

logger = logging.getLogger(__name__)

SERVER_START_TIMEOUT_SECONDS = 10
SERVER_STOP_TIMEOUT_SECONDS = 10


class EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the owning process."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind a TCP socket for the gateway.

    Raises:
        BindFailure: the address is in use or cannot be bound; the socket is closed
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.set_inheritable(True)
    except OSError as e:
        sock.close()
        if e.errno == errno.EADDRINUSE:
            reason = f"Port {port} is already in use!"
        else:
            reason = f"Server error: {e.strerror or e}"
        raise BindFailure(host, port, reason) from e
    return sock


class BridgeService:
    """
    Owns every long-lived resource of the bridge.

    ``start()`` raises BindFailure when the port is taken and leaves
    info.connection false. ``stop()`` never raises and may be called more
    than once.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        status_store: StatusStore | None = None,
        announcer: ServiceAnnouncer | None = None,
    ):
        self.settings = settings
        self.status_store = status_store or create_status_store(settings.status_file)
        self.sessions = SessionStore(ttl_ms=settings.session_ttl_seconds * 1000)
        self.clients = ClientCounter()
        self.app = create_app(settings, sessions=self.sessions, clients=self.clients, status_store=self.status_store)
        self.sweeper = SessionSweeper(
            self.sessions,
            interval_seconds=settings.sweep_interval_seconds,
            on_sweep=record_sessions_swept,
        )
        self.announcer = announcer
        self.running = False
        self._socket: socket.socket | None = None
        self._server: EmbeddedServer | None = None
        self._serve_task: asyncio.Task | None = None

    @property
    def port(self) -> int | None:
        """Actually bound port, useful when configured with port 0."""
        if self._socket is None:
            return None
        return self._socket.getsockname()[1]

    async def start(self) -> None:
        settings = self.settings
        logger.info("Starting Home Assistant Bridge...")

        await self.status_store.set_state(CONNECTION_STATE, False)
        await self.status_store.set_state(CLIENTS_STATE, 0)

        logger.info(
            f"Config: port={settings.port}, auth={settings.auth_required}, mdns={settings.mdns_enabled}"
        )
        logger.info(f"Target URL: {settings.vis_url}")
        if settings.vis_url_is_local:
            logger.warning("visUrl contains localhost, the display cannot reach this! Use the real IP address.")

        try:
            self._socket = bind_socket(settings.host, settings.port)
            await self._start_server()
        except Exception as e:
            logger.error(f"Failed to start: {e.reason if isinstance(e, BindFailure) else e}")
            await self._abort_server()
            self._release_socket()
            raise

        await self.sweeper.start()

        if settings.mdns_enabled:
            if self.announcer is None:
                self.announcer = ServiceAnnouncer(
                    service_name=settings.service_name,
                    port=self.port or settings.port,
                    service_dir=settings.service_dir,
                    service_file_name=settings.service_file_name,
                )
            await asyncio.to_thread(self.announcer.publish)
        else:
            logger.info("mDNS disabled, enter the URL manually on the display")

        await self.status_store.set_state(CONNECTION_STATE, True)
        self.running = True
        logger.info("Home Assistant Bridge running")

    async def _start_server(self) -> None:
        config = uvicorn.Config(self.app, log_config=None, access_log=False, lifespan="off")
        self._server = EmbeddedServer(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + SERVER_START_TIMEOUT_SECONDS
        while not self._server.started:
            if self._serve_task.done():
                # serve() returned or raised before it started listening
                self._serve_task.result()
                raise BindFailure(self.settings.host, self.settings.port, "Server exited during startup")
            if loop.time() > deadline:
                raise TimeoutError("Web server did not start in time")
            await asyncio.sleep(0.05)

        logger.info(f"Web server listening on port {self.port}")

    async def _abort_server(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            with contextlib.suppress(Exception, asyncio.CancelledError):
                await asyncio.wait_for(self._serve_task, SERVER_STOP_TIMEOUT_SECONDS)
        self._server = None
        self._serve_task = None

    def _release_socket(self) -> None:
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError as e:
                logger.warning(f"Error closing listening socket: {e}")
            self._socket = None

    async def stop(self) -> None:
        logger.info("Shutting down...")

        # 1. stop accepting connections
        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None:
            try:
                await asyncio.wait_for(self._serve_task, SERVER_STOP_TIMEOUT_SECONDS)
                logger.info("Web server stopped")
            except Exception as e:
                logger.error(f"Shutdown error (web server): {e}")
        self._server = None
        self._serve_task = None

        # 2. cancel the sweep timer
        try:
            await self.sweeper.stop()
        except Exception as e:
            logger.error(f"Shutdown error (session sweeper): {e}")

        # 3. retract the announcement
        if self.announcer is not None:
            try:
                await asyncio.to_thread(self.announcer.retract)
            except Exception as e:
                logger.error(f"Shutdown error (mDNS): {e}")

        # 4. release the socket
        self._release_socket()

        try:
            await self.app.state.auth_engine.drain()
            await self.status_store.set_state(CONNECTION_STATE, False)
        except Exception as e:
            logger.error(f"Shutdown error: {e}")

        self.running = False
        logger.info("Home Assistant Bridge stopped")
