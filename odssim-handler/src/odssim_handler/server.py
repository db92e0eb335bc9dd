"""TCP server exposing the handler protocol to test-site controllers.

Each accepted connection gets its own daemon thread running a blocking read
loop. Connections from addresses outside the allowlist, and second
connections from an address that already has a live session, are closed
without a response.

One ``recv`` call is treated as one command: the protocol has no delimiter
of its own, and controllers wait for each reply before sending the next
command. Commands split across reads or coalesced into one read are not
reassembled.

Example:
    Serve a handler on an ephemeral port::

        from odssim_handler import CommandDispatcher, HandlerServer, ServerContext

        dispatcher = CommandDispatcher(ServerContext.from_config(config))
        server = HandlerServer(dispatcher, accepted_ips={"127.0.0.1"}, port=0)
        server.start()

        host, port = server.address
        # printf '<<1%GetDUTInfo%>>' | nc {host} {port}
        # <<1%GETDUTINFO%UID=00001;BCD=MSFT0001;WARPAGE=0.1834;TESTCOUNT=2>>

        server.stop()
"""

from __future__ import annotations

import contextlib
import logging
import socket
import socketserver
import threading
from collections.abc import Iterable
from typing import Any

from odssim_handler.dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)

READ_SIZE = 1024
SESSION_DRAIN_TIMEOUT = 5.0


class ConnectionRegistry:
    """The set of live sessions, keyed by client IP."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._empty = threading.Condition(self._lock)
        self._sessions: dict[str, socket.socket] = {}

    def register(self, ip: str, sock: socket.socket) -> bool:
        """Register a session.

        Returns:
            False if ``ip`` already has a live session.
        """
        with self._lock:
            if ip in self._sessions:
                return False
            self._sessions[ip] = sock
            return True

    def unregister(self, ip: str, sock: socket.socket) -> None:
        """Remove the session for ``ip`` if it is ``sock``."""
        with self._lock:
            if self._sessions.get(ip) is sock:
                del self._sessions[ip]
                if not self._sessions:
                    self._empty.notify_all()

    def wait_until_empty(self, timeout: float | None = None) -> bool:
        """Block until every session has finished its cleanup.

        Returns:
            False if sessions were still live when ``timeout`` expired.
        """
        with self._empty:
            return self._empty.wait_for(lambda: not self._sessions, timeout)

    def close_all(self) -> int:
        """Force-close every live session.

        Blocked reads in the session threads return and the sessions end.

        Returns:
            Number of sessions closed.
        """
        with self._lock:
            sockets = list(self._sessions.values())
        for sock in sockets:
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            sock.close()
        return len(sockets)

    def ips(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class _SessionHandler(socketserver.BaseRequestHandler):
    """Handle one test-site connection.

    Attributes:
        server: Reference to the parent _HandlerTcpServer.
    """

    server: _HandlerTcpServer
    request: socket.socket

    def handle(self) -> None:
        client_ip = str(self.client_address[0])
        registry = self.server.registry

        if not registry.register(client_ip, self.request):
            logger.warning("[%s] Duplicate connection detected. Closing new one.", client_ip)
            return

        logger.info("[%s] Connected.", client_ip)
        try:
            self._serve(client_ip)
        except OSError as exc:
            logger.error("[%s] Error: %s", client_ip, exc)
        except Exception:  # pylint: disable=broad-except
            logger.exception("[%s] Session failed", client_ip)
        finally:
            # The IP must hold nothing by the time a reconnect can register.
            released = self.server.dispatcher.context.allocations.release(client_ip)
            if released is not None:
                logger.info("[%s] Released DUT %s on disconnect", client_ip, released.barcode)
            registry.unregister(client_ip, self.request)
            logger.info("[%s] Disconnected.", client_ip)

    def _serve(self, client_ip: str) -> None:
        dispatcher = self.server.dispatcher
        while True:
            data = self.request.recv(READ_SIZE)
            if not data:
                return
            command = data.decode("utf-8", errors="replace").strip()
            logger.info("[%s] Received: %s", client_ip, command)
            response = dispatcher.dispatch(command, client_ip)
            if response:
                self.request.sendall((response + "\n").encode("utf-8"))
                logger.info("[%s] Sent: %s", client_ip, response)


class _HandlerTcpServer(socketserver.ThreadingTCPServer):
    """Threading TCP server holding the dispatcher and the allowlist.

    Attributes:
        allow_reuse_address: Set to True to allow quick server restart.
        daemon_threads: Session threads never block interpreter exit.
    """

    allow_reuse_address = True
    daemon_threads = True

    def __init__(
        self,
        server_address: tuple[str, int],
        dispatcher: CommandDispatcher,
        accepted_ips: frozenset[str],
        **kwargs: Any,
    ) -> None:
        self.dispatcher = dispatcher
        self.accepted_ips = accepted_ips
        self.registry = ConnectionRegistry()
        super().__init__(server_address, _SessionHandler, **kwargs)

    def verify_request(self, request: Any, client_address: Any) -> bool:
        client_ip = str(client_address[0])
        if client_ip not in self.accepted_ips:
            logger.warning("[%s] Connection rejected. Not in allowed IP list.", client_ip)
            return False
        return True


class HandlerServer:
    """Handler protocol server running in a background thread.

    Args:
        dispatcher: Command dispatcher bound to the shared server context.
        accepted_ips: IP allowlist.
        host: Bind address (default ``"0.0.0.0"``).
        port: Bind port (default ``5000``). Use ``0`` for an OS-assigned
            ephemeral port.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        accepted_ips: Iterable[str],
        host: str = "0.0.0.0",
        port: int = 5000,
    ) -> None:
        self._server = _HandlerTcpServer((host, port), dispatcher, frozenset(accepted_ips))
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start accepting connections in a daemon thread."""
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="odssim-acceptor", daemon=True
        )
        self._thread.start()
        host, port = self.address
        logger.info("[ODS Server] Listening on %s:%d...", host, port)

    def stop(self) -> None:
        """Stop accepting, close the listening socket and all live sessions.

        Returns once every closed session has released its DUT, so results
        recorded by in-flight commands are in the summary log.
        """
        if self._thread is not None:
            self._server.shutdown()
            self._thread.join()
            self._thread = None
        self._server.server_close()
        closed = self._server.registry.close_all()
        if closed:
            logger.info("Closed %d active session(s)", closed)
        if not self._server.registry.wait_until_empty(SESSION_DRAIN_TIMEOUT):
            logger.warning("Sessions still active after %.1fs", SESSION_DRAIN_TIMEOUT)

    @property
    def address(self) -> tuple[str, int]:
        """Return the actual bound ``(host, port)`` address."""
        addr = self._server.server_address
        return (str(addr[0]), int(addr[1]))

    @property
    def registry(self) -> ConnectionRegistry:
        """Live sessions."""
        return self._server.registry

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._server.dispatcher
