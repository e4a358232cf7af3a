"""TCP game server: accept loop, per-connection threads and heartbeat.

Each accepted socket becomes a :class:`Connection` with two daemon threads:
a reader that feeds newline-delimited JSON frames to the dispatcher, and a
writer draining an outbound queue.  ``send`` only enqueues, so game code can
emit messages while holding a session lock.  When the reader hits EOF (peer
closed, heartbeat write failed, server shutting down) the dispatcher is told
exactly once that the connection is gone.

Run with ``python -m seabattle.server`` or the ``seabattle-server`` script.
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import os
import queue
import signal
import socket
import sys
import threading
from typing import Iterator

from . import config as _cfg
from . import protocol
from .dispatcher import Dispatcher
from .registry import Registry

HOST = _cfg.DEFAULT_HOST
PORT = _cfg.DEFAULT_PORT

# Initialize module-level logger
logger = logging.getLogger(__name__)


class Connection:
    """One client stream: line reader, queued line writer, close-once."""

    def __init__(self, sock: socket.socket, addr) -> None:
        self.sock = sock
        self.addr = addr
        self._rfile = sock.makefile("r", encoding="utf-8", newline="\n")
        self._wfile = sock.makefile("w", encoding="utf-8", newline="\n")
        self._out: queue.Queue[str | None] = queue.Queue()
        self._closed = threading.Event()
        self._writer = threading.Thread(target=self._write_loop, name=f"writer-{addr}", daemon=True)
        self._writer.start()

    def __repr__(self) -> str:
        return f"Connection({self.addr})"

    def send(self, msg: dict) -> None:
        if not self._closed.is_set():
            self._out.put(protocol.encode(msg))

    def lines(self) -> Iterator[str]:
        """Yield inbound lines until the peer closes or the socket fails."""
        while True:
            try:
                line = self._rfile.readline()
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("%r read failed: %s", self, e)
                return
            if not line:
                return
            line = line.strip()
            if line:
                yield line

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._out.put(None)
        with contextlib.suppress(OSError):
            self.sock.shutdown(socket.SHUT_RDWR)

    def release(self) -> None:
        """Close file objects and the socket once both threads are done with them."""
        self.close()
        self._writer.join(timeout=1.0)
        for f in (self._rfile, self._wfile):
            with contextlib.suppress(OSError):
                f.close()
        self.sock.close()

    def _write_loop(self) -> None:
        while True:
            line = self._out.get()
            if line is None:
                return
            try:
                self._wfile.write(line + "\n")
                self._wfile.flush()
            except OSError as e:
                logger.debug("%r write failed: %s", self, e)
                self.close()
                return


class GameServer:
    """Accepts clients and wires them to a :class:`Dispatcher` sharing one registry."""

    def __init__(
        self,
        host: str = HOST,
        port: int = PORT,
        *,
        registry: Registry | None = None,
        heartbeat: float = _cfg.HEARTBEAT_INTERVAL,
    ) -> None:
        self.host = host
        self.port = port
        self.registry = registry if registry is not None else Registry()
        self.dispatcher = Dispatcher(self.registry, self)
        self.heartbeat = heartbeat
        self._lock = threading.Lock()
        self._conns: set[Connection] = set()
        self._sock: socket.socket | None = None
        self._stopping = threading.Event()
        self._shut_down = False
        self._threads: list[threading.Thread] = []

    # ------------------------------------------------------------------
    # Transport interface used by the dispatcher
    # ------------------------------------------------------------------
    def send(self, conn: Connection, msg: dict) -> None:
        conn.send(msg)

    def broadcast(self, msg: dict) -> None:
        with self._lock:
            conns = list(self._conns)
        for conn in conns:
            conn.send(msg)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def address(self) -> tuple[str, int]:
        if self._sock is None:
            raise RuntimeError("server not started")
        return self._sock.getsockname()[:2]

    def start(self) -> tuple[str, int]:
        """Bind, listen and start the accept and heartbeat threads. Returns the bound address."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.host, self.port))
        sock.listen()
        self._sock = sock
        self._spawn(self._accept_loop, "accept")
        if self.heartbeat > 0:
            self._spawn(self._heartbeat_loop, "heartbeat")
        logger.info("Game server listening on %s:%d", *self.address)
        return self.address

    def serve_forever(self) -> None:
        """Start and block until :meth:`stop` is called, then shut down."""
        self.start()
        self._stopping.wait()
        self.shutdown()

    def stop(self) -> None:
        """Ask :meth:`serve_forever` to return. Safe to call from a signal handler."""
        self._stopping.set()

    def shutdown(self) -> None:
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
        self._stopping.set()
        if self._sock is not None:
            # shutdown() is what wakes a thread blocked in accept() on Linux
            with contextlib.suppress(OSError):
                self._sock.shutdown(socket.SHUT_RDWR)
            with contextlib.suppress(OSError):
                self._sock.close()
        with self._lock:
            conns = list(self._conns)
        for conn in conns:
            conn.close()
        for t in self._threads:
            t.join(timeout=2.0)
        logger.info("Game server stopped")

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------
    def _spawn(self, target, name: str, *args) -> threading.Thread:
        t = threading.Thread(target=target, name=name, args=args, daemon=True)
        t.start()
        self._threads.append(t)
        return t

    def _accept_loop(self) -> None:
        assert self._sock is not None
        while not self._stopping.is_set():
            try:
                sock, addr = self._sock.accept()
            except OSError:
                break
            # Enable TCP keepalive to detect dead peers promptly
            with contextlib.suppress(OSError):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            conn = Connection(sock, addr)
            with self._lock:
                self._conns.add(conn)
            logger.info("Connection from %s", addr)
            threading.Thread(target=self._serve, args=(conn,), name=f"reader-{addr}", daemon=True).start()

    def _serve(self, conn: Connection) -> None:
        try:
            for line in conn.lines():
                self.dispatcher.handle(conn, line)
        finally:
            with self._lock:
                self._conns.discard(conn)
            conn.close()
            self.dispatcher.disconnected(conn)
            conn.release()
            logger.info("Connection %s closed", conn.addr)

    def _heartbeat_loop(self) -> None:
        while not self._stopping.wait(self.heartbeat):
            self.broadcast(protocol.ping())


def main() -> None:  # pragma: no cover – side-effect entrypoint
    """Run the game server until SIGINT/SIGTERM."""
    parser = argparse.ArgumentParser(description="Naval combat game server")
    parser.add_argument("--host", default=HOST, help="Address to bind (default: %(default)s).")
    parser.add_argument("--port", type=int, default=PORT, help="Port to listen on (default: %(default)s).")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity.",
    )
    parser.add_argument(
        "-s",
        "--silent",
        "-q",
        "--quiet",
        dest="silent",
        action="store_true",
        help="Suppress all output.",
    )
    args = parser.parse_args()

    if args.debug:
        os.environ["SEABATTLE_DEBUG"] = "1"

    # Determine log level from CLI flags:
    if args.silent:
        level = logging.ERROR
    elif args.debug or _cfg.DEBUG:
        level = logging.DEBUG
    elif args.verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    server = GameServer(args.host, args.port)

    # install graceful shutdown handler
    def _shutdown(signum, frame):
        # ensure the "C" echo doesn't get stuck on our log line
        sys.stderr.write("\n")
        logger.info("Received signal %s, shutting down", signum)
        server.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    server.serve_forever()


if __name__ == "__main__":  # pragma: no cover
    main()
