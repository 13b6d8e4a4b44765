import socket
import threading
import time
from typing import Dict, Optional, Tuple

from .config import Config
from .engine import HTTPEngine
from .handler import PageHandler


def _quiet_close(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        pass


class ThreadedHTTPServer:
    """Accepts connections and hands each one to its own daemon thread.

    A client that never finishes its request only pins its own thread;
    everybody else keeps being served.
    """

    def __init__(self, config: Config, engine: Optional[HTTPEngine] = None) -> None:
        self.config = config
        self.engine = engine or HTTPEngine(config, PageHandler(config.index_path))

        self.ready = threading.Event()
        self._shutdown = threading.Event()
        self._listener: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None

        # live connection threads, so shutdown can unblock them
        self._live: Dict[threading.Thread, socket.socket] = {}
        self._live_lock = threading.Lock()

    @property
    def server_address(self) -> Optional[Tuple[str, int]]:
        return self._address

    @property
    def active_connections(self) -> int:
        with self._live_lock:
            return len(self._live)

    def run(self) -> None:
        self._shutdown.clear()
        self._listener = self._bind()
        self._address = self._listener.getsockname()[:2]

        print(f"Server running at http://localhost:{self._address[1]}/", flush=True)
        self.ready.set()

        try:
            self._serve()
        finally:
            _quiet_close(self._listener)
            self._listener = None
            self._release_connections()
            self.ready.clear()

    def stop(self) -> None:
        self._shutdown.set()
        listener = self._listener
        if listener is not None:
            _quiet_close(listener)

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            # restarts shouldn't trip over TIME_WAIT
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError:
            sock.close()
            raise
        # periodic wakeups so a stop() from a signal handler is noticed
        sock.settimeout(self.config.accept_timeout)
        return sock

    def _serve(self) -> None:
        while not self._shutdown.is_set():
            try:
                conn, addr = self._listener.accept()
            except socket.timeout:
                continue
            except OSError:
                # listener closed by stop()
                return
            self._spawn(conn, addr)

    def _spawn(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            conn.settimeout(self.config.recv_timeout)
            conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            _quiet_close(conn)
            return

        if self.config.debug:
            print(f"Accepted connection from {addr}", flush=True)

        worker = threading.Thread(
            target=self._serve_connection,
            args=(conn, addr),
            name=f"postpage-{addr[0]}:{addr[1]}",
            daemon=True,
        )
        with self._live_lock:
            self._live[worker] = conn
        worker.start()

    def _serve_connection(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        try:
            self.engine.handle_connection(conn)
        except Exception as e:
            if self.config.debug:
                print(f"Connection from {addr} failed: {e!r}", flush=True)
        finally:
            with self._live_lock:
                self._live.pop(threading.current_thread(), None)

    def _release_connections(self) -> None:
        with self._live_lock:
            live = list(self._live.items())

        deadline = time.monotonic() + self.config.shutdown_grace
        for worker, _ in live:
            worker.join(timeout=max(0.0, deadline - time.monotonic()))

        for worker, conn in live:
            if worker.is_alive():
                # wakes a recv() that is waiting on an idle client
                try:
                    conn.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass
                worker.join(timeout=1.0)
