import socket
import threading

import pytest

from postpage.config import Config
from postpage.engine import HTTPEngine
from postpage.handler import PageHandler
from postpage.server import ThreadedHTTPServer

PAGE = b"<!DOCTYPE html>\n<html><body><h1>caf\xc3\xa9</h1></body></html>\n"


def parse_response(raw: bytes):
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    _, status, reason = lines[0].split(" ", 2)
    headers = {}
    for line in lines[1:]:
        k, v = line.split(":", 1)
        headers[k.strip().lower()] = v.strip()
    return int(status), reason, headers, body


def recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(65536)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


@pytest.fixture
def page_dir(tmp_path):
    (tmp_path / "index.html").write_bytes(PAGE)
    return tmp_path


@pytest.fixture
def config(page_dir):
    return Config(host="127.0.0.1", port=0, root=str(page_dir), accept_timeout=0.1, shutdown_grace=0.5)


@pytest.fixture
def engine(config):
    return HTTPEngine(config, PageHandler(config.index_path), server_name="postpage-test")


@pytest.fixture
def exchange(engine):
    """Push raw bytes through the engine over a socketpair and return the raw reply."""

    def _exchange(raw: bytes, half_close: bool = False) -> bytes:
        client, server_side = socket.socketpair()
        with client:
            client.sendall(raw)
            if half_close:
                client.shutdown(socket.SHUT_WR)
            engine.handle_connection(server_side)
            return recv_all(client)

    return _exchange


@pytest.fixture
def running_server(config):
    server = ThreadedHTTPServer(config)
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    assert server.ready.wait(5), "server did not start"
    yield server
    server.stop()
    thread.join(timeout=5)
    assert not thread.is_alive()
