import socket
from email.utils import formatdate
from urllib.parse import unquote

from .models import Request, ResponseSpec


class PeerClosed(Exception):
    """Raised when the client goes away before the request is complete."""


def parse_head(head: bytes) -> Request:
    """Turn a raw header block (without the blank line) into a Request."""
    request_line, _, rest = head.decode("iso-8859-1").partition("\r\n")
    try:
        method, target, version = request_line.split()
    except ValueError:
        raise ValueError(f"bad request line: {request_line!r}") from None
    if not version.startswith("HTTP/"):
        raise ValueError(f"bad http version: {version!r}")

    headers = {}
    for line in rest.split("\r\n"):
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()

    return Request(
        method=method,
        target=target,
        path=unquote(target.partition("?")[0]),
        version=version,
        headers=headers,
    )


class RecvBuffer:
    def __init__(self, conn: socket.socket, chunk_size: int) -> None:
        self.conn = conn
        self.chunk_size = chunk_size
        self.buf = bytearray()

    def _fill(self) -> None:
        chunk = self.conn.recv(self.chunk_size)
        if chunk == b"":
            raise PeerClosed()
        self.buf.extend(chunk)

    def read_until(self, delim: bytes, limit: int | None = None) -> bytes:
        """Return everything up to and excluding delim, consuming both.

        Raises ValueError once more than limit bytes arrive without delim.
        """
        while True:
            idx = self.buf.find(delim)
            seen = idx if idx >= 0 else len(self.buf)
            if limit is not None and seen > limit:
                raise ValueError(f"no {delim!r} within {limit} bytes")
            if idx >= 0:
                data = bytes(self.buf[:idx])
                del self.buf[:idx + len(delim)]
                return data
            self._fill()

    def read_exact(self, n: int) -> bytes:
        while len(self.buf) < n:
            self._fill()
        data = bytes(self.buf[:n])
        del self.buf[:n]
        return data


class HTTPEngine:
    """Speaks one request/response exchange per connection, then hangs up."""

    def __init__(self, config, request_handler, server_name=None) -> None:
        self.config = config
        self.request_handler = request_handler
        self.server_name = server_name or f"postpage/{socket.gethostname()}"

    def handle_connection(self, conn: socket.socket) -> None:
        try:
            self._exchange(conn)
        finally:
            try:
                conn.close()
            except OSError:
                pass

    def _exchange(self, conn: socket.socket) -> None:
        reader = RecvBuffer(conn, self.config.chunk_size)
        try:
            head = reader.read_until(b"\r\n\r\n", limit=self.config.max_header_bytes)
            req = self._read_body(reader, parse_head(head))
            resp = self.request_handler.handle(req)
        except (PeerClosed, ConnectionError, socket.timeout, TimeoutError):
            return
        except ValueError:
            resp = ResponseSpec.text(400, "Bad Request", "Bad Request\n")
        except Exception:
            resp = ResponseSpec.text(500, "Internal Server Error", "Internal Server Error\n")
        self._send(conn, resp)

    def _read_body(self, reader: RecvBuffer, req: Request) -> Request:
        chunked = "chunked" in req.headers.get("transfer-encoding", "").lower()
        if chunked:
            length = None
        elif "content-length" in req.headers:
            length = int(req.headers["content-length"])
            if length < 0:
                raise ValueError("negative content-length")
        else:
            return req

        # clients like curl hold back large bodies until told to go ahead
        if req.headers.get("expect", "").lower() == "100-continue" and req.version == "HTTP/1.1":
            reader.conn.sendall(b"HTTP/1.1 100 Continue\r\n\r\n")

        body = self._read_chunked(reader) if chunked else reader.read_exact(length)

        return Request(
            method=req.method,
            target=req.target,
            path=req.path,
            version=req.version,
            headers=req.headers,
            body=body,
        )

    def _read_chunked(self, reader: RecvBuffer) -> bytes:
        body = bytearray()
        while True:
            size_line = reader.read_until(b"\r\n")
            size = int(size_line.split(b";", 1)[0].strip(), 16)
            if size < 0:
                raise ValueError("negative chunk size")
            if size == 0:
                break
            body.extend(reader.read_exact(size))
            if reader.read_exact(2) != b"\r\n":
                raise ValueError("bad chunk terminator")

        # trailers, ended by an empty line
        while reader.read_until(b"\r\n"):
            pass
        return bytes(body)

    def _send(self, conn: socket.socket, resp: ResponseSpec) -> None:
        headers = dict(resp.headers)
        headers.setdefault("Date", formatdate(usegmt=True))
        headers.setdefault("Server", self.server_name)
        headers.setdefault("Connection", "close")
        headers.setdefault("Content-Length", str(len(resp.body)))

        status_line = f"HTTP/1.1 {resp.status} {resp.reason}\r\n"
        header_block = status_line + "".join(f"{k}: {v}\r\n" for k, v in headers.items()) + "\r\n"
        conn.sendall(header_block.encode("iso-8859-1") + resp.body)
