# led_server/server.py

import errno
import socket
from dataclasses import dataclass
from typing import Callable, Optional

from jinja2 import Environment, PackageLoader

from . import config
from .gpio_line import DriveError, OutputLine
from .state import ControlState

COMMAND_PREFIX = "/send?message="
LINE_END = b"\r\n"

# accept() errors meaning the listening socket itself is gone.
LISTENER_DEAD = {errno.EBADF, errno.EINVAL, errno.ENOTSOCK}


class TransportError(Exception):
    """Read/write failure confined to a single connection."""


@dataclass(frozen=True)
class Request:
    method: str = ""
    path: str = ""
    protocol: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.method and self.path and self.protocol)


@dataclass(frozen=True)
class Response:
    content_type: str
    body: str

    def to_bytes(self) -> bytes:
        body = self.body.encode("utf-8")
        head = (
            "HTTP/1.1 200 OK\r\n"
            f"Content-Type: {self.content_type}\r\n"
            f"Content-Length: {len(body)}\r\n"
            "Connection: close\r\n"
            "\r\n"
        )
        return head.encode("ascii") + body


def render_control_page(title: str = "Raspberry Pi") -> str:
    env = Environment(loader=PackageLoader("led_server", "templates"), autoescape=True)
    return env.get_template("control.html").render(title=title)


def read_request_line(
    conn: socket.socket,
    chunk_size: int = config.RECV_CHUNK,
    max_size: int = config.MAX_REQUEST_LINE,
) -> bytes:
    """Block until the first CRLF arrives; return everything up to and including it."""
    buf = b""
    while True:
        end = buf.find(LINE_END)
        if end >= 0:
            return buf[: end + len(LINE_END)]
        if len(buf) > max_size:
            raise TransportError(f"Request line exceeds {max_size} bytes")

        try:
            data = conn.recv(chunk_size)
        except OSError as e:
            raise TransportError(f"Read failed: {e}") from e
        if not data:
            raise TransportError("Connection closed before end of request line")
        buf += data


def parse_request_line(line: str) -> Request:
    tokens = line.split()[:3]
    tokens += [""] * (3 - len(tokens))
    return Request(*tokens)


def dispatch(request: Request, state: ControlState, page: str) -> Response:
    if not request.complete or not request.path.startswith(COMMAND_PREFIX):
        return Response("text/html", page)

    message = request.path[len(COMMAND_PREFIX) :]
    if message == "on":
        state.led_on = True
    elif message == "off":
        state.led_on = False

    return Response("text/plain", f"button_pressed={state.value}")


class ControlLoop:
    """Single-threaded accept -> read -> dispatch -> respond loop.

    After every accepted connection the line is re-driven to the current
    state, whichever response was sent.
    """

    def __init__(
        self,
        line: OutputLine,
        state: Optional[ControlState] = None,
        host: str = config.HOST,
        port: int = config.PORT,
        page: Optional[str] = None,
        logger: Callable[[str], None] = print,
    ):
        self.line = line
        self.state = state if state is not None else ControlState()
        self.host = host
        self.port = port
        self.page = page if page is not None else render_control_page()
        self._log = logger
        self._sock: Optional[socket.socket] = None

    def bind(self) -> None:
        if self._sock is not None:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(config.LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        self._sock = sock
        # Port 0 means "any free port".
        self.port = sock.getsockname()[1]

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def serve_forever(self) -> None:
        self.bind()
        self._log(f"[MAIN] Server running on port {self.port}...")
        while True:
            self.serve_once()

    def serve_once(self) -> None:
        self.bind()
        try:
            conn, _addr = self._sock.accept()
        except OSError as e:
            if e.errno in LISTENER_DEAD:
                raise
            self._log(f"[HTTP] Accept failed: {e}")
            return

        with conn:
            try:
                self.handle(conn)
            except TransportError as e:
                self._log(f"[HTTP] {e}")

        self._refresh_line()

    def handle(self, conn: socket.socket) -> Response:
        raw = read_request_line(conn)
        request_line = raw.decode("latin-1").rstrip("\r\n")
        self._log(f"[HTTP] Client Request: {request_line}")

        response = dispatch(parse_request_line(request_line), self.state, self.page)
        try:
            conn.sendall(response.to_bytes())
        except OSError as e:
            raise TransportError(f"Write failed: {e}") from e

        self._log(f"[HTTP] Response sent. Current button_pressed = {self.state.value}")
        return response

    def _refresh_line(self) -> None:
        try:
            self.line.set_value(self.state.value)
        except DriveError as e:
            self._log(f"[GPIO] Drive failed: {e}")
