"""
Response writers used by the download responders.

A writer receives headers first and then the body in chunks:

    writer.header("Content-Type", "text/csv")
    writer.write(b"a,b\\n")
"""

from __future__ import annotations

import socket
from http import HTTPStatus
from typing import List, Tuple


class ResponseWriter:
    """Sink for one HTTP response."""

    def header(self, name: str, value: str) -> None:
        raise NotImplementedError

    def write(self, data: bytes) -> None:
        raise NotImplementedError


class BufferedResponseWriter(ResponseWriter):
    """Keeps the whole response in memory."""

    def __init__(self) -> None:
        self.headers: List[Tuple[str, str]] = []
        self.body = bytearray()

    def header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def write(self, data: bytes) -> None:
        self.body.extend(data)

    def get_header(self, name: str) -> str | None:
        # last one wins, like repeated header() calls
        for key, value in reversed(self.headers):
            if key.lower() == name.lower():
                return value
        return None


class SocketResponseWriter(ResponseWriter):
    """Writes an HTTP/1.1 response straight to a connected socket."""

    def __init__(self, conn: socket.socket, status: int = HTTPStatus.OK):
        self.conn = conn
        self.status = HTTPStatus(status)
        self.headers: List[Tuple[str, str]] = []
        self.headers_sent = False

    def header(self, name: str, value: str) -> None:
        if self.headers_sent:
            raise RuntimeError("Headers already sent")
        self.headers.append((name, value))

    def _send_headers(self) -> None:
        lines = [f"HTTP/1.1 {self.status.value} {self.status.phrase}"]
        lines.extend(f"{name}: {value}" for name, value in self.headers)
        lines.append("Connection: close")
        head = "\r\n".join(lines) + "\r\n\r\n"
        self.conn.sendall(head.encode("latin-1"))
        self.headers_sent = True

    def write(self, data: bytes) -> None:
        if not self.headers_sent:
            self._send_headers()
        if data:
            self.conn.sendall(data)

    def finish(self) -> None:
        """Flush the headers if no body was written."""
        if not self.headers_sent:
            self._send_headers()


def send_error(conn: socket.socket, status: int, message: str = "") -> None:
    """Send a short plain-text error response."""
    status = HTTPStatus(status)
    body = (message or status.phrase).encode() + b"\n"
    writer = SocketResponseWriter(conn, status)
    writer.header("Content-Type", "text/plain; charset=utf-8")
    writer.header("Content-Length", str(len(body)))
    writer.write(body)
