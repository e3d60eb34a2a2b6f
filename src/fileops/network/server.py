"""
LAN download server:
- Advertises itself with Zeroconf (_fileops._tcp.local.)
- Answers plain HTTP GET requests with the FileOps download responders

Requests:
    GET /<relative path>
    -> streams the file as an attachment; the extension picks the
       content type (csv, xlsx, json, pdf, zip, anything else is detected)

    GET /<relative path>?delete=1
    -> same, then removes the file (typed downloads only)

    GET /<relative folder>/
    -> plain-text listing of the folder

Usage:
    python -m fileops.network.server --root ./exports --port 9999
"""

from __future__ import annotations

import argparse
import logging
import socket
import threading
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from zeroconf import ServiceInfo, Zeroconf

from ..core.config import TRUTHY, Settings, load_settings
from ..core.exceptions import DownloadNotFoundError, HaltError
from ..core.file_ops import FileOps
from .responses import SocketResponseWriter, send_error

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_fileops._tcp.local."
MAX_REQUEST_BYTES = 8192

GLOBAL_LISTENING_SOCKET = None
SERVER_SHOULD_STOP = threading.Event()
SERVER_HALTED = threading.Event()


def get_local_ip():
    """A trick to get the current IP using a UDP socket."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        s.close()


def read_request_head(conn) -> bytes:
    """Receive bytes until the end of the request headers."""
    data = b""
    while b"\r\n\r\n" not in data and b"\n\n" not in data:
        chunk = conn.recv(1024)
        if not chunk:
            break
        data += chunk
        if len(data) > MAX_REQUEST_BYTES:
            break
    return data


def get_safe_path(root: Path, relative: str) -> Optional[Path]:
    # Keeps requests inside the served root; None means traversal.
    candidate = (root / relative).resolve()
    if candidate != root and root not in candidate.parents:
        return None
    return candidate


def pick_responder(ops: FileOps, extension: str) -> Optional[Callable[..., None]]:
    """Typed download method for *extension*, None for detection."""
    return {
        "csv": ops.download_csv,
        "xlsx": ops.download_excel,
        "json": ops.download_json,
        "pdf": ops.download_pdf,
        "zip": ops.download_zip,
    }.get(extension.lower())


def send_listing(conn, ops: FileOps, folder: Path) -> None:
    ops.read_folder(str(folder))
    body = ("\n".join(ops.last_listing) + "\n").encode()
    writer = SocketResponseWriter(conn)
    writer.header("Content-Type", "text/plain; charset=utf-8")
    writer.header("Content-Length", str(len(body)))
    writer.write(body)


def handle_client(conn, addr, context: Dict[str, Any]) -> None:
    """Handle a single HTTP request."""
    logger.info("Connection from %s", addr)
    conn.settimeout(10.0)

    root: Path = context["root"]
    settings: Settings = context.get("settings") or Settings()
    writer = SocketResponseWriter(conn)
    # Deletes always target the served path, never a name under the cwd.
    ops = FileOps(
        writer=writer, legacy_mime_from_folder=settings.legacy_mime_from_folder
    )

    try:
        head = read_request_head(conn)
        request_line = head.decode("latin-1").splitlines()[0] if head else ""
        parts = request_line.split()
        if len(parts) < 2:
            send_error(conn, HTTPStatus.BAD_REQUEST)
            return

        method, target = parts[0].upper(), parts[1]
        logger.info("Received %s %s from %s", method, target, addr)
        if method != "GET":
            send_error(conn, HTTPStatus.METHOD_NOT_ALLOWED)
            return

        url = urlsplit(target)
        relative = unquote(url.path).lstrip("/")
        delete = parse_qs(url.query).get("delete", [""])[0].lower() in TRUTHY

        path = get_safe_path(root, relative)
        if path is None:
            send_error(conn, HTTPStatus.FORBIDDEN)
            logger.warning("Rejected path outside root: %s", relative)
            return

        if path.is_dir():
            send_listing(conn, ops, path)
            return

        folder, name = str(path.parent), path.name
        responder = pick_responder(ops, ops.file_extension(name))
        if responder is None:
            ops.download(name, folder)
        else:
            responder(name, folder, delete=delete)
        logger.info("Sent file: %s", path)

    except DownloadNotFoundError as e:
        send_error(conn, HTTPStatus.NOT_FOUND, str(e))
        logger.info("%s", e)
    except HaltError as e:
        logger.critical("%s", e.message)
        if not writer.headers_sent:
            send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR)
        SERVER_HALTED.set()
        stop_server()
    except socket.timeout:
        logger.info("Timeout from %s", addr)
    except OSError as e:
        logger.error("Error handling %s: %s", addr, e)
        if not writer.headers_sent:
            try:
                send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR)
            except OSError:
                pass
    finally:
        conn.close()
        logger.debug("Disconnected %s", addr)


def start_tcp_server(context: Dict[str, Any], port: int) -> None:
    """Start a simple threaded TCP server."""
    global GLOBAL_LISTENING_SOCKET

    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    s.bind(("", port))
    s.listen(5)

    GLOBAL_LISTENING_SOCKET = s
    SERVER_SHOULD_STOP.clear()
    SERVER_HALTED.clear()

    logger.info("Download server listening on port %d (root %s)", port, context["root"])

    while not SERVER_SHOULD_STOP.is_set():
        try:
            # short timeout so the loop can check SERVER_SHOULD_STOP
            s.settimeout(0.5)
            conn, addr = s.accept()
            s.settimeout(None)
            t = threading.Thread(
                target=handle_client, args=(conn, addr, context), daemon=True
            )
            t.start()
        except socket.timeout:
            continue
        except OSError as e:
            # raised once stop_server() closes the listening socket
            if not SERVER_SHOULD_STOP.is_set():
                logger.error("Unexpected error in server loop: %s", e)
            break

    if GLOBAL_LISTENING_SOCKET:
        try:
            GLOBAL_LISTENING_SOCKET.close()
        except OSError:
            pass
        GLOBAL_LISTENING_SOCKET = None
    logger.info("Download server stopped.")


def stop_server() -> None:
    """Signal the listening loop to stop and close its socket."""
    if not GLOBAL_LISTENING_SOCKET:
        logger.debug("Server socket is already closed or not initialized.")
        return

    SERVER_SHOULD_STOP.set()
    try:
        GLOBAL_LISTENING_SOCKET.close()
    except OSError as e:
        logger.error("Error closing server socket: %s", e)


# Zeroconf advertisement
def advertise_service(name, port, service=SERVICE_TYPE):
    """Advertise this server using Zeroconf."""
    zeroconf = Zeroconf()
    local_ip = get_local_ip()
    props = {"name": name, "version": FileOps.version()}

    info = ServiceInfo(
        service,
        f"{name}.{service}",
        addresses=[socket.inet_aton(local_ip)],
        port=port,
        properties=props,
        server=f"{socket.gethostname()}.local.",
    )
    zeroconf.register_service(info)
    logger.info("Zeroconf service registered: %s @ %s:%d (%s)", name, local_ip, port, service)
    return zeroconf, info


def serve(
    root: str,
    port: int,
    settings: Optional[Settings] = None,
    advertise: bool = True,
    name: Optional[str] = None,
) -> bool:
    """Run the server until interrupted; returns False if it stopped on a halt."""
    context = {"root": Path(root).resolve(), "settings": settings or Settings()}
    name = name or f"FileOps-{socket.gethostname()}"

    zeroconf = info = None
    if advertise:
        zeroconf, info = advertise_service(name, port)

    try:
        start_tcp_server(context, port)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        if zeroconf is not None:
            logger.info("Unregistering Zeroconf service...")
            try:
                zeroconf.unregister_service(info)
            except Exception:
                pass
            zeroconf.close()
    return not SERVER_HALTED.is_set()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="FileOps LAN download server")
    parser.add_argument("--root", default=None, help="Folder to serve")
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--name", default=None)
    parser.add_argument("--no-advertise", action="store_true")
    return parser


# Main entry point
def main(argv: Optional[List[str]] = None) -> None:
    from ..frontend.cli.logging_config import configure_logging

    args = build_arg_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    ok = serve(
        args.root or settings.serve_root,
        args.port or settings.port,
        settings=settings,
        advertise=not args.no_advertise,
        name=args.name,
    )
    if not ok:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
