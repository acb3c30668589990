"""
Ollama-compatible request server.

A plain socket listener: one accept thread hands every connection to a worker
pool; each connection carries exactly one request and is closed once the
response is written (or parsing fails). Handlers live in backend.api and run
against the shared ServerResources.
"""

import logging
import socket
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from http import HTTPStatus
from typing import BinaryIO, Optional

from backend.api.generation import handle_chat, handle_generate
from backend.api.tags import handle_status, handle_tags
from backend.dependencies import ServerResources
from backend.http import (
    HttpError,
    HttpRequest,
    MalformedRequest,
    MethodNotAllowed,
    NotFound,
    read_request,
    write_error,
    write_no_content,
)
from src.core.events import EventType

logger = logging.getLogger(__name__)

Handler = Callable[[ServerResources, HttpRequest, BinaryIO], None]

# ========== ROUTING TABLE ==========
ROUTES: dict[str, dict[str, Handler]] = {
    "/api/generate": {"POST": handle_generate},
    "/api/chat": {"POST": handle_chat},
    "/api/tags": {"GET": handle_tags, "POST": handle_tags},
    "/api/tags/": {"GET": handle_tags, "POST": handle_tags},
    "/": {"GET": handle_status},
    "/api": {"GET": handle_status},
}


def resolve_route(method: str, path: str) -> Handler:
    """
    Find the handler for an exact (method, path) pair.

    Raises:
        NotFound: If the path is unknown
        MethodNotAllowed: If the path is known but not for this method
    """
    methods = ROUTES.get(path)
    if methods is None:
        raise NotFound()
    handler = methods.get(method)
    if handler is None:
        raise MethodNotAllowed()
    return handler


class RequestServer:
    """Socket listener serving the Ollama-compatible API."""

    ACCEPT_POLL_INTERVAL = 0.5

    def __init__(
        self,
        resources: ServerResources,
        host: Optional[str] = None,
        port: Optional[int] = None,
        max_workers: Optional[int] = None,
        client_timeout: Optional[float] = None,
        preload: Optional[bool] = None,
    ):
        server_config = resources.config.server
        self.resources = resources
        self.host = host if host is not None else server_config.host
        self.port = port if port is not None else server_config.port
        self.max_workers = max_workers or server_config.max_workers
        self.client_timeout = client_timeout or server_config.client_timeout
        self.preload = server_config.preload_default if preload is None else preload

        self._running = threading.Event()
        self._server_socket: socket.socket | None = None
        self._accept_thread: threading.Thread | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def __enter__(self) -> "RequestServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # ========== LIFECYCLE ==========
    def start(self) -> None:
        """
        Bind the listening socket and start accepting connections.

        Binding happens synchronously, so a port conflict raises here. With
        port 0 the bound ephemeral port is available as ``self.port``.
        """
        if self._running.is_set():
            logger.warning("Server already running")
            return

        server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((self.host, self.port))
            server_socket.listen(128)
            server_socket.settimeout(self.ACCEPT_POLL_INTERVAL)
        except OSError as e:
            server_socket.close()
            logger.error(f"Failed to start server: {e}")
            self.resources.events.publish(EventType.ERROR, None, f"Failed to start server: {e}")
            raise

        self._server_socket = server_socket
        self.port = server_socket.getsockname()[1]
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="llamadock-conn")
        self._running.set()

        self._accept_thread = threading.Thread(target=self._accept_loop, name="llamadock-accept", daemon=True)
        self._accept_thread.start()

        logger.info(f"Ollama API server started on {self.host}:{self.port}")
        self.resources.events.publish(EventType.SERVER_STARTED, str(self.port))

        if self.preload:
            self._executor.submit(self.resources.session.preload)

    def stop(self) -> None:
        """
        Stop accepting, force-close in-flight connections and drop queued ones.

        In-flight inference is not interrupted; its response write simply fails.
        """
        if not self._running.is_set():
            return
        self._running.clear()

        if self._server_socket is not None:
            try:
                self._server_socket.close()
            except OSError as e:
                logger.error(f"Error closing server socket: {e}")

        with self._connections_lock:
            connections = list(self._connections)
        for connection in connections:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # already disconnected

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        if self._accept_thread is not None:
            self._accept_thread.join(timeout=self.ACCEPT_POLL_INTERVAL * 4)

        logger.info("Ollama API server stopped")
        self.resources.events.publish(EventType.SERVER_STOPPED, str(self.port))

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the accept loop exits."""
        if self._accept_thread is not None:
            self._accept_thread.join(timeout)

    def _accept_loop(self) -> None:
        while self._running.is_set():
            try:
                client, address = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running.is_set():
                    logger.error(f"Error accepting connection: {e}")
                    continue
                break

            try:
                self._executor.submit(self._handle_connection, client, address)
            except RuntimeError:
                # Pool already shut down by stop()
                client.close()
                break

    # ========== PER-CONNECTION ==========
    def _handle_connection(self, client: socket.socket, address) -> None:
        with self._connections_lock:
            self._connections.add(client)
        try:
            client.settimeout(self.client_timeout)
            with client.makefile("rb") as rfile, client.makefile("wb") as wfile:
                self._serve(rfile, wfile)
        except OSError as e:
            logger.warning(f"Connection error from {address[0]}:{address[1]}: {e}")
        except Exception:
            logger.error("Error handling client", exc_info=True)
        finally:
            with self._connections_lock:
                self._connections.discard(client)
            client.close()

    def _serve(self, rfile: BinaryIO, wfile: BinaryIO) -> None:
        """Read one request, dispatch it and write the response."""
        try:
            request = read_request(rfile)
        except MalformedRequest as e:
            logger.warning(f"Malformed request: {e.message}")
            write_error(wfile, e.status, e.message)
            return

        if request is None:
            return

        logger.debug(f"Request: {request.method} {request.path}")
        self.resources.events.publish(EventType.REQUEST_RECEIVED, f"{request.method} {request.path}")

        if request.method == "OPTIONS":
            write_no_content(wfile)
            return

        try:
            handler = resolve_route(request.method, request.path)
            handler(self.resources, request, wfile)
        except HttpError as e:
            write_error(wfile, e.status, e.message)
        except OSError:
            raise
        except Exception as e:
            logger.error(f"Unhandled error for {request.method} {request.path}: {e}", exc_info=True)
            write_error(wfile, HTTPStatus.INTERNAL_SERVER_ERROR, "Internal Server Error")
