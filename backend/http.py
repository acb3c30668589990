"""
HTTP/1.1 wire format for the Ollama-compatible server.

Parses a single request off a connection's byte stream and writes the
responses the API needs: buffered JSON, chunked NDJSON, JSON error envelopes
and the CORS preflight. Connections are never reused, so every response
carries "Connection: close".
"""

import json
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, BinaryIO

MAX_LINE_LENGTH = 65536
MAX_HEADERS = 100
MAX_BODY_SIZE = 32 * 1024 * 1024

JSON_CONTENT_TYPE = "application/json"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


# ========== ERROR TAXONOMY ==========
class HttpError(Exception):
    """A failure that maps onto an HTTP status and a JSON error envelope."""

    status: int = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, status: int | None = None):
        self.message = message or self.default_message
        if status is not None:
            self.status = status
        super().__init__(self.message)


class MalformedRequest(HttpError):
    status = HTTPStatus.BAD_REQUEST
    default_message = "Bad Request"


class NotFound(HttpError):
    status = HTTPStatus.NOT_FOUND
    default_message = "Not Found"


class MethodNotAllowed(HttpError):
    status = HTTPStatus.METHOD_NOT_ALLOWED
    default_message = "Method Not Allowed"


class ModelBusy(HttpError):
    status = HTTPStatus.SERVICE_UNAVAILABLE
    default_message = "Model is busy processing another request"


class ConfigurationLoadFailed(HttpError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR
    default_message = "Failed to load configuration"


class InternalServerError(HttpError):
    pass


# ========== REQUEST ==========
@dataclass
class HttpRequest:
    """One inbound request; header names are lower-cased."""

    method: str
    path: str
    version: str = "HTTP/1.1"
    query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_length(self) -> int:
        return len(self.body)

    def json(self) -> Any:
        """
        Decode the body as UTF-8 JSON.

        Raises:
            MalformedRequest: If the body is empty or not valid JSON
        """
        try:
            return json.loads(self.body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MalformedRequest(f"Invalid JSON: {e}") from e


def _read_line(stream: BinaryIO) -> str | None:
    raw = stream.readline(MAX_LINE_LENGTH + 1)
    if not raw:
        return None
    if len(raw) > MAX_LINE_LENGTH:
        raise MalformedRequest("Request line or header too long")
    return raw.decode("iso-8859-1").rstrip("\r\n")


def _parse_content_length(value: str | None) -> int:
    if value is None:
        return 0
    try:
        length = int(value)
    except ValueError:
        raise MalformedRequest(f"Invalid Content-Length: {value!r}") from None
    if length < 0:
        raise MalformedRequest(f"Invalid Content-Length: {value!r}")
    return length


def read_request(stream: BinaryIO) -> HttpRequest | None:
    """
    Read one request: request line, headers, then Content-Length bytes of body.

    Returns:
        The parsed request, or None if the client sent nothing

    Raises:
        MalformedRequest: On an unparsable request line, headers or a truncated body
    """
    request_line = _read_line(stream)
    if not request_line:
        return None

    parts = request_line.split()
    if len(parts) < 2:
        raise MalformedRequest("Bad Request")

    method, target = parts[0], parts[1]
    version = parts[2] if len(parts) > 2 else "HTTP/1.0"
    path, _, query = target.partition("?")

    headers: dict[str, str] = {}
    while True:
        line = _read_line(stream)
        if line is None:
            raise MalformedRequest("Connection closed before end of headers")
        if line == "":
            break
        if len(headers) >= MAX_HEADERS:
            raise MalformedRequest("Too many headers")

        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            continue
        headers[name.strip().lower()] = value.strip()

    content_length = _parse_content_length(headers.get("content-length"))
    if content_length > MAX_BODY_SIZE:
        raise MalformedRequest(f"Request body too large: {content_length} bytes")
    body = b""
    if content_length > 0:
        body = stream.read(content_length)
        if len(body) < content_length:
            raise MalformedRequest("Incomplete request body")

    return HttpRequest(method=method, path=path, version=version, query=query, headers=headers, body=body)


# ========== RESPONSES ==========
def timestamp() -> str:
    """Current UTC time as yyyy-MM-ddTHH:mm:ss.SSSZ."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _reason(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


def _head(status: int, headers: Iterable[tuple[str, str]]) -> bytes:
    lines = [f"HTTP/1.1 {int(status)} {_reason(status)}"]
    lines.append("Access-Control-Allow-Origin: *")
    lines.extend(f"{name}: {value}" for name, value in headers)
    lines.append("Connection: close")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


def write_json(wfile: BinaryIO, status: int, body: str | bytes) -> None:
    """Buffered JSON response with an exact byte Content-Length."""
    payload = body.encode("utf-8") if isinstance(body, str) else body
    wfile.write(
        _head(status, [("Content-Type", JSON_CONTENT_TYPE), ("Content-Length", str(len(payload)))]) + payload
    )
    wfile.flush()


def write_chunked(wfile: BinaryIO, lines: Iterable[str], status: int = HTTPStatus.OK) -> None:
    """
    NDJSON body in chunked transfer encoding: one chunk per line, then the
    zero-length terminator.
    """
    wfile.write(_head(status, [("Content-Type", NDJSON_CONTENT_TYPE), ("Transfer-Encoding", "chunked")]))
    for line in lines:
        chunk = (line + "\n").encode("utf-8")
        wfile.write(f"{len(chunk):x}\r\n".encode("ascii") + chunk + b"\r\n")
    wfile.write(b"0\r\n\r\n")
    wfile.flush()


def write_error(wfile: BinaryIO, status: int, message: str) -> None:
    """JSON error envelope, identical for every status."""
    write_json(wfile, status, json.dumps({"error": message}))


def write_no_content(wfile: BinaryIO) -> None:
    """204 answer to a CORS preflight."""
    wfile.write(
        _head(
            HTTPStatus.NO_CONTENT,
            [
                ("Access-Control-Allow-Methods", "GET, POST, OPTIONS"),
                ("Access-Control-Allow-Headers", "Content-Type"),
                ("Access-Control-Max-Age", "86400"),
            ],
        )
    )
    wfile.flush()
