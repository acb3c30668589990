"""
Tests for the HTTP wire format (backend.http).
Requests are parsed from, and responses written to, in-memory byte streams.
"""

import io
import json
import re

import pytest

from backend.http import (
    MAX_HEADERS,
    HttpRequest,
    MalformedRequest,
    ModelBusy,
    read_request,
    timestamp,
    write_chunked,
    write_error,
    write_json,
    write_no_content,
)


def _split(raw: bytes) -> tuple[str, dict[str, str], bytes]:
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(": ")
        headers[name] = value
    return lines[0], headers, body


class TestReadRequest:
    """Test request parsing."""

    def test_parse_post_with_body(self):
        body = b'{"prompt": "Hi"}'
        stream = io.BytesIO(
            b"POST /api/generate?verbose=1 HTTP/1.1\r\n"
            b"Host: localhost\r\n"
            b"Content-Type: application/json\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n"
            b"\r\n" + body
        )

        request = read_request(stream)

        assert request.method == "POST"
        assert request.path == "/api/generate"
        assert request.query == "verbose=1"
        assert request.version == "HTTP/1.1"
        assert request.headers["content-type"] == "application/json"
        assert request.body == body
        assert request.json() == {"prompt": "Hi"}

    def test_parse_get_without_body(self):
        request = read_request(io.BytesIO(b"GET /api/tags HTTP/1.1\r\nHost: x\r\n\r\n"))

        assert request.method == "GET"
        assert request.body == b""
        assert request.content_length == 0

    def test_lf_only_line_endings(self):
        request = read_request(io.BytesIO(b"GET / HTTP/1.1\nHost: x\n\n"))
        assert request.path == "/"

    def test_empty_connection(self):
        assert read_request(io.BytesIO(b"")) is None

    def test_bad_request_line(self):
        with pytest.raises(MalformedRequest):
            read_request(io.BytesIO(b"GARBAGE\r\n\r\n"))

    def test_connection_closed_in_headers(self):
        with pytest.raises(MalformedRequest):
            read_request(io.BytesIO(b"GET / HTTP/1.1\r\nHost: x\r\n"))

    def test_invalid_content_length(self):
        with pytest.raises(MalformedRequest):
            read_request(io.BytesIO(b"POST / HTTP/1.1\r\nContent-Length: lots\r\n\r\n"))

    def test_truncated_body(self):
        with pytest.raises(MalformedRequest):
            read_request(io.BytesIO(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc"))

    def test_oversized_body_rejected_before_reading(self):
        stream = io.BytesIO(f"POST / HTTP/1.1\r\nContent-Length: {10**15}\r\n\r\nabc".encode())
        with pytest.raises(MalformedRequest) as exc_info:
            read_request(stream)
        assert exc_info.value.status == 400
        assert "too large" in exc_info.value.message

    def test_too_many_headers(self):
        headers = b"".join(f"X-H{i}: v\r\n".encode() for i in range(MAX_HEADERS + 1))
        with pytest.raises(MalformedRequest):
            read_request(io.BytesIO(b"GET / HTTP/1.1\r\n" + headers + b"\r\n"))

    def test_invalid_json_body(self):
        request = HttpRequest(method="POST", path="/api/generate", body=b"{nope")
        with pytest.raises(MalformedRequest) as exc_info:
            request.json()
        assert exc_info.value.message.startswith("Invalid JSON")


class TestResponses:
    """Test response writers."""

    def test_write_json(self):
        out = io.BytesIO()
        body = json.dumps({"response": "héllo"}, ensure_ascii=False)

        write_json(out, 200, body)

        status_line, headers, payload = _split(out.getvalue())
        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Content-Type"] == "application/json"
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Connection"] == "close"
        assert int(headers["Content-Length"]) == len(payload) == len(body.encode("utf-8"))

    def test_write_chunked_framing(self):
        """Test the exact chunked encoding of an NDJSON body."""
        out = io.BytesIO()

        write_chunked(out, ['{"done":true}'])

        status_line, headers, payload = _split(out.getvalue())
        assert status_line == "HTTP/1.1 200 OK"
        assert headers["Content-Type"] == "application/x-ndjson"
        assert headers["Transfer-Encoding"] == "chunked"
        assert "Content-Length" not in headers
        assert payload == b'e\r\n{"done":true}\n\r\n0\r\n\r\n'

    def test_write_error_envelope(self):
        out = io.BytesIO()
        error = ModelBusy()

        write_error(out, error.status, error.message)

        status_line, _, payload = _split(out.getvalue())
        assert status_line == "HTTP/1.1 503 Service Unavailable"
        assert json.loads(payload) == {"error": "Model is busy processing another request"}

    def test_write_no_content(self):
        out = io.BytesIO()

        write_no_content(out)

        status_line, headers, payload = _split(out.getvalue())
        assert status_line == "HTTP/1.1 204 No Content"
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"
        assert headers["Access-Control-Allow-Headers"] == "Content-Type"
        assert headers["Access-Control-Max-Age"] == "86400"
        assert payload == b""

    def test_timestamp_format(self):
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", timestamp())
