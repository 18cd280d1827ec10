import io
import json
import os
import threading
import time

import pytest

from obsidianls.rpc import (
    INTERNAL_ERROR,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    Connection,
    RpcError,
)


class Sink(io.BytesIO):
    """A writer that keeps its data after being closed."""

    def __init__(self):
        super().__init__()
        self.was_closed = False
        self._lock = threading.Lock()

    def write(self, data):
        with self._lock:
            return super().write(data)

    def snapshot(self):
        with self._lock:
            return self.getvalue()

    def close(self):
        self.was_closed = True


def frame(message) -> bytes:
    body = json.dumps(message).encode("utf-8")
    return b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body


def split_frames(data: bytes):
    out = []
    while data:
        header, _, rest = data.partition(b"\r\n\r\n")
        length = int(header.split(b":", 1)[1].strip())
        out.append((length, rest[:length]))
        data = rest[length:]
    return out


def messages(data: bytes):
    return [json.loads(body) for _, body in split_frames(data)]


def wait_for_messages(sink, count, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        got = messages(sink.snapshot())
        if len(got) >= count:
            return got
        time.sleep(0.01)
    raise AssertionError("no message written")


@pytest.fixture
def serving():
    r, w = os.pipe()
    reader = os.fdopen(r, "rb")
    feed = os.fdopen(w, "wb")
    sink = Sink()
    conn = Connection(reader, sink)
    server = threading.Thread(target=conn.serve, args=(lambda m, p: None,), daemon=True)
    server.start()
    yield conn, feed, sink
    if not feed.closed:
        feed.close()
    server.join(5)


def test_notify_frames_message_with_byte_length():
    sink = Sink()
    conn = Connection(io.BytesIO(), sink)
    conn.notify("window/logMessage", {"message": "中文 ok"})
    frames = split_frames(sink.getvalue())
    assert len(frames) == 1
    length, body = frames[0]
    assert length == len(body)
    msg = json.loads(body)
    assert msg == {
        "jsonrpc": JSONRPC_VERSION,
        "method": "window/logMessage",
        "params": {"message": "中文 ok"},
    }
    assert "id" not in msg


def test_serve_answers_request_with_result():
    data = frame({"jsonrpc": "2.0", "id": 7, "method": "echo", "params": {"x": 1}})
    sink = Sink()
    conn = Connection(io.BytesIO(data), sink)
    conn.serve(lambda method, params: {"method": method, "params": params})
    assert messages(sink.getvalue()) == [
        {"jsonrpc": "2.0", "id": 7, "result": {"method": "echo", "params": {"x": 1}}}
    ]
    assert conn.closed


def test_serve_accepts_object_with_handle():
    class Handler:
        def handle(self, method, params):
            return method.upper()

    sink = Sink()
    conn = Connection(io.BytesIO(frame({"jsonrpc": "2.0", "id": 1, "method": "ping"})), sink)
    conn.serve(Handler())
    assert messages(sink.getvalue())[0]["result"] == "PING"


def test_serve_reports_rpc_error():
    def handler(method, params):
        raise RpcError(METHOD_NOT_FOUND, f"method not found: {method}")

    sink = Sink()
    conn = Connection(io.BytesIO(frame({"jsonrpc": "2.0", "id": 3, "method": "nope"})), sink)
    conn.serve(handler)
    (reply,) = messages(sink.getvalue())
    assert reply["id"] == 3
    assert reply["error"]["code"] == METHOD_NOT_FOUND
    assert "nope" in reply["error"]["message"]
    assert "result" not in reply


def test_serve_reports_internal_error_for_exceptions():
    def handler(method, params):
        raise ValueError("boom")

    sink = Sink()
    conn = Connection(io.BytesIO(frame({"jsonrpc": "2.0", "id": 4, "method": "x"})), sink)
    conn.serve(handler)
    (reply,) = messages(sink.getvalue())
    assert reply["error"]["code"] == INTERNAL_ERROR
    assert reply["error"]["message"] == "boom"


def test_notifications_get_no_reply():
    seen = []
    data = frame({"jsonrpc": "2.0", "method": "initialized", "params": {}})
    sink = Sink()
    conn = Connection(io.BytesIO(data), sink)
    conn.serve(lambda method, params: seen.append((method, params)))
    assert seen == [("initialized", {})]
    assert sink.getvalue() == b""


def test_invalid_json_gets_parse_error():
    body = b"{not json"
    data = b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body
    sink = Sink()
    conn = Connection(io.BytesIO(data), sink)
    conn.serve(lambda m, p: None)
    (reply,) = messages(sink.getvalue())
    assert reply["id"] is None
    assert reply["error"]["code"] == PARSE_ERROR


def test_handler_closing_stops_serving():
    handled = []
    sink = Sink()
    data = frame({"jsonrpc": "2.0", "method": "exit"}) + frame(
        {"jsonrpc": "2.0", "id": 2, "method": "later"}
    )
    conn = Connection(io.BytesIO(data), sink)

    def handler(method, params):
        handled.append(method)
        if method == "exit":
            conn.close()

    conn.serve(handler)
    assert handled == ["exit"]
    assert sink.getvalue() == b""
    assert sink.was_closed


def test_call_returns_result_of_response(serving):
    conn, feed, sink = serving
    results = {}
    caller = threading.Thread(
        target=lambda: results.setdefault("value", conn.call("workspace/configuration", {"items": []}, 5))
    )
    caller.start()
    (request,) = wait_for_messages(sink, 1)
    assert request["method"] == "workspace/configuration"
    assert request["params"] == {"items": []}
    feed.write(frame({"jsonrpc": "2.0", "id": request["id"], "result": [{"a": 1}]}))
    feed.flush()
    caller.join(5)
    assert results["value"] == [{"a": 1}]


def test_call_raises_error_response(serving):
    conn, feed, sink = serving
    errors = {}

    def run():
        try:
            conn.call("client/registerCapability", None, 5)
        except RpcError as exc:
            errors["err"] = exc

    caller = threading.Thread(target=run)
    caller.start()
    (request,) = wait_for_messages(sink, 1)
    assert "params" not in request
    feed.write(
        frame({"jsonrpc": "2.0", "id": request["id"], "error": {"code": -32000, "message": "denied"}})
    )
    feed.flush()
    caller.join(5)
    assert errors["err"].code == -32000
    assert errors["err"].message == "denied"


def test_call_times_out():
    conn = Connection(io.BytesIO(), Sink())
    with pytest.raises(TimeoutError):
        conn.call("window/showDocument", {}, timeout=0.05)


def test_close_fails_pending_and_later_calls(serving):
    conn, feed, sink = serving
    errors = {}

    def run():
        try:
            conn.call("slow", None, 5)
        except ConnectionError as exc:
            errors["err"] = exc

    caller = threading.Thread(target=run)
    caller.start()
    wait_for_messages(sink, 1)
    conn.close()
    caller.join(5)
    assert isinstance(errors["err"], ConnectionError)
    with pytest.raises(ConnectionError):
        conn.notify("x")
    with pytest.raises(ConnectionError):
        conn.call("y", None, 1)


def test_rpc_error_to_dict_round_trip():
    err = RpcError(METHOD_NOT_FOUND, "missing", {"k": "v"})
    assert err.to_dict() == {"code": METHOD_NOT_FOUND, "message": "missing", "data": {"k": "v"}}
    assert "data" not in RpcError(INTERNAL_ERROR, "x").to_dict()