"""JSON-RPC 2.0 over the LSP base protocol (``Content-Length`` framed messages)."""

from __future__ import annotations

import contextlib
import itertools
import json
import logging
import threading
from typing import Any, Callable, Optional

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

_log = logging.getLogger(__name__)


class RpcError(Exception):
    """A JSON-RPC error, raised by handlers or received in a response."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def to_dict(self) -> dict:
        """The error object as sent on the wire."""
        err = {"code": self.code, "message": self.message}
        if self.data is not None:
            err["data"] = self.data
        return err


class _Pending:
    __slots__ = ("event", "result", "error")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


Dispatch = Callable[[str, Any], Any]


class Connection:
    """A bidirectional JSON-RPC connection over binary reader and writer streams.

    Incoming requests and notifications are handled one at a time, in order,
    on the thread running :meth:`serve`. Outgoing calls may be made from any
    other thread; their responses are delivered by the serving loop.
    """

    def __init__(self, reader, writer) -> None:
        self._reader = reader
        self._writer = writer
        self._write_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending: dict[int, _Pending] = {}
        self._ids = itertools.count(1)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        """Whether the connection has been closed."""
        return self._closed.is_set()

    def _send(self, message: dict) -> None:
        body = json.dumps(message, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
        with self._write_lock:
            if self._closed.is_set():
                raise ConnectionError("connection closed")
            try:
                self._writer.write(header + body)
                self._writer.flush()
            except ValueError as exc:
                raise ConnectionError(str(exc)) from exc

    def _reply(self, message: dict) -> None:
        try:
            self._send(message)
        except OSError as exc:
            _log.debug("reply not sent: %s", exc)

    def _reply_error(self, msg_id: Any, err: RpcError) -> None:
        self._reply({"jsonrpc": JSONRPC_VERSION, "id": msg_id, "error": err.to_dict()})

    def call(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for its result.

        Raises RpcError for an error response, TimeoutError when no response
        arrives in ``timeout`` seconds and ConnectionError once closed.
        """
        msg_id = next(self._ids)
        pending = _Pending()
        with self._pending_lock:
            self._pending[msg_id] = pending
        message = {"jsonrpc": JSONRPC_VERSION, "id": msg_id, "method": method}
        if params is not None:
            message["params"] = params
        try:
            self._send(message)
            if not pending.event.wait(timeout):
                raise TimeoutError(f"{method}: no response within {timeout} seconds")
        finally:
            with self._pending_lock:
                self._pending.pop(msg_id, None)
        if pending.error is not None:
            raise pending.error
        return pending.result

    def notify(self, method: str, params: Any = None) -> None:
        """Send a notification. Raises ConnectionError once closed."""
        message = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        self._send(message)

    def _read_message(self) -> Optional[bytes]:
        length = None
        seen_header = False
        while True:
            line = self._reader.readline()
            if not line:
                return None
            line = line.strip()
            if not line:
                if not seen_header:
                    continue
                break
            seen_header = True
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    length = int(value.strip())
                except ValueError:
                    raise RpcError(PARSE_ERROR, "invalid Content-Length") from None
        if length is None or length < 0:
            raise RpcError(PARSE_ERROR, "missing Content-Length")
        body = self._reader.read(length)
        if len(body) < length:
            return None
        return body

    def _resolve(self, message: dict) -> None:
        msg_id = message.get("id")
        with self._pending_lock:
            pending = self._pending.pop(msg_id, None) if isinstance(msg_id, int) else None
        if pending is None:
            _log.debug("response for unknown request id %r", msg_id)
            return
        error = message.get("error")
        if error is not None:
            if isinstance(error, dict):
                pending.error = RpcError(
                    int(error.get("code", INTERNAL_ERROR)),
                    str(error.get("message", "")),
                    error.get("data"),
                )
            else:
                pending.error = RpcError(INTERNAL_ERROR, str(error))
        else:
            pending.result = message.get("result")
        pending.event.set()

    def _dispatch(self, body: bytes, dispatch: Dispatch) -> None:
        try:
            message = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            self._reply_error(None, RpcError(PARSE_ERROR, f"parse error: {exc}"))
            return
        if not isinstance(message, dict):
            self._reply_error(None, RpcError(INVALID_REQUEST, "message is not an object"))
            return
        method = message.get("method")
        if method is None:
            if "id" in message:
                self._resolve(message)
            else:
                self._reply_error(None, RpcError(INVALID_REQUEST, "missing method"))
            return
        has_id = "id" in message
        msg_id = message.get("id")
        if not isinstance(method, str):
            if has_id:
                self._reply_error(msg_id, RpcError(INVALID_REQUEST, "method is not a string"))
            return
        params = message.get("params")

        if not has_id:
            try:
                dispatch(method, params)
            except Exception as exc:  # a notification has no one to report to
                _log.debug("notification %s failed: %s", method, exc)
            return

        try:
            result = dispatch(method, params)
        except RpcError as exc:
            self._reply_error(msg_id, exc)
            return
        except Exception as exc:
            _log.exception("request %s failed", method)
            self._reply_error(msg_id, RpcError(INTERNAL_ERROR, str(exc)))
            return
        self._reply({"jsonrpc": JSONRPC_VERSION, "id": msg_id, "result": result})

    def serve(self, handler) -> None:
        """Read and dispatch messages until end of input or until closed.

        ``handler`` is a callable ``(method, params)`` or an object with a
        ``handle(method, params)`` method. For requests its return value is
        the result; an RpcError it raises becomes the error response.
        """
        dispatch: Dispatch = getattr(handler, "handle", handler)
        try:
            while not self._closed.is_set():
                try:
                    body = self._read_message()
                except (OSError, ValueError, RpcError) as exc:
                    _log.error("read failed: %s", exc)
                    break
                if body is None:
                    break
                self._dispatch(body, dispatch)
        finally:
            self.close()
            with contextlib.suppress(OSError, ValueError):
                self._reader.close()

    def close(self) -> None:
        """Close the connection: stop serving and fail pending calls."""
        if self._closed.is_set():
            return
        self._closed.set()
        with self._write_lock:
            with contextlib.suppress(OSError, ValueError):
                self._writer.close()
        with self._pending_lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for p in pending:
            p.error = ConnectionError("connection closed")
            p.event.set()