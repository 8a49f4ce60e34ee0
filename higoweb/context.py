"""Request context, per-thread request registry and handler adaptation."""

from __future__ import annotations

import json
import sys
import threading
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from .result import ResponseSent

Handler = Callable[["Context"], Any]

_ABORT_INDEX = sys.maxsize // 2
_JSON_TYPE = "application/json; charset=utf-8"
_TEXT_TYPE = "text/plain; charset=utf-8"
_CO_VARARGS = 0x04


class ContextHook(Protocol):
    """Hooks run around a request."""

    def on_request(self, ctx: "Context") -> None: ...

    def on_response(self, result: Any) -> Any: ...


class Context:
    """One request: its input, its handler chain and the response being built."""

    def __init__(
        self,
        method: str = "GET",
        path: str = "/",
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, str]] = None,
        body: bytes = b"",
        params: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.query = dict(query or {})
        self.body = body
        self.params = dict(params or {})
        self.keys: dict[str, Any] = {}
        self.status = 200
        self.response_headers: dict[str, str] = {}
        self.response_body: Any = None
        self.content_type: Optional[str] = None
        self.written = False
        self._handlers: list[Handler] = []
        self._index = -1

    def header(self, name: str, value: str) -> None:
        """Set a response header; an empty value removes it."""
        if value == "":
            self.response_headers.pop(name, None)
        else:
            self.response_headers[name] = value

    def get_header(self, name: str) -> str:
        """Return a request header, case-insensitively, or an empty string."""
        return self.headers.get(name.lower(), "")

    def query_value(self, name: str, default: str = "") -> str:
        return self.query.get(name, default)

    def param(self, name: str) -> str:
        return self.params.get(name, "")

    def set(self, key: str, value: Any) -> None:
        self.keys[key] = value

    def get(self, key: str) -> Any:
        return self.keys.get(key)

    def json(self, status: int, data: Any) -> None:
        self.status = status
        self.content_type = _JSON_TYPE
        self.response_body = data
        self.written = True

    def string(self, status: int, text: str) -> None:
        self.status = status
        self.content_type = _TEXT_TYPE
        self.response_body = text
        self.written = True

    def abort(self) -> None:
        """Stop the remaining handlers from running."""
        self._index = _ABORT_INDEX

    def abort_with_status(self, status: int) -> None:
        self.status = status
        self.written = True
        self.abort()

    @property
    def is_aborted(self) -> bool:
        return self._index >= _ABORT_INDEX

    def next(self) -> None:
        """Run the handlers after the current one."""
        self._index += 1
        while self._index < len(self._handlers):
            self._handlers[self._index](self)
            self._index += 1

    def run(self, handlers: Iterable[Handler]) -> None:
        """Run a handler chain from its start."""
        self._handlers = list(handlers)
        self._index = -1
        self.next()

    def rendered(self) -> bytes:
        """Return the response body as bytes."""
        body = self.response_body
        if body is None:
            return b""
        if isinstance(body, bytes):
            return body
        if isinstance(body, str) and self.content_type != _JSON_TYPE:
            return body.encode("utf-8")
        return json.dumps(body, ensure_ascii=False, default=_json_default).encode("utf-8")


def _json_default(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if hasattr(obj, "__dict__"):
        return vars(obj)
    return str(obj)


class RequestRegistry:
    """Maps the running thread to the context of the request it serves."""

    def __init__(self) -> None:
        self._contexts: dict[int, Context] = {}
        self._guard = threading.Lock()

    def set(self, ctx: Context) -> None:
        with self._guard:
            self._contexts[threading.get_ident()] = ctx

    def context(self) -> Context:
        tid = threading.get_ident()
        with self._guard:
            ctx = self._contexts.get(tid)
        if ctx is None:
            raise LookupError(
                f"thread {tid} has no request context; it cannot be reached from another thread"
            )
        return ctx

    def remove(self) -> None:
        with self._guard:
            self._contexts.pop(threading.get_ident(), None)


request = RequestRegistry()


def _accepts_context(handler: Callable[..., Any]) -> bool:
    """Tell whether a handler takes a positional argument for the context."""
    bound = 0
    code = getattr(handler, "__code__", None)
    if code is not None:
        if getattr(handler, "__self__", None) is not None:
            bound = 1
    else:
        call = getattr(type(handler), "__call__", None)
        code = getattr(call, "__code__", None)
        if code is None:
            return True
        bound = 1
    if code.co_flags & _CO_VARARGS:
        return True
    return code.co_argcount - bound > 0


def wrap_handler(handler: Callable[..., Any]) -> Handler:
    """Adapt a handler taking a context or nothing into a context handler.

    A returned string is written as text, any other non-None value as JSON.
    """
    if not callable(handler):
        raise TypeError(f"handler {handler!r} is not callable")
    takes_ctx = _accepts_context(handler)

    def wrapped(ctx: Context) -> None:
        request.set(ctx)
        try:
            outcome = handler(ctx) if takes_ctx else handler()
        except ResponseSent:
            return
        finally:
            request.remove()
        if outcome is None:
            return
        if isinstance(outcome, str):
            ctx.string(200, outcome)
        else:
            ctx.json(200, outcome)

    return wrapped