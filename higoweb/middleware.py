"""Built-in middleware: pass-through, CORS, token auth and error recovery."""

from __future__ import annotations

import logging
from typing import Any, Callable, Collection

from .context import Context, Handler
from .result import ResponseSent
from .validate import ValidateError

_log = logging.getLogger(__name__)

INVALID_TOKEN = "invalid token"
INVALID_API = "invalid api"

ALLOW_METHODS = "POST, GET, OPTIONS, PUT, DELETE"
ALLOW_HEADERS = "Origin, X-Requested-With, Content-Type, Accept, Authorization"
EXPOSE_HEADERS = (
    "Content-Length, Access-Control-Allow-Origin, Access-Control-Allow-Headers, "
    "Cache-Control, Content-Language, Content-Type"
)

HandlerFactory = Callable[[Any], Handler]


class ApiError(Exception):
    """An error answered to the client as ``{code, message, data}``."""

    def __init__(self, message: str, code: int = 0, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class Middleware:
    """Base middleware that only hands on to the next handler."""

    def middle(self, app: Any) -> Handler:
        def handler(ctx: Context) -> None:
            ctx.next()

        return handler


def cors_handler(app: Any) -> Handler:
    """Default CORS handler: allow any origin and answer OPTIONS with 204."""

    def handler(ctx: Context) -> None:
        if ctx.get_header("Origin") != "":
            ctx.header("Access-Control-Allow-Origin", "*")
            ctx.header("Access-Control-Allow-Methods", ALLOW_METHODS)
            ctx.header("Access-Control-Allow-Headers", ALLOW_HEADERS)
            ctx.header("Access-Control-Expose-Headers", EXPOSE_HEADERS)
            ctx.header("Access-Control-Allow-Credentials", "true")
        if ctx.method == "OPTIONS":
            ctx.abort_with_status(204)

    return handler


def is_empty_flag(route: Any) -> None:
    """Raise if a non-static route has no flag."""
    if route.flag == "" and not route.is_static:
        raise ApiError(f"{route.path} flag is not set", 0)


def is_not_auth(flag: str, not_auth: Collection[str]) -> bool:
    """Return True if the route flag is exempt from authentication."""
    if flag == "":
        return False
    return flag in not_auth


def auth_handler(app: Any) -> Handler:
    """Default auth handler: require an X-Token header on protected routes."""

    def handler(ctx: Context) -> None:
        route = app.get_route(ctx.method, ctx.path)
        if route is None:
            raise ApiError(INVALID_API, 0)
        not_auth = getattr(app, "not_auth", ())
        if not is_not_auth(route.flag, not_auth) and not route.is_static and route.is_auth:
            if ctx.get_header("X-Token") == "":
                raise ApiError(INVALID_TOKEN, 0)

    return handler


class Cors:
    """Runs the app's CORS handler (``app.cors_func`` or the default), then the rest."""

    def middle(self, app: Any) -> Handler:
        factory: HandlerFactory = getattr(app, "cors_func", None) or cors_handler
        inner = factory(app)

        def handler(ctx: Context) -> None:
            inner(ctx)
            ctx.next()

        return handler


class Auth:
    """Runs the app's auth handler (``app.auth_func`` or the default), then the rest."""

    def middle(self, app: Any) -> Handler:
        factory: HandlerFactory = getattr(app, "auth_func", None) or auth_handler
        inner = factory(app)

        def handler(ctx: Context) -> None:
            inner(ctx)
            ctx.next()

        return handler


def default_recover_handler(ctx: Context, error: BaseException) -> None:
    """Log the error and answer with a JSON ``{code, message, data}`` body."""
    _log.error("request %s %s failed: %s", ctx.method, ctx.path, error, exc_info=error)
    if isinstance(error, ApiError):
        body = {"code": error.code, "message": error.message, "data": error.data}
    elif isinstance(error, ValidateError):
        body = {"code": error.code, "message": error.message, "data": None}
    else:
        body = {"code": 0, "message": str(error), "data": None}
    ctx.json(200, body)


class Recover:
    """Catches errors raised further down the chain and answers them."""

    def exception(self, app: Any) -> Handler:
        def handler(ctx: Context) -> None:
            try:
                ctx.next()
            except ResponseSent:
                ctx.abort()
            except Exception as error:
                handle = getattr(app, "recover_handle", None) or default_recover_handler
                handle(ctx, error)
                ctx.abort()

        return handler