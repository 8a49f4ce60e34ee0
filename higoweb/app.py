"""The application: routes, serves, configuration loading and the WSGI entry point."""

from __future__ import annotations

import inspect
import logging
import mimetypes
import os
import socketserver
import ssl
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence, Union
from urllib.parse import parse_qsl
from wsgiref.simple_server import WSGIServer, make_server

import yaml

from .constants import HTTPS_SERVE, HTTP_SERVE, ONLY_SUPPORT_SERVE, ROOT_DIRS, is_supported_serve
from .container import add_container
from .context import Context, Handler, wrap_handler
from .events import EventType, add_event, fire
from .middleware import ApiError, Auth, Cors, Recover, is_empty_flag
from .validate import register_validation, verify_container

_log = logging.getLogger(__name__)

DEFAULT_SERVE = "default"
NOT_FOUND = "404 page not found"

RootSpec = Union[str, os.PathLike, Sequence[str]]


@dataclass
class Route:
    """One registered route and everything needed to run it."""

    method: str
    path: str
    handle: Callable[..., Any]
    flag: str = ""
    desc: str = ""
    is_auth: bool = True
    is_static: bool = False
    serve: str = DEFAULT_SERVE
    prefix: str = ""
    group_middles: list = field(default_factory=list)
    middles: list = field(default_factory=list)

    def handlers(self) -> list[Handler]:
        """Group middleware, then route middleware, then the handler itself."""
        return [*self.group_middles, *self.middles, wrap_handler(self.handle)]


@dataclass
class Serve:
    """A server to start: its name, type, listen address, router and middleware."""

    name: str
    type: str = HTTP_SERVE
    addr: str = ""
    router: Any = None
    middles: list = field(default_factory=list)


def throw(message: str, code: int = 0, data: Any = None) -> None:
    """Raise an ApiError answered to the client as ``{code, message, data}``."""
    raise ApiError(message, code, data)


def _lookup(data: Any, key: str) -> Any:
    for part in key.split("."):
        if isinstance(data, Mapping) and part in data:
            data = data[part]
        else:
            return None
    return data


def _join(prefix: str, path: str) -> str:
    if not path:
        return prefix or "/"
    if not prefix:
        return path if path.startswith("/") else "/" + path
    return prefix.rstrip("/") + "/" + path.lstrip("/")


def _segments(path: str) -> list[str]:
    stripped = path.strip("/")
    return stripped.split("/") if stripped else []


def _match(pattern: str, path: str) -> Optional[dict[str, str]]:
    wanted, given = _segments(pattern), _segments(path)
    params: dict[str, str] = {}
    for position, segment in enumerate(wanted):
        if segment.startswith("*"):
            params[segment[1:]] = "/" + "/".join(given[position:])
            return params
        if position >= len(given):
            return None
        if segment.startswith(":"):
            params[segment[1:]] = given[position]
        elif segment != given[position]:
            return None
    return params if len(wanted) == len(given) else None


def _file_handler(filepath: str) -> Handler:
    def serve_file(ctx: Context) -> None:
        try:
            data = Path(filepath).read_bytes()
        except OSError:
            ctx.string(404, NOT_FOUND)
            return
        ctx.status = 200
        ctx.content_type = mimetypes.guess_type(filepath)[0] or "application/octet-stream"
        ctx.response_body = data
        ctx.written = True

    return serve_file


def _read_yaml(path: Path) -> Any:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as error:
        raise ApiError(str(error), 0) from error
    return {} if data is None else data


_ZEROS: dict[Any, Any] = {str: "", int: 0, "str": "", "int": 0}


def _zero_arguments(method: Callable[..., Any]) -> Optional[list]:
    """Zero values for a method's parameters, or None if one has no zero value."""
    func = getattr(method, "__func__", method)
    code = getattr(func, "__code__", None)
    if code is None:
        return None
    names = list(code.co_varnames[: code.co_argcount])
    if inspect.ismethod(method) and names:
        names = names[1:]
    defaults = func.__defaults__ or ()
    required = names[: len(names) - len(defaults)] if defaults else names
    kw_names = code.co_varnames[code.co_argcount : code.co_argcount + code.co_kwonlyargcount]
    kw_defaults = func.__kwdefaults__ or {}
    if any(name not in kw_defaults for name in kw_names):
        return None
    annotations = getattr(func, "__annotations__", {}) or {}
    arguments = []
    for name in required:
        annotation = annotations.get(name)
        try:
            arguments.append(_ZEROS[annotation])
        except (KeyError, TypeError):
            return None
    return arguments


class _ThreadingWSGIServer(socketserver.ThreadingMixIn, WSGIServer):
    daemon_threads = True


def _parse_addr(addr: str) -> tuple[str, int]:
    host, _, port = addr.rpartition(":")
    if not port.isdigit():
        raise ValueError(f"invalid listen address {addr!r}")
    return host, int(port)


class Higo:
    """A web application: routes, middleware, configuration and serves."""

    def __init__(self, root: RootSpec = ROOT_DIRS) -> None:
        self.root = root
        self.middle: list[Any] = []
        self.serve = DEFAULT_SERVE
        self.serve_type = ""
        self.env: dict[str, Any] = {}
        self.config: dict[str, Any] = {}
        self.not_auth: set[str] = set()
        self.cors_func: Optional[Callable[[Any], Handler]] = None
        self.auth_func: Optional[Callable[[Any], Handler]] = None
        self.recover_handle: Optional[Callable[[Context, BaseException], None]] = None
        self._routes: dict[tuple[str, str], Route] = {}
        self._groups: list[tuple[str, list]] = []
        self._pending: list[tuple[Any, list]] = []
        self._env_loaded = False
        self._ready = False

    # -- configuration -------------------------------------------------

    def root_path(self) -> str:
        if isinstance(self.root, (str, os.PathLike)):
            return os.fspath(self.root)
        return os.path.join(*self.root) if self.root else ""

    def env_value(self, key: str) -> Any:
        """Look up a dotted key such as ``app.APP_CONFIG`` in the env files."""
        return _lookup(self.env, key)

    def conf(self, key: str) -> Any:
        """Look up a dotted key such as ``app.SSL.OUT`` in the config files."""
        return _lookup(self.config, key)

    def load_env(self, root: RootSpec) -> "Higo":
        """Read every ``*.yaml`` directly inside ``<root>/env``, keyed by file stem."""
        self.root = root
        base = Path(self.root_path())
        (base / "runtime").mkdir(parents=True, exist_ok=True)
        env_dir = base / "env"
        env_dir.mkdir(parents=True, exist_ok=True)
        env: dict[str, Any] = {}
        for path in sorted(env_dir.glob("*.yaml")):
            if path.is_file():
                env[path.stem] = _read_yaml(path)
                _log.info("Loader env config file: %s", path)
        self.env = env
        self._env_loaded = True
        return self

    def load_configure(self, config_dir: Union[str, os.PathLike]) -> "Higo":
        """Read every ``*.yaml`` under ``config_dir``, keyed by file stem."""
        directory = Path(config_dir)
        directory.mkdir(parents=True, exist_ok=True)
        config: dict[str, Any] = {}
        for path in sorted(directory.rglob("*.yaml")):
            if path.is_file():
                config[path.stem] = _read_yaml(path)
                _log.info("Loader app config file: %s", path)
        self.config = config
        not_auth = self.conf("auth.NotAuth")
        if isinstance(not_auth, Mapping):
            self.not_auth = {str(k) for k in not_auth}
        elif isinstance(not_auth, (list, tuple, set)):
            self.not_auth = {str(k) for k in not_auth}
        return self

    def new_serve(self, conf: str) -> Serve:
        """Build a Serve from an env entry such as ``env.serve.HTTP_HOST``."""
        key = conf[4:] if conf.startswith("env.") else conf
        entry = self.env_value(key)
        if not isinstance(entry, Mapping):
            raise KeyError(f"serve configuration {conf!r} not found")
        return Serve(
            name=str(entry.get("Name", key)),
            type=str(entry.get("Type", HTTP_SERVE)),
            addr=str(entry.get("Addr", "")),
        )

    # -- middleware and serves -------------------------------------------

    def middleware(self, *middlewares: Any) -> "Higo":
        """Add global middleware; a Cors middleware always goes first."""
        for item in middlewares:
            if isinstance(item, Cors) and self.middle:
                self.middle.insert(0, item)
            else:
                self.middle.append(item)
        return self

    def auth_handler_func(self, middle: Any) -> "Higo":
        self.auth_func = middle.middle
        return self

    def cors_handler_func(self, middle: Any) -> "Higo":
        self.cors_func = middle.middle
        return self

    def set_name(self, serve: str) -> "Higo":
        self.serve = serve
        return self

    def set_type(self, serve_type: str) -> "Higo":
        self.serve_type = serve_type
        return self

    def add_serve(self, router: Any, *middles: Any) -> "Higo":
        """Queue a router (with ``serve`` and ``loader(app)``) to start at boot."""
        self._pending.append((router, list(middles)))
        return self

    def event(self, event_type: EventType, handle: Callable[[Any], None]) -> "Higo":
        add_event(event_type, handle)
        return self

    # -- routes ----------------------------------------------------------

    @property
    def routes(self) -> list[Route]:
        return list(self._routes.values())

    def _prefix(self) -> str:
        prefix = ""
        for group_prefix, _ in self._groups:
            prefix = _join(prefix, group_prefix)
        return prefix

    def _find(self, method: str, path: str) -> tuple[Optional[Route], dict[str, str]]:
        method = method.upper()
        exact = self._routes.get((method, path))
        if exact is not None:
            return exact, {}
        for (route_method, _), route in self._routes.items():
            if route_method != method:
                continue
            params = _match(route.path, path)
            if params is not None:
                return route, params
        return None, {}

    def get_route(self, method: str, path: str) -> Optional[Route]:
        return self._find(method, path)[0]

    def add_route(
        self,
        method: str,
        path: str,
        handle: Callable[..., Any],
        flag: str = "",
        desc: str = "",
        is_auth: bool = True,
    ) -> Route:
        """Register a handler under the current group prefix; duplicates raise."""
        prefix = self._prefix()
        full = _join(prefix, path)
        key = (method.upper(), full)
        if key in self._routes:
            raise ValueError(f"route {key[0]} {full} is already registered")
        route = Route(
            method=key[0],
            path=full,
            handle=handle,
            flag=flag,
            desc=desc,
            is_auth=is_auth,
            serve=self.serve,
            prefix=prefix,
            group_middles=[m for _, middles in self._groups for m in middles],
        )
        self._routes[key] = route
        return route

    def _register(self, method: str, path: str, handle: Callable[..., Any], options: dict) -> Route:
        middle = options.pop("middle", ())
        unknown = set(options) - {"flag", "desc", "is_auth"}
        if unknown:
            raise TypeError(f"unexpected route options: {', '.join(sorted(unknown))}")
        route = self.add_route(method, path, handle, **options)
        route.middles.extend([middle] if callable(middle) else middle)
        return route

    def get(self, path: str, handle: Callable[..., Any], **kwargs: Any) -> Route:
        return self._register("GET", path, handle, kwargs)

    def post(self, path: str, handle: Callable[..., Any], **kwargs: Any) -> Route:
        return self._register("POST", path, handle, kwargs)

    def put(self, path: str, handle: Callable[..., Any], **kwargs: Any) -> Route:
        return self._register("PUT", path, handle, kwargs)

    def delete(self, path: str, handle: Callable[..., Any], **kwargs: Any) -> Route:
        return self._register("DELETE", path, handle, kwargs)

    @contextmanager
    def group(self, prefix: str, *middles: Handler) -> Iterator["Higo"]:
        """Register routes under ``prefix`` with the given group middleware."""
        self._groups.append((prefix, list(middles)))
        try:
            yield self
        finally:
            self._groups.pop()

    def add_group(self, prefix: str, fn: Callable[[], None]) -> "Higo":
        with self.group(prefix):
            fn()
        return self

    def static_file(self, relative_path: str, filepath: str) -> Route:
        route = self.add_route("GET", relative_path, _file_handler(filepath))
        route.is_static = True
        return route

    def route(self, *controllers: Any) -> "Higo":
        """Register controllers in the container and let them add their routes."""
        for controller in controllers:
            add_container(controller.new)
            controller.route(self)
        return self

    def beans(self, *configs: Any) -> "Higo":
        """Call each bean method and register the classes and controllers it returns."""
        for conf in configs:
            if isinstance(conf, type):
                raise TypeError("required an instance, not a class")
            for name, method in inspect.getmembers(conf, inspect.ismethod):
                if name.startswith("_"):
                    continue
                arguments = _zero_arguments(method)
                if arguments is None:
                    continue
                made = method(*arguments)
                if made is None or not callable(getattr(made, "new", None)):
                    continue
                add_container(made.new)
                if callable(getattr(made, "route", None)):
                    self.route(made)
        return self

    # -- request handling ------------------------------------------------

    def dispatch(self, ctx: Context) -> Context:
        """Run the middleware chain and the matched route for ``ctx``."""
        route, params = self._find(ctx.method, ctx.path)
        ctx.params.update(params)
        handlers: list[Handler] = [Recover().exception(self)]
        handlers.extend(m.middle(self) for m in self.middle)
        if route is not None:
            handlers.extend(route.handlers())
        ctx.run(handlers)
        if route is None and not ctx.written:
            ctx.string(404, NOT_FOUND)
        return ctx

    def __call__(self, environ: dict, start_response: Callable[..., Any]) -> list[bytes]:
        headers = {
            key[5:].replace("_", "-"): value
            for key, value in environ.items()
            if key.startswith("HTTP_")
        }
        if environ.get("CONTENT_TYPE"):
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        length = int(environ.get("CONTENT_LENGTH") or 0)
        body = environ["wsgi.input"].read(length) if length > 0 else b""
        raw_path = environ.get("PATH_INFO", "/") or "/"
        path = raw_path.encode("latin-1").decode("utf-8", "replace")
        ctx = Context(
            method=environ.get("REQUEST_METHOD", "GET"),
            path=path,
            headers=headers,
            query=dict(parse_qsl(environ.get("QUERY_STRING", ""), keep_blank_values=True)),
            body=body,
        )
        self.dispatch(ctx)
        payload = ctx.rendered()
        try:
            phrase = HTTPStatus(ctx.status).phrase
        except ValueError:
            phrase = "Unknown"
        response_headers = [("Content-Length", str(len(payload)))]
        if ctx.content_type:
            response_headers.append(("Content-Type", ctx.content_type))
        response_headers.extend(ctx.response_headers.items())
        start_response(f"{ctx.status} {phrase}", response_headers)
        return [payload]

    # -- start-up --------------------------------------------------------

    def _setup(self) -> None:
        if self._ready:
            return
        self.middle = [Cors(), Auth(), *self.middle]
        if not self._env_loaded:
            self.load_env(self.root)
        app_config = self.env_value("app.APP_CONFIG")
        parts = ["app", "config"] if app_config is None else [str(app_config)]
        self.load_configure(os.path.join(self.root_path(), *parts))
        fire(self, EventType.AFTER_LOAD_CONFIGURE)
        self._ready = True

    def build(self) -> list[tuple[Serve, "Higo"]]:
        """Load configuration and build one application per queued serve."""
        self._setup()
        serves: list[Serve] = []
        for router, middles in self._pending:
            serve = getattr(router, "serve", None)
            if not isinstance(serve, Serve):
                raise ValueError(f"router {router!r} has no serve")
            if not is_supported_serve(serve.type):
                raise ValueError(
                    "Serve Type error! only support:"
                    + ",".join(ONLY_SUPPORT_SERVE)
                    + ", But give "
                    + serve.type
                )
            serve.router = router
            serve.middles = middles
            serves.append(serve)
        for verify in list(verify_container.values()):
            for tag, group in verify.verify_rules.items():
                register_validation(tag, group.to_func())
        built = []
        for serve in serves:
            app = Higo(self.root)
            app.env, app.config, app.not_auth = self.env, self.config, self.not_auth
            app.cors_func, app.auth_func = self.cors_func, self.auth_func
            app.recover_handle = self.recover_handle
            app._env_loaded = app._ready = True
            app.middle = [*self.middle, *serve.middles]
            app.set_type(serve.type).set_name(serve.name)
            fire(app, EventType.BEFORE_LOAD_ROUTE)
            serve.router.loader(app)
            for route in app.routes:
                is_empty_flag(route)
            fire(app, EventType.AFTER_LOAD_ROUTE)
            built.append((serve, app))
        return built

    def _tls_context(self) -> ssl.SSLContext:
        out, crt, key = (self.conf(f"app.SSL.{name}") for name in ("OUT", "CRT", "KEY"))
        if not (out and crt and key):
            raise ValueError("https serve needs app.SSL.OUT, app.SSL.CRT and app.SSL.KEY")
        directory = os.path.join(self.root_path(), str(out))
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(os.path.join(directory, str(crt)), os.path.join(directory, str(key)))
        return context

    def boot(self) -> None:
        """Build every serve and run them until interrupted."""
        servers = []
        for serve, app in self.build():
            host, port = _parse_addr(serve.addr)
            server = make_server(host, port, app, server_class=_ThreadingWSGIServer)
            if serve.type == HTTPS_SERVE:
                server.socket = self._tls_context().wrap_socket(server.socket, server_side=True)
            _log.info("%s Server listening at %s Starting Success!", serve.type.upper(), serve.addr)
            servers.append(server)
        threads = [threading.Thread(target=s.serve_forever, daemon=True) for s in servers]
        for thread in threads:
            thread.start()
        try:
            for thread in threads:
                thread.join()
        except KeyboardInterrupt:
            for server in servers:
                server.shutdown()
        finally:
            for server in servers:
                server.server_close()


def init(root: RootSpec = ROOT_DIRS) -> Higo:
    """Create an application rooted at ``root``."""
    return Higo(root)