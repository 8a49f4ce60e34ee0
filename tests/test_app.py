import io
from wsgiref.util import setup_testing_defaults

import pytest

from higoweb.app import Higo, Route, Serve, init, throw
from higoweb.container import container, di
from higoweb.context import Context
from higoweb.events import EventType
from higoweb.middleware import ApiError, Auth, Cors


def https_test_throw(ctx):
    throw("https 测试异常", 0, None)
    return "https_test_throw"


def https_test_get(ctx):
    return "https_test_get"


def https_test_post(ctx):
    return "https_test_post"


def v2_test_get(ctx):
    return "v2 https_test_get"


def v2_test_post(ctx):
    return "v2 https_test_post"


def login(ctx):
    return "登录成功11"


def load_http_routes(hg):
    hg.get("/http/test_throw", https_test_throw, flag="TestThrow", desc="测试异常")
    hg.get("/http/test_get", https_test_get, flag="TestGet", desc="测试GET")
    hg.post("/http/test_post", https_test_post, flag="TestPost", desc="测试POST")
    hg.add_group("/http/v2", lambda: (
        hg.get("/test_get", v2_test_get, flag="TestGet", desc="v2 测试GET"),
        hg.post("/test_post", v2_test_post, flag="TestPost", desc="v2 测试POST"),
    ))

    def v3():
        hg.add_group("/user", lambda: hg.post("/login", login, flag="Login", desc="V3 登录"))

    hg.add_group("/http/v3", v3)


def call(app, method, path, headers=None):
    ctx = Context(method, path, headers=headers or {})
    app.dispatch(ctx)
    return ctx


@pytest.fixture
def http_app():
    app = Higo()
    load_http_routes(app)
    return app


def test_http_routes_answer_strings(http_app):
    assert call(http_app, "GET", "/http/test_get").response_body == "https_test_get"
    assert call(http_app, "POST", "/http/test_post").response_body == "https_test_post"
    assert call(http_app, "GET", "/http/v2/test_get").response_body == "v2 https_test_get"
    assert call(http_app, "POST", "/http/v2/test_post").response_body == "v2 https_test_post"


def test_nested_group_route(http_app):
    ctx = call(http_app, "POST", "/http/v3/user/login")
    assert ctx.status == 200
    assert ctx.response_body == "登录成功11"


def test_throw_route_answers_json(http_app):
    ctx = call(http_app, "GET", "/http/test_throw")
    assert ctx.status == 200
    assert ctx.response_body == {"code": 0, "message": "https 测试异常", "data": None}


def test_get_route_carries_flag_and_desc(http_app):
    route = http_app.get_route("GET", "/http/v2/test_get")
    assert route.flag == "TestGet"
    assert route.desc == "v2 测试GET"
    assert route.prefix == "/http/v2"
    assert http_app.get_route("GET", "/http/test_post") is None


def test_duplicate_route_raises(http_app):
    with pytest.raises(ValueError):
        http_app.get("/http/test_get", https_test_get, flag="Again")


def test_unknown_route_option_raises():
    app = Higo()
    with pytest.raises(TypeError):
        app.get("/x", https_test_get, colour="blue")


def test_path_parameters():
    app = Higo()
    app.get("/user/:id", lambda ctx: ctx.param("id"), flag="User")
    app.get("/files/*rest", lambda ctx: ctx.param("rest"), flag="Files")
    assert call(app, "GET", "/user/42").response_body == "42"
    assert call(app, "GET", "/files/a/b.txt").response_body == "/a/b.txt"
    assert call(app, "GET", "/user/42/extra").status == 404


def test_missing_route_is_404():
    ctx = call(Higo(), "GET", "/nowhere")
    assert ctx.status == 404
    assert ctx.response_body == "404 page not found"


def test_auth_requires_token():
    app = Higo().middleware(Cors(), Auth())
    app.get("/secure", lambda: "ok", flag="Secure")
    app.get("/open", lambda: "open", flag="Open", is_auth=False)
    assert call(app, "GET", "/secure").response_body["message"] == "invalid token"
    assert call(app, "GET", "/secure", {"X-Token": "token"}).response_body == "ok"
    assert call(app, "GET", "/open").response_body == "open"
    assert call(app, "GET", "/missing").response_body["message"] == "invalid api"


def test_not_auth_flags_skip_token():
    app = Higo().middleware(Auth())
    app.not_auth = {"Secure"}
    app.get("/secure", lambda: "ok", flag="Secure")
    assert call(app, "GET", "/secure").response_body == "ok"


def test_cors_headers_and_options():
    app = Higo().middleware(Cors())
    app.get("/a", lambda: "a", flag="A")
    ctx = call(app, "GET", "/a", {"Origin": "http://example.com"})
    assert ctx.response_headers["Access-Control-Allow-Origin"] == "*"
    app.add_route("OPTIONS", "/a", lambda: "never", flag="A")
    ctx = call(app, "OPTIONS", "/a")
    assert ctx.status == 204
    assert ctx.response_body is None


def test_cors_middleware_goes_first():
    auth, cors = Auth(), Cors()
    app = Higo().middleware(auth).middleware(cors)
    assert app.middle == [cors, auth]


def test_custom_cors_and_auth_functions():
    class Custom:
        def middle(self, app):
            def handler(ctx):
                ctx.header("X-Custom", "1")
            return handler

    app = Higo().cors_handler_func(Custom()).auth_handler_func(Custom())
    app.middleware(Cors(), Auth())
    app.get("/a", lambda: "a", flag="A")
    ctx = call(app, "GET", "/a")
    assert ctx.response_body == "a"
    assert ctx.response_headers["X-Custom"] == "1"


def test_group_and_route_middleware_order():
    seen = []
    app = Higo()

    def group_mw(ctx):
        seen.append("group")
        ctx.next()

    def route_mw(ctx):
        seen.append("route")
        ctx.next()

    with app.group("/v4", group_mw):
        app.get("/r", lambda: seen.append("handler") or "done", flag="R", middle=route_mw)
    ctx = call(app, "GET", "/v4/r")
    assert seen == ["group", "route", "handler"]
    assert ctx.response_body == "done"


def test_static_file(tmp_path):
    page = tmp_path / "index.html"
    page.write_text("<p>hi</p>", encoding="utf-8")
    app = Higo()
    route = app.static_file("/", str(page))
    ctx = call(app, "GET", "/")
    assert route.is_static is True
    assert ctx.response_body == b"<p>hi</p>"
    assert ctx.content_type == "text/html"


def test_wsgi_call():
    app = Higo()
    app.get("/ping", lambda ctx: {"q": ctx.query_value("q")}, flag="Ping")
    environ = {}
    setup_testing_defaults(environ)
    environ.update(PATH_INFO="/ping", QUERY_STRING="q=1", REQUEST_METHOD="GET",
                   **{"wsgi.input": io.BytesIO(b"")})
    captured = {}

    def start_response(status, headers):
        captured["status"] = status
        captured["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    assert captured["status"] == "200 OK"
    assert body == b'{"q": "1"}'
    assert captured["headers"]["Content-Length"] == str(len(body))


def test_throw_raises_api_error():
    with pytest.raises(ApiError) as info:
        throw("bad", 7, {"x": 1})
    assert info.value.code == 7
    assert info.value.data == {"x": 1}


class PingController:
    def new(self):
        return PingController()

    def route(self, hg):
        hg.get("/ping", lambda: "pong", flag="Ping")


def test_route_registers_controller():
    app = Higo().route(PingController())
    assert call(app, "GET", "/ping").response_body == "pong"
    made = di(container.key(PingController))
    assert isinstance(made, PingController)


def test_beans_register_returned_controllers():
    class MyBean:
        def controller(self):
            return PingController()

        def named(self, name: str):
            return None

        def needs_object(self, other: list):
            raise AssertionError("must not be called")

    app = Higo().beans(MyBean())
    assert app.get_route("GET", "/ping").flag == "Ping"


def test_load_env_and_configure(tmp_path):
    (tmp_path / "env").mkdir()
    (tmp_path / "env" / "serve.yaml").write_text(
        "HTTP_HOST:\n  Type: http\n  Name: api\n  Addr: ':8080'\n", encoding="utf-8"
    )
    conf_dir = tmp_path / "conf"
    conf_dir.mkdir()
    (conf_dir / "auth.yaml").write_text("NotAuth:\n  - Ping\n", encoding="utf-8")
    app = init(str(tmp_path)).load_env(str(tmp_path)).load_configure(conf_dir)
    assert (tmp_path / "runtime").is_dir()
    assert app.env_value("serve.HTTP_HOST.Addr") == ":8080"
    assert app.not_auth == {"Ping"}
    serve = app.new_serve("env.serve.HTTP_HOST")
    assert (serve.name, serve.type, serve.addr) == ("api", "http", ":8080")


def test_bad_yaml_raises(tmp_path):
    (tmp_path / "env").mkdir()
    (tmp_path / "env" / "bad.yaml").write_text("a: [1, 2\n", encoding="utf-8")
    with pytest.raises(ApiError):
        Higo().load_env(str(tmp_path))


class _Router:
    def __init__(self, serve, flag="Ping"):
        self.serve = serve
        self.flag = flag

    def loader(self, app):
        app.get("/ping", lambda: "pong", flag=self.flag)


def test_build_creates_serve_apps(tmp_path):
    seen = []
    extra = Cors()
    app = init(str(tmp_path)).event(EventType.AFTER_LOAD_ROUTE, lambda hg: seen.append(hg.serve))
    app.add_serve(_Router(Serve("api", "http", ":0")), extra)
    built = app.build()
    assert len(built) == 1
    serve, inner = built[0]
    assert inner.serve == "api"
    assert inner.serve_type == "http"
    assert seen == ["api"]
    assert isinstance(inner.middle[0], Cors) and isinstance(inner.middle[1], Auth)
    assert inner.middle[-1] is extra
    assert isinstance(inner.get_route("GET", "/ping"), Route)
    assert call(inner, "GET", "/ping").response_body["message"] == "invalid token"


def test_build_uses_configured_not_auth(tmp_path):
    (tmp_path / "env").mkdir()
    (tmp_path / "env" / "app.yaml").write_text("APP_CONFIG: conf\n", encoding="utf-8")
    (tmp_path / "conf").mkdir()
    (tmp_path / "conf" / "auth.yaml").write_text("NotAuth:\n  Ping: 1\n", encoding="utf-8")
    app = init(str(tmp_path)).add_serve(_Router(Serve("api", "http", ":0")))
    _, inner = app.build()[0]
    assert call(inner, "GET", "/ping").response_body == "pong"


def test_build_rejects_unknown_serve_type(tmp_path):
    app = init(str(tmp_path)).add_serve(_Router(Serve("api", "ftp", ":0")))
    with pytest.raises(ValueError, match="only support"):
        app.build()


def test_build_rejects_route_without_flag(tmp_path):
    app = init(str(tmp_path)).add_serve(_Router(Serve("api", "http", ":0"), flag=""))
    with pytest.raises(ApiError):
        app.build()