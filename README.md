# higoweb

A compact WSGI web framework:

- **Routes carry metadata.** Every route has a *flag* (an identifier used by
  authorization rules), a *description* and an `is_auth` switch. When serves are
  built, a non-static route without a flag is rejected.
- **Middleware is layered.** A recovery layer turns raised errors into JSON
  bodies of the form `{"code", "message", "data"}`; CORS and token-auth
  middleware run ahead of your own global middleware, then group and route
  middleware, then the handler.
- **Configuration comes from YAML** files under the project root.
- **Utilities ship alongside:** lifecycle events, a dependency container,
  validation rules with error codes, result wrappers and keyed locks.

## Modules

| Module               | What it provides                                                              |
|----------------------|-------------------------------------------------------------------------------|
| `higoweb.app`        | `Higo` application (a WSGI callable), `Route`, `Serve`, `init(root)`, `throw` |
| `higoweb.context`    | `Context` request object, `RequestRegistry` (shared as `request`), `wrap_handler` |
| `higoweb.middleware` | `Middleware`, `Cors`, `Auth`, `Recover`, `ApiError`, `cors_handler`, `auth_handler`, `default_recover_handler` |
| `higoweb.validate`   | `Validator`, `Verify`, `RuleGroup`, `VerifyRule`, `ValidateError`, `verifier`, `rule`, `rule_func`, `validate`, `register_validator`, `register_validation` |
| `higoweb.events`     | `EventType`, `Event`, `EventRepository`, `register_event`, `add_event`, `fire` |
| `higoweb.result`     | `ErrorResult`, `JsonResult`, `Responser`, `ResponseSent`, `result`, `receiver` |
| `higoweb.container`  | `Dependency`, `add_container`, `di`, `apply_properties`                       |
| `higoweb.lock`       | `Locker`, `Mutex`, `lock`, `unlock`                                           |
| `higoweb.constants`  | serve type names, address patterns, `is_ip_port`, `is_colon_port`, `is_supported_serve` |

## Defining routes

```python
from higoweb.app import init

app = init(".")

def hello(ctx):
    return "hello"

def login(ctx):
    return {"ok": True}

app.get("/hello", hello, flag="Hello", desc="say hello")

def v2_routes():
    app.post("/login", login, flag="Login", desc="log in", is_auth=False)

app.add_group("/api/v2", v2_routes)
```

`get`, `post`, `put` and `delete` accept `flag`, `desc`, `is_auth` and `middle`
(one handler or a list). `app.group(prefix, *middles)` is a context manager for
grouped routes with group middleware. Paths may hold `:name` and `*name`
segments, whose values land in `ctx.params`.

Handlers may take the `Context` or nothing; one that takes nothing can reach
the current request with `higoweb.context.request.context()`. A returned string
is sent as text, any other non-`None` value as JSON.

`Higo` is a WSGI callable, so `app.dispatch(ctx)` or any WSGI server can drive
it directly.

## Configuration and serves

`load_env(root)` reads each `*.yaml` directly in `<root>/env` (and creates
`<root>/runtime`). `load_configure(dir)` reads every `*.yaml` under the config
directory, which is `<root>/app/config` unless `app.APP_CONFIG` is set in the
env files. Flags listed under `auth.NotAuth` skip the token check. Both are
keyed by file stem and looked up with dotted keys via `env_value` and `conf`.

A router is any object with a `serve` attribute (a `Serve`, e.g. from
`app.new_serve("env.serve.HTTP_HOST")`) and a `loader(app)` method. Queue it
with `add_serve(router, *middles)`; `build()` loads configuration, fires the
lifecycle events and returns one application per serve; `boot()` runs them with
the standard library's threaded WSGI server, wrapping `https` serves in TLS
using `app.SSL.OUT`, `app.SSL.CRT` and `app.SSL.KEY`.

## Errors

```python
from higoweb.app import throw

throw("token is empty", 400001)
```

The recovery middleware answers with HTTP 200 and
`{"code": 400001, "message": "token is empty", "data": null}`. Set
`app.recover_handle` to replace how errors are rendered.

## Validation

```python
from higoweb.validate import verifier, rule

class MobileEmpty:
    message = "mobile is empty"
    def __int__(self):
        return 400001

verify = verifier().tag("mobile", rule("required", MobileEmpty()))
```

A rule pairs an expression such as `required` or `min=4` with an error code
(any object with a `message`) or a check function made with `rule_func`. On
failure a `ValidateError` carrying that code is raised. `Validator.struct`
checks dataclass fields against their `binding` metadata.

## Results

`result(data, error)` wraps a pair in an `ErrorResult`; `unwrap()` returns the
data or raises the error. `Responser(ctx)` writes a `JsonResult` with
`success_json` (HTTP 200) or `error_json` (HTTP 400) and stops the handler.

## Keyed locks

```python
from higoweb.lock import Locker, lock

acquired = lock(Locker(key="report", timeout=1.0), build_report)
```

`lock` runs the task only if the key is free and returns whether it ran. With
`retry` set, it sleeps `interval` between attempts and gives up after the last.
A timeout frees the key even while the task still runs.

## What it does not do

There is no command-line tool or code generator, no websocket protocol
handling (a `websocket` serve is served as plain HTTP), no Redis client and no
scheduled tasks.

## Running the tests

Install the `test` extra and run `pytest`.