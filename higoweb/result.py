"""Error-carrying results and JSON response helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class ErrorResult:
    """A value paired with an optional error."""

    data: Any = None
    error: Optional[BaseException] = None

    def unwrap(self) -> Any:
        """Return the data, raising the error if there is one."""
        if self.error is not None:
            raise self.error
        return self.data


def result(*args: Any) -> ErrorResult:
    """Build an ErrorResult from ``(error,)`` or ``(data, error)``."""
    if len(args) == 1:
        (value,) = args
        if value is None:
            return ErrorResult(None, None)
        if isinstance(value, BaseException):
            return ErrorResult(None, value)
    elif len(args) == 2:
        data, error = args
        if error is None:
            return ErrorResult(data, None)
        if isinstance(error, BaseException):
            return ErrorResult(data, error)
    return ErrorResult(None, ValueError("error result format"))


def receiver(*args: Any) -> ErrorResult:
    """Receive ``(data, error)`` style values as an ErrorResult."""
    return result(*args)


@dataclass
class JsonResult:
    code: int = 0
    message: str = ""
    data: Any = None

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "data": self.data}


def new_json_result(code: int, message: str, data: Any) -> JsonResult:
    return JsonResult(code=code, message=message, data=data)


class ResponseSent(Exception):
    """Raised after a response has been written, to stop the handler."""

    def __init__(self, status: int, payload: Any) -> None:
        super().__init__(status)
        self.status = status
        self.payload = payload


def _payload(obj: Any) -> Any:
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else obj


class Responser:
    """Writes a JSON result to a request context and ends the handler."""

    factory: Callable[[int, str, Any], Any] = staticmethod(new_json_result)

    def __init__(self, ctx: Any) -> None:
        self.ctx = ctx

    def build(self, message: str, code: int, data: Any) -> Any:
        return type(self).factory(code, message, data)

    def _send(self, status: int, message: str, code: int, data: Any) -> None:
        payload = _payload(self.build(message, code, data))
        self.ctx.json(status, payload)
        raise ResponseSent(status, payload)

    def success_json(self, message: str, code: int, data: Any) -> None:
        self._send(200, message, code, data)

    def error_json(self, message: str, code: int, data: Any) -> None:
        self._send(400, message, code, data)