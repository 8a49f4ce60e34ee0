"""Serve types, websocket response kinds and address patterns."""

import re

ROOT = "./../"
ROOT_DIRS = (".", "..", "")

HTTP_SERVE = "http"
HTTPS_SERVE = "https"
WEBSOCKET_SERVE = "websocket"
ONLY_SUPPORT_SERVE = (HTTP_SERVE, HTTPS_SERVE, WEBSOCKET_SERVE)

WS_CONN_IP = "ws_conn_ip"
WS_RESP_STRING = "string"
WS_RESP_MAP = "map"
WS_RESP_STRUCT = "struct"
WS_RESP_ERROR = "error"
WS_RESP_CLOSE = "close"

BEGIN_SYMBOL = "^"
END_SYMBOL = "$"
COLON = ":"
_OCTET = r"(25[0-5]|2[0-4]\d|[0-1]\d{2}|[1-9]?\d)"
IP = r"\.".join([_OCTET] * 4)
PORT = (
    r"([0-9]|[1-9]\d|[1-9]\d{2}|[1-9]\d{3}|[1-5]\d{4}"
    r"|6[0-4]\d{3}|65[0-4]\d{2}|655[0-2]\d|6553[0-5])"
)
IP_PORT = BEGIN_SYMBOL + IP + COLON + PORT + END_SYMBOL
COLON_PORT = BEGIN_SYMBOL + COLON + PORT + END_SYMBOL

_IP_PORT_RE = re.compile(IP_PORT, re.ASCII)
_COLON_PORT_RE = re.compile(COLON_PORT, re.ASCII)


def is_ip_port(value: str) -> bool:
    """Return True if ``value`` looks like ``a.b.c.d:port``."""
    return _IP_PORT_RE.fullmatch(value) is not None


def is_colon_port(value: str) -> bool:
    """Return True if ``value`` looks like ``:port``."""
    return _COLON_PORT_RE.fullmatch(value) is not None


def is_supported_serve(serve_type: str) -> bool:
    """Return True if ``serve_type`` is one of the supported serve types."""
    return serve_type in ONLY_SUPPORT_SERVE