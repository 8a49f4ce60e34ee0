import pytest

from higoweb.constants import (
    HTTP_SERVE,
    HTTPS_SERVE,
    ONLY_SUPPORT_SERVE,
    WEBSOCKET_SERVE,
    is_colon_port,
    is_ip_port,
    is_supported_serve,
)


@pytest.mark.parametrize(
    "value",
    ["127.0.0.1:8080", "0.0.0.0:0", "255.255.255.255:65535", "10.1.20.199:443"],
)
def test_valid_ip_port(value):
    assert is_ip_port(value) is True


@pytest.mark.parametrize(
    "value",
    [
        "256.0.0.1:80",
        "127.0.0.1",
        "127.0.0.1:65536",
        "127.0.0:80",
        "127.0.0.1:080",
        "127.0.0.1:80\n",
        ":8080",
    ],
)
def test_invalid_ip_port(value):
    assert is_ip_port(value) is False


@pytest.mark.parametrize("value", [":0", ":80", ":6123", ":65535"])
def test_valid_colon_port(value):
    assert is_colon_port(value) is True


@pytest.mark.parametrize("value", ["80", ":65536", ":", ":01", "1.2.3.4:80"])
def test_invalid_colon_port(value):
    assert is_colon_port(value) is False


def test_supported_serves():
    for serve in (HTTP_SERVE, HTTPS_SERVE, WEBSOCKET_SERVE):
        assert is_supported_serve(serve) is True
    assert len(ONLY_SUPPORT_SERVE) == 3


def test_unsupported_serve():
    assert is_supported_serve("ftp") is False
    assert is_supported_serve("") is False