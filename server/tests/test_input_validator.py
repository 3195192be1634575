import socket
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from services.input_validator import InputValidator


def resolves_to(address):
    family = socket.AF_INET6 if ":" in address else socket.AF_INET
    return [(family, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", (address, 443))]


@pytest.mark.parametrize("url", [
    "http://2130706433/",
    "http://0x7f.1/",
    "http://127.1/",
    "http://[::ffff:127.0.0.1]/",
    "http://169.254.169.254/latest/meta-data",
    "http://10.0.0.5/sheet.csv",
    "http://localhost:8080/",
    "http://metadata.google.internal/computeMetadata/v1/",
])
def test_internal_addresses_rejected(url):
    with pytest.raises(HTTPException) as exc:
        InputValidator.validate_url(url)
    assert exc.value.status_code == 400


def test_hostname_resolving_to_private_address_rejected():
    with patch("services.input_validator.socket.getaddrinfo", return_value=resolves_to("192.168.1.10")):
        assert InputValidator.is_public_url("https://sheets.internal.example/pub.csv") is False


def test_public_host_with_ip_like_path_accepted():
    url = "https://docs.google.com/spreadsheets/d/e/v10.1.2.3/pub?output=csv"
    with patch("services.input_validator.socket.getaddrinfo", return_value=resolves_to("142.250.80.46")):
        assert InputValidator.validate_url(url) is True


def test_unresolvable_host_rejected():
    with patch("services.input_validator.socket.getaddrinfo", side_effect=socket.gaierror("no such host")):
        assert InputValidator.is_public_url("https://nope.invalid/x.csv") is False


def test_non_http_scheme_rejected():
    with pytest.raises(HTTPException):
        InputValidator.validate_url("file:///etc/passwd")


def test_login_keeps_non_email_identifiers():
    assert InputValidator.validate_login(" kim ", "pw") == ("kim", "pw")
