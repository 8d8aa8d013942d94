import json
import socket
from pathlib import Path

import pytest


VIOLATIONS = []
ARTIFACTS_DIR = Path("artifacts")
ARTIFACTS_DIR.mkdir(parents=True, exist_ok=True)
REPORT = ARTIFACTS_DIR / "egress-violations.json"

_LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


@pytest.fixture(autouse=True, scope="session")
def egress_guard():
    real_getaddrinfo = socket.getaddrinfo
    real_create_connection = socket.create_connection

    def guard_getaddrinfo(host, *args, **kwargs):
        if isinstance(host, str) and host in _LOOPBACK_HOSTS:
            return real_getaddrinfo(host, *args, **kwargs)
        VIOLATIONS.append({"fn": "getaddrinfo", "host": str(host)})
        raise RuntimeError("Egress blocked: getaddrinfo disallowed")

    def guard_create_connection(address, *args, **kwargs):
        host = address[0] if isinstance(address, tuple) else None
        if host in _LOOPBACK_HOSTS:
            return real_create_connection(address, *args, **kwargs)
        VIOLATIONS.append({"fn": "create_connection", "address": str(address)})
        raise RuntimeError("Egress blocked: create_connection disallowed")

    socket.getaddrinfo = guard_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = guard_create_connection  # type: ignore[assignment]

    yield

    # Restore
    socket.getaddrinfo = real_getaddrinfo  # type: ignore[assignment]
    socket.create_connection = real_create_connection  # type: ignore[assignment]

    REPORT.write_text(json.dumps(VIOLATIONS, indent=2))
