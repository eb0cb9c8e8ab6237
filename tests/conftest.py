import socket
import urllib.request

import pytest


@pytest.fixture(autouse=True)
def block_egress(monkeypatch):
    """Tests run against in-memory stores only; any outbound connection is a bug."""

    def _blocked(*args, **kwargs):  # pragma: no cover - guard
        raise RuntimeError("egress blocked")

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(urllib.request, "urlopen", _blocked)
