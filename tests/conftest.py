from __future__ import annotations

import threading
from unittest import mock

import pytest
import requests

from gnoduty.config import ChainIdentity
from gnoduty.dashboard import DashboardChannel

ADDRESS = "g1validatoraddressxxxxxxxxxxxxxxxxxxxxxx"


def status_body(network="test6", height="100", catching_up=False, moniker="node", address=""):
    return {
        "jsonrpc": "2.0",
        "id": "",
        "result": {
            "node_info": {"network": network, "moniker": moniker},
            "sync_info": {
                "catching_up": catching_up,
                "latest_block_height": height,
                "latest_block_time": "2026-10-19T10:00:00.123456789Z",
            },
            "validator_info": {
                "address": address,
                "pub_key": {"@type": "/tm.PubKeyEd25519", "value": "AAAA"},
                "voting_power": "1",
            },
        },
    }


def block_body(height, precommits):
    return {
        "jsonrpc": "2.0",
        "id": "",
        "result": {
            "block_meta": {"header": {"height": str(height), "time": "2026-10-19T10:00:00Z"}},
            "block": {
                "header": {"height": str(height), "time": "2026-10-19T10:00:00Z"},
                "last_commit": {"precommits": precommits},
            },
        },
    }


def _response(body):
    resp = mock.Mock()
    resp.raise_for_status.return_value = None
    resp.json.return_value = body
    return resp


class FakeSession:
    """
    Stand-in for requests.Session.

    ``routes`` maps a full URL (``http://a/status``) to a response body, an
    exception to raise, or a callable taking the query params.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, params=None, timeout=None):
        with self._lock:
            self.calls.append((url, params))
        route = self.routes.get(url)
        if route is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        if callable(route) and not isinstance(route, dict):
            route = route(params or {})
        if isinstance(route, Exception):
            raise route
        return _response(route)

    def urls(self):
        return [url for url, _ in self.calls]


@pytest.fixture
def identity():
    return ChainIdentity(name="gno-test", chain_id="test6", address=ADDRESS, window=100)


@pytest.fixture
def channel():
    return DashboardChannel(maxsize=16)
