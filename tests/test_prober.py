from __future__ import annotations

import pytest
import requests

from conftest import FakeSession, status_body
from gnoduty.nodes import EPOCH, ChainState, NodeEndpoint, NodeRegistry, NodeState
from gnoduty.prober import HealthProber
from gnoduty.rpc import RpcGateway


def _prober(urls, routes):
    session = FakeSession(routes)
    gateway = RpcGateway(NodeRegistry(urls), timeout=1, session=session)
    chain_state = ChainState()
    return HealthProber("gno-test", "test6", gateway, chain_state, interval=60), session


def test_failed_probe_marks_down_then_recovers() -> None:
    prober, session = _prober(["http://a"], {"http://a/status": requests.Timeout("timed out")})
    endpoint = prober.gateway.registry[0]

    prober.probe(endpoint)

    assert endpoint.down
    assert endpoint.down_since > EPOCH
    assert "is down" in endpoint.last_msg
    assert not endpoint.was_down

    session.routes["http://a/status"] = status_body()
    prober.probe(endpoint)

    assert not endpoint.down
    assert not endpoint.syncing
    assert endpoint.down_since == EPOCH
    assert endpoint.last_msg == ""
    assert endpoint.was_down


def test_repeated_failure_keeps_first_down_since() -> None:
    prober, _ = _prober(["http://a"], {})
    endpoint = prober.gateway.registry[0]

    prober.probe(endpoint)
    first = endpoint.down_since
    prober.probe(endpoint)

    assert endpoint.down_since == first


def test_catching_up_sets_syncing_without_forcing_down() -> None:
    prober, _ = _prober(["http://a"], {"http://a/status": status_body(catching_up=True)})
    endpoint = prober.gateway.registry[0]

    prober.probe(endpoint)

    assert endpoint.syncing
    assert not endpoint.down
    assert endpoint.health.state is NodeState.SYNCING
    assert prober.gateway.registry.healthy_count() == 0


def test_catching_up_keeps_down_endpoint_down() -> None:
    prober, _ = _prober(["http://a"], {"http://a/status": status_body(catching_up=True)})
    endpoint = prober.gateway.registry[0]
    endpoint.mark_down("unreachable")
    since = endpoint.down_since

    prober.probe(endpoint)

    assert endpoint.down and endpoint.syncing
    assert endpoint.down_since == since


def test_recovery_clears_no_nodes() -> None:
    prober, _ = _prober(["http://a"], {"http://a/status": status_body()})
    prober.chain_state.set_no_nodes("no usable Gnoland endpoints available for test6")
    prober.gateway.registry[0].mark_down("unreachable")

    prober.probe_all()

    assert not prober.chain_state.no_nodes
    assert prober.chain_state.last_error == ""


def test_probe_all_isolates_failures() -> None:
    prober, session = _prober(
        ["http://a", "http://b", "http://c"],
        {"http://a/status": ValueError("garbage"), "http://c/status": status_body()},
    )

    prober.probe_all()

    a, b, c = prober.gateway.registry
    assert a.down and b.down
    assert c.usable
    assert sorted(session.urls()) == ["http://a/status", "http://b/status", "http://c/status"]


def test_mark_down_requires_reason() -> None:
    endpoint = NodeEndpoint("http://a/")
    assert endpoint.url == "http://a"
    with pytest.raises(ValueError):
        endpoint.mark_down("")
    assert not endpoint.down
