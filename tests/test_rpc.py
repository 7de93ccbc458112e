from __future__ import annotations

import logging

import pytest

from conftest import FakeSession, block_body, status_body
from gnoduty.errors import ChainSetupError, NoUsableEndpointError
from gnoduty.nodes import NodeRegistry
from gnoduty.rpc import Block, NodeStatus, Precommit, RpcGateway
from gnoduty.signing import BlockStatus, check_signed


def _gateway(urls, routes):
    session = FakeSession(routes)
    return RpcGateway(NodeRegistry(urls), timeout=10, session=session), session


def test_fetch_status_skips_down_endpoint() -> None:
    gateway, session = _gateway(
        ["http://a", "http://b"],
        {"http://a/status": status_body(height="1"), "http://b/status": status_body(height="2")},
    )
    gateway.registry[0].mark_down("probe failed")

    status = gateway.fetch_status()

    assert status.latest_block_height == 2
    assert session.urls() == ["http://b/status"]


def test_fetch_status_stops_at_first_success() -> None:
    gateway, session = _gateway(
        ["http://a", "http://b", "http://c"],
        {
            "http://b/status": status_body(height="7"),
            "http://c/status": status_body(height="9"),
        },
    )

    status = gateway.fetch_status()

    assert status.latest_block_height == 7
    assert session.urls() == ["http://a/status", "http://b/status"]
    # failover alone never changes endpoint health
    assert not gateway.registry[0].down


def test_fetch_status_all_down_makes_no_request() -> None:
    gateway, session = _gateway(["http://a", "http://b"], {})
    for endpoint in gateway.registry:
        endpoint.mark_down("probe failed")

    with pytest.raises(NoUsableEndpointError, match="no usable endpoint"):
        gateway.fetch_status()
    assert session.calls == []


def test_fetch_status_all_failing() -> None:
    gateway, session = _gateway(
        ["http://a", "http://b"],
        {"http://a/status": ValueError("bad json"), "http://b/status": {"error": "boom"}},
    )

    with pytest.raises(NoUsableEndpointError):
        gateway.fetch_status()
    assert session.urls() == ["http://a/status", "http://b/status"]


def test_fetch_block_passes_height() -> None:
    precommits = [{"validator_address": "g1x", "signature": "sig"}, None]
    gateway, session = _gateway(
        ["http://a"],
        {"http://a/block": lambda params: block_body(params["height"], precommits)},
    )

    block = gateway.fetch_block(101)

    assert block.height == 101
    assert len(block.precommits) == 1
    assert session.calls == [("http://a/block", {"height": "101"})]


def test_node_status_decoding() -> None:
    status = NodeStatus.from_json(status_body(height="", catching_up=True, address="g1v")["result"])

    assert status.network == "test6"
    assert status.catching_up is True
    assert status.latest_block_height == 0
    assert status.latest_block_time.year == 2026
    assert status.validator_address == "g1v"
    assert status.pub_key_type == "/tm.PubKeyEd25519"
    assert status.voting_power == 1


def test_block_decoding_requires_block() -> None:
    with pytest.raises(ValueError):
        Block.from_json({"block_meta": {}})


def test_connect_marks_failures_and_accepts_healthy_node() -> None:
    gateway, session = _gateway(
        ["http://a", "http://b", "http://c"],
        {
            "http://a/status": status_body(network="other-chain"),
            "http://b/status": status_body(catching_up=True),
            "http://c/status": status_body(),
        },
    )

    endpoint, status = gateway.connect("test6", "gno-test")

    first, second, third = gateway.registry
    assert endpoint is third
    assert status.network == "test6"
    assert first.down and not first.syncing
    assert "does not match" in first.last_msg
    assert second.down and second.syncing
    assert "not synced" in second.last_msg
    assert not third.down and not third.syncing
    assert gateway.registry.healthy_count() == 1


def test_connect_unreachable_node_marked_down() -> None:
    gateway, _ = _gateway(["http://a"], {})

    with pytest.raises(ChainSetupError, match="test6"):
        gateway.connect("test6")
    assert gateway.registry[0].down
    assert gateway.registry[0].last_msg


def test_block_decoding_coerces_non_string_fields(caplog) -> None:
    result = block_body(5, [{"validator_address": "g1v", "signature": 12345678901234567890123}])["result"]

    block = Block.from_json(result)

    assert block.precommits == [Precommit("g1v", "12345678901234567890123")]
    with caplog.at_level(logging.DEBUG, logger="gnoduty.signing"):
        assert check_signed(block, "g1v") is BlockStatus.SIGNED
