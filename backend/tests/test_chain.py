"""Chain mirror gateway client and off-chain/on-chain verification."""

import json

import httpx
import pytest

from rumorsim.chain import DisabledChainMirror, HttpChainMirror, build_chain_mirror, verify_round
from rumorsim.engine.catalog import default_catalog
from rumorsim.engine.integrity import IntegrityBundle, compute_bundle
from rumorsim.engine.world import DEFAULT_WORLD, copy_state


def _bundle(make_submission) -> IntegrityBundle:
    subs = [make_submission(name) for name in ("A", "B", "C", "D", "E")]
    return compute_bundle(DEFAULT_WORLD, copy_state(DEFAULT_WORLD, Panic=31.0), default_catalog().get("R-01"), subs)


def _gateway(store):
    def handler(request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        key = (parts[1], parts[2])
        if request.method == "POST":
            store[key] = json.loads(request.content)
            return httpx.Response(200, json={"txHash": f"0x{parts[1]}{parts[2]}"})
        if key not in store:
            return httpx.Response(404, json={"detail": "not found"})
        if parts[-1] == "verify":
            return httpx.Response(200, json={"verified": store[key]["roundHash"] == request.url.params["hash"]})
        return httpx.Response(200, json={**store[key], "timestamp": "2026-01-01T00:00:00+00:00"})

    return httpx.MockTransport(handler)


def test_build_chain_mirror_without_url_is_disabled():
    mirror = build_chain_mirror("")
    assert isinstance(mirror, DisabledChainMirror)
    assert not mirror.enabled
    assert isinstance(build_chain_mirror("http://ledger.local"), HttpChainMirror)


def test_mirror_then_read_back(make_submission):
    store = {}
    mirror = HttpChainMirror("http://ledger.local", transport=_gateway(store))
    bundle = _bundle(make_submission)

    assert mirror.mirror_round(3, 1, bundle) == "0x31"
    on_chain = mirror.get_round(3, 1)
    assert on_chain.round_hash == bundle.round_hash
    assert on_chain.timestamp == "2026-01-01T00:00:00+00:00"
    assert mirror.get_round(3, 2) is None
    assert mirror.verify_round_hash(3, 1, bundle.round_hash)
    assert not mirror.verify_round_hash(3, 1, "0" * 64)


def test_close_releases_the_gateway_client(make_submission):
    mirror = HttpChainMirror("http://ledger.local", transport=_gateway({}))
    mirror.close()

    assert mirror._client.is_closed
    with pytest.raises(RuntimeError):
        mirror.mirror_round(3, 1, _bundle(make_submission))


def test_verify_round_reports_disabled_and_unresolved():
    disabled = verify_round(DisabledChainMirror(), 1, 0, {"roundHash": "abc"})
    assert disabled.to_dict()["error"] == "Chain mirror not configured"
    assert not disabled.verified

    mirror = HttpChainMirror("http://ledger.local", transport=_gateway({}))
    pending = verify_round(mirror, 1, 0, None)
    assert pending.enabled
    assert pending.error == "Round not yet resolved"


def test_verify_round_matches_stored_bundle(make_submission):
    store = {}
    mirror = HttpChainMirror("http://ledger.local", transport=_gateway(store))
    bundle = _bundle(make_submission)
    mirror.mirror_round(5, 0, bundle)

    result = verify_round(mirror, 5, 0, bundle.to_dict(), chain_tx_hash="0x50")
    payload = result.to_dict()
    assert payload["verified"] is True
    assert payload["chainTxHash"] == "0x50"
    assert payload["onChain"]["roundHash"] == bundle.round_hash
    assert payload["offChain"] == bundle.to_dict()
    assert payload["error"] is None

    tampered = {**bundle.to_dict(), "roundHash": "f" * 64}
    assert verify_round(mirror, 5, 0, tampered).verified is False


def test_verify_round_never_raises_on_gateway_failure(make_submission):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    mirror = HttpChainMirror("http://ledger.local", transport=httpx.MockTransport(handler))
    result = verify_round(mirror, 1, 0, _bundle(make_submission).to_dict())
    assert result.enabled
    assert not result.verified
    assert result.error.startswith("ConnectError")


def test_verify_round_reports_gateway_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    mirror = HttpChainMirror("http://ledger.local", transport=httpx.MockTransport(handler))
    result = verify_round(mirror, 1, 0, {"roundHash": "abc"})
    assert not result.verified
    assert result.error.startswith("HTTPStatusError")
