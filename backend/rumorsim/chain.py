"""Optional mirror of round integrity bundles to an external ledger gateway.

The off-chain bundle is the canonical result; the mirror is a convenience
for third-party verification. Every failure here degrades to "unverifiable"
and never blocks or fails a resolution.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .engine.integrity import IntegrityBundle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MirroredRound:
    pre_state_hash: str
    post_state_hash: str
    actions_hash: str
    rumor_card_hash: str
    round_hash: str
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "preStateHash": self.pre_state_hash,
            "postStateHash": self.post_state_hash,
            "actionsHash": self.actions_hash,
            "rumorCardHash": self.rumor_card_hash,
            "roundHash": self.round_hash,
            "timestamp": self.timestamp,
        }


class ChainMirror:
    """Interface implemented by all mirror backends."""

    enabled: bool = False

    def mirror_round(self, room_id: int, round_index: int, bundle: IntegrityBundle) -> str | None:
        raise NotImplementedError

    def get_round(self, room_id: int, round_index: int) -> MirroredRound | None:
        raise NotImplementedError

    def verify_round_hash(self, room_id: int, round_index: int, expected_hash: str) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return None


class DisabledChainMirror(ChainMirror):
    """Stand-in when no gateway is configured: nothing is mirrored or verifiable."""

    enabled = False

    def mirror_round(self, room_id: int, round_index: int, bundle: IntegrityBundle) -> str | None:
        return None

    def get_round(self, room_id: int, round_index: int) -> MirroredRound | None:
        return None

    def verify_round_hash(self, room_id: int, round_index: int, expected_hash: str) -> bool:
        return False


class HttpChainMirror(ChainMirror):
    """Talks to a ledger gateway that stores bundles keyed by (room id, round index)."""

    enabled = True

    def __init__(self, base_url: str, timeout_ms: int = 10000, transport: httpx.BaseTransport | None = None) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout_ms / 1000, transport=transport)

    def mirror_round(self, room_id: int, round_index: int, bundle: IntegrityBundle) -> str | None:
        resp = self._client.post(f"/rounds/{room_id}/{round_index}", json=bundle.to_dict())
        resp.raise_for_status()
        payload = resp.json()
        return payload.get("txHash") if isinstance(payload, dict) else None

    def get_round(self, room_id: int, round_index: int) -> MirroredRound | None:
        resp = self._client.get(f"/rounds/{room_id}/{round_index}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        return MirroredRound(
            pre_state_hash=data["preStateHash"],
            post_state_hash=data["postStateHash"],
            actions_hash=data["actionsHash"],
            rumor_card_hash=data["rumorCardHash"],
            round_hash=data["roundHash"],
            timestamp=data.get("timestamp"),
        )

    def verify_round_hash(self, room_id: int, round_index: int, expected_hash: str) -> bool:
        resp = self._client.get(f"/rounds/{room_id}/{round_index}/verify", params={"hash": expected_hash})
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return bool(resp.json().get("verified", False))

    def close(self) -> None:
        self._client.close()


def build_chain_mirror(base_url: str, timeout_ms: int = 10000) -> ChainMirror:
    if not base_url:
        return DisabledChainMirror()
    return HttpChainMirror(base_url, timeout_ms=timeout_ms)


@dataclass(frozen=True)
class ChainVerification:
    enabled: bool
    verified: bool
    chain_tx_hash: str | None = None
    on_chain: dict[str, Any] | None = None
    off_chain: dict[str, Any] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "verified": self.verified,
            "chainTxHash": self.chain_tx_hash,
            "onChain": self.on_chain,
            "offChain": self.off_chain,
            "error": self.error,
        }


def verify_round(
    mirror: ChainMirror,
    room_id: int,
    round_index: int,
    hashes: dict[str, Any] | None,
    chain_tx_hash: str | None = None,
) -> ChainVerification:
    """Compare a stored bundle against the mirror; never raises."""

    if not mirror.enabled:
        return ChainVerification(enabled=False, verified=False, error="Chain mirror not configured")
    if not hashes or not hashes.get("roundHash"):
        return ChainVerification(enabled=True, verified=False, error="Round not yet resolved")
    try:
        on_chain = mirror.get_round(room_id, round_index)
        verified = mirror.verify_round_hash(room_id, round_index, str(hashes["roundHash"]))
    except (httpx.HTTPError, KeyError, ValueError) as exc:
        logger.warning(
            "chain verification failed room=%s round=%s reason=%s: %s",
            room_id,
            round_index,
            type(exc).__name__,
            str(exc)[:160],
        )
        return ChainVerification(
            enabled=True,
            verified=False,
            chain_tx_hash=chain_tx_hash,
            off_chain=hashes,
            error=f"{type(exc).__name__}: {str(exc)[:160]}",
        )
    return ChainVerification(
        enabled=True,
        verified=verified,
        chain_tx_hash=chain_tx_hash,
        on_chain=on_chain.to_dict() if on_chain else None,
        off_chain=hashes,
    )
