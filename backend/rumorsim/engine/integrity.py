"""Canonical hashing of round inputs/outputs and the chained round fingerprint.

Every hash is SHA-256 over the UTF-8 bytes of a canonical JSON form and is
rendered as lowercase hex. The round hash chains the four component hashes
in a fixed order so a verifier holding only the pre-state, event,
submissions and post-state can recompute and compare it.
"""

import hashlib
import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from .actions import Submission
from .catalog import RumorEvent
from .world import WorldState


def _js_number(value: float) -> str:
    """Render a float the way JavaScript's ``Number.prototype.toString`` does.

    Both languages pick the shortest round-tripping digits; they differ only
    in when they switch to exponent form and how they write the exponent.
    """

    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    mantissa, _, exp_text = repr(abs(value)).partition("e")
    whole, _, frac = mantissa.partition(".")
    digits = (whole + frac).lstrip("0")
    # value == 0.<digits> * 10**point
    point = len(whole) + int(exp_text or 0) - (len(whole + frac) - len(digits))
    digits = digits.rstrip("0")

    if len(digits) <= point <= 21:
        text = digits + "0" * (point - len(digits))
    elif 0 < point <= 21:
        text = digits[:point] + "." + digits[point:]
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        exponent = point - 1
        head = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        text = f"{head}e{'+' if exponent >= 0 else '-'}{abs(exponent)}"
    return sign + text


def _encode(value: Any, out: list[str]) -> None:
    if isinstance(value, Enum):
        value = value.value
    if value is None or isinstance(value, bool):
        out.append(json.dumps(value))
    elif isinstance(value, int):
        out.append(str(value))
    elif isinstance(value, float):
        out.append(_js_number(value))
    elif isinstance(value, str):
        out.append(json.dumps(value, ensure_ascii=False))
    elif isinstance(value, dict):
        out.append("{")
        items = sorted(((str(k), v) for k, v in value.items()), key=lambda kv: kv[0])
        for position, (key, item) in enumerate(items):
            if position:
                out.append(",")
            out.append(json.dumps(key, ensure_ascii=False))
            out.append(":")
            _encode(item, out)
        out.append("}")
    elif isinstance(value, (list, tuple)):
        out.append("[")
        for position, item in enumerate(value):
            if position:
                out.append(",")
            _encode(item, out)
        out.append("]")
    else:
        raise TypeError(f"cannot canonicalize {type(value).__name__}")


def canonical_json(obj: Any) -> str:
    """Compact JSON with sorted keys and JavaScript number formatting.

    Identical content yields identical text, and the text matches what
    ``JSON.stringify`` produces over the same key-sorted object, so hashes
    can be recomputed outside Python.
    """

    out: list[str] = []
    _encode(obj, out)
    return "".join(out)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def state_hash(state: WorldState) -> str:
    return sha256_hex(canonical_json(state.to_dict()))


def event_hash(event: RumorEvent) -> str:
    return sha256_hex(canonical_json(event.to_dict()))


def _actions_payload(submissions: Iterable[Submission]) -> list[dict[str, Any]]:
    ordered = sorted(submissions, key=lambda sub: sub.name)
    return [
        {
            "agent_name": sub.name,
            "action": sub.action.value,
            "intensity": sub.intensity,
            "signals": list(sub.signals),
            "confidence": sub.confidence,
        }
        for sub in ordered
    ]


def actions_hash(submissions: Iterable[Submission]) -> str:
    """Hash of the submission set sorted by name; narrative text is excluded."""

    return sha256_hex(canonical_json(_actions_payload(submissions)))


def chain_round_hash(pre_state_hash: str, rumor_card_hash: str, actions_hash_: str, post_state_hash: str) -> str:
    return sha256_hex(pre_state_hash + rumor_card_hash + actions_hash_ + post_state_hash)


@dataclass(frozen=True)
class IntegrityBundle:
    pre_state_hash: str
    post_state_hash: str
    rumor_card_hash: str
    actions_hash: str
    round_hash: str

    def to_dict(self) -> dict[str, str]:
        return {
            "preStateHash": self.pre_state_hash,
            "postStateHash": self.post_state_hash,
            "rumorCardHash": self.rumor_card_hash,
            "actionsHash": self.actions_hash,
            "roundHash": self.round_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "IntegrityBundle":
        return cls(
            pre_state_hash=data["preStateHash"],
            post_state_hash=data["postStateHash"],
            rumor_card_hash=data["rumorCardHash"],
            actions_hash=data["actionsHash"],
            round_hash=data["roundHash"],
        )


def compute_bundle(
    pre_state: WorldState,
    post_state: WorldState,
    event: RumorEvent,
    submissions: Iterable[Submission],
) -> IntegrityBundle:
    pre_h = state_hash(pre_state)
    post_h = state_hash(post_state)
    card_h = event_hash(event)
    acts_h = actions_hash(submissions)
    return IntegrityBundle(
        pre_state_hash=pre_h,
        post_state_hash=post_h,
        rumor_card_hash=card_h,
        actions_hash=acts_h,
        round_hash=chain_round_hash(pre_h, card_h, acts_h, post_h),
    )


def verify_bundle(
    bundle: IntegrityBundle,
    pre_state: WorldState,
    event: RumorEvent,
    submissions: Iterable[Submission],
    post_state: WorldState,
) -> bool:
    """Recompute the round hash from independently obtained inputs and compare."""

    recomputed = compute_bundle(pre_state, post_state, event, submissions)
    return recomputed == bundle


def submission_receipt(round_id: int, player_id: str, submission: Submission) -> str:
    """Proof-of-submission hash, independent of the round-level bundle."""

    payload = {
        "roundId": round_id,
        "playerId": player_id,
        "agent_name": submission.name,
        "action": submission.action.value,
        "intensity": submission.intensity,
        "signals": sorted(submission.signals),
        "confidence": submission.confidence,
        "narrative": submission.narrative,
    }
    return sha256_hex(canonical_json(payload))
