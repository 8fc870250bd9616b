"""Deterministic round resolution.

``resolve_round`` turns (round index, pre-state, rumor event, ordered
submissions, incoming carryover) into a post-state, a report and the
outgoing carryover. It performs no I/O and draws no randomness: the same
inputs always yield byte-identical output, which the integrity hashes rely on.

Steps run in a fixed order against one working copy of the state. Every
threshold check reads the partially-updated, unclamped working values;
clamping happens once, at the end.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence, assert_never

from ..errors import ResolutionInvariantError
from .actions import ActionKind, Submission
from .catalog import RumorEvent
from .integrity import IntegrityBundle, compute_bundle
from .world import WORLD_KEYS, WorldState, clamp_state, delta_state

LIQUIDITY_CRUNCH = "liquidity_crunch"
OVERLOAD_TRUST_DROP = "overload_trust_drop"
RUMOR_VIRAL = "rumor_viral"
COLLECTIVE_CONFIDENCE = "collective_confidence"
CALM_RESTORED = "calm_restored"
MARKET_STABLE = "market_stable"
SELF_FULFILLING_LOOP = "self_fulfilling_loop"
LOSS_SPIRAL = "loss_spiral"
SYSTEMIC_COLLAPSE = "systemic_collapse"

VIRAL_SHOCK_BONUS = 3.0
HIGHLIGHT_LIMIT = 3


@dataclass(frozen=True)
class ResolveEnv:
    """Cross-round carryover; consumed at the start of every resolution."""

    next_shock_bonus: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"nextShockBonus": self.next_shock_bonus}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ResolveEnv":
        if not data:
            return cls()
        return cls(next_shock_bonus=float(data.get("nextShockBonus", 0.0)))


@dataclass(frozen=True)
class TriggeredEvent:
    event: str
    detail: str

    def to_dict(self) -> dict[str, str]:
        return {"event": self.event, "detail": self.detail}


@dataclass(frozen=True)
class ActionAggregate:
    count: int = 0
    total_intensity: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"count": self.count, "totalIntensity": self.total_intensity}


@dataclass(frozen=True)
class RoundReport:
    """Durable, immutable output of one resolution."""

    round_index: int
    rumor_card_id: str
    pre_state: WorldState
    post_state: WorldState
    delta: WorldState
    actions_summary: dict[str, ActionAggregate]
    triggered_events: tuple[TriggeredEvent, ...]
    narrative_highlights: tuple[str, ...]
    hashes: IntegrityBundle

    def event_names(self) -> list[str]:
        return [item.event for item in self.triggered_events]

    def has_event(self, name: str) -> bool:
        return any(item.event == name for item in self.triggered_events)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roundIndex": self.round_index,
            "rumorCardId": self.rumor_card_id,
            "preState": self.pre_state.to_dict(),
            "postState": self.post_state.to_dict(),
            "delta": self.delta.to_dict(),
            "actionsSummary": {action: agg.to_dict() for action, agg in self.actions_summary.items()},
            "triggeredEvents": [item.to_dict() for item in self.triggered_events],
            "narrativeHighlights": list(self.narrative_highlights),
            "hashes": self.hashes.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RoundReport":
        return cls(
            round_index=int(data["roundIndex"]),
            rumor_card_id=str(data["rumorCardId"]),
            pre_state=WorldState.from_dict(data["preState"]),
            post_state=WorldState.from_dict(data["postState"]),
            delta=WorldState.from_dict(data["delta"]),
            actions_summary={
                action: ActionAggregate(count=int(agg["count"]), total_intensity=int(agg["totalIntensity"]))
                for action, agg in data.get("actionsSummary", {}).items()
            },
            triggered_events=tuple(
                TriggeredEvent(event=item["event"], detail=item["detail"]) for item in data.get("triggeredEvents", [])
            ),
            narrative_highlights=tuple(data.get("narrativeHighlights", [])),
            hashes=IntegrityBundle.from_dict(data["hashes"]),
        )


@dataclass(frozen=True)
class ResolveResult:
    post_state: WorldState
    report: RoundReport
    env_out: ResolveEnv = field(default_factory=ResolveEnv)


def _apply_action(s: dict[str, float], action: ActionKind, i: int) -> None:
    match action:
        case ActionKind.EXIT:
            s["Panic"] += 3 * i
            s["Trust"] -= 2 * i
            s["Liquidity"] -= 4 * i
            s["Load"] += 2 * i
        case ActionKind.AMPLIFY:
            s["Rumor"] += 4 * i
            s["Panic"] += 2 * i
            s["Trust"] -= 1 * i
        case ActionKind.STABILIZE:
            s["Panic"] -= 3 * i
            s["Trust"] += 3 * i
            s["Load"] -= 2 * i
        case ActionKind.WAIT:
            s["Panic"] += 1 * i
            s["Rumor"] += 0.5 * i
        case ActionKind.ARBITRAGE:
            s["Liquidity"] -= 2 * i
            s["Load"] += 3 * i
            s["Panic"] += 1
        case _:
            assert_never(action)


def _intensity_sum(submissions: Sequence[Submission], action: ActionKind) -> int:
    return sum(sub.intensity for sub in submissions if sub.action == action)


def resolve_round(
    round_index: int,
    pre_state: WorldState,
    event: RumorEvent,
    submissions: Sequence[Submission],
    env_in: ResolveEnv,
    quorum: int | None = None,
) -> ResolveResult:
    if not submissions:
        raise ResolutionInvariantError("resolve_round called with no submissions")
    if quorum is not None and len(submissions) > quorum:
        raise ResolutionInvariantError(f"resolve_round called with {len(submissions)} submissions (quorum={quorum})")

    events: list[TriggeredEvent] = []
    s = pre_state.to_dict()

    effective_shock = event.shock + env_in.next_shock_bonus
    next_shock_bonus = 0.0

    s["Panic"] += effective_shock * 0.3
    s["Rumor"] += effective_shock * event.credibility
    s["Trust"] -= effective_shock * 0.15

    for sub in submissions:
        _apply_action(s, sub.action, sub.intensity)

    exit_sum = _intensity_sum(submissions, ActionKind.EXIT)
    arb_sum = _intensity_sum(submissions, ActionKind.ARBITRAGE)
    stab_sum = _intensity_sum(submissions, ActionKind.STABILIZE)
    price_change = -2 * exit_sum - 1 * arb_sum + 2 * stab_sum - s["Panic"] * 0.03 + s["Trust"] * 0.02
    s["Price"] += price_change
    if s["Price"] < 60:
        s["Loss"] += (60 - s["Price"]) * 0.5
    s["Panic"] += s["Loss"] * 0.03

    # Negative thresholds.
    if s["Liquidity"] < 50:
        s["Panic"] += 5
        events.append(TriggeredEvent(LIQUIDITY_CRUNCH, f"Liquidity={s['Liquidity']:.1f} < 50 -> Panic +5"))
    if s["Load"] > 80:
        s["Trust"] -= 5
        events.append(TriggeredEvent(OVERLOAD_TRUST_DROP, f"Load={s['Load']:.1f} > 80 -> Trust -5"))
    if s["Rumor"] > 60:
        next_shock_bonus += VIRAL_SHOCK_BONUS
        events.append(TriggeredEvent(RUMOR_VIRAL, f"Rumor={s['Rumor']:.1f} > 60 -> next round shock +3"))

    # Positive thresholds.
    if s["Trust"] > 70:
        s["Panic"] -= 3
        events.append(
            TriggeredEvent(COLLECTIVE_CONFIDENCE, f"Trust={s['Trust']:.1f} > 70 -> Panic -3, collective confidence")
        )
    if s["Panic"] < 30 and s["Trust"] > 50:
        s["Trust"] += 2
        events.append(TriggeredEvent(CALM_RESTORED, f"Panic={s['Panic']:.1f} < 30 -> Trust +2, market calms"))
    if s["Liquidity"] > 75:
        s["Price"] += 2
        events.append(TriggeredEvent(MARKET_STABLE, f"Liquidity={s['Liquidity']:.1f} > 75 -> Price +2, stable market"))

    # Compound checks see the effects of both threshold blocks.
    if s["Panic"] > 80 and s["Trust"] < 40 and s["Rumor"] > 60:
        s["Panic"] += 3
        s["Trust"] -= 2
        s["Rumor"] += 2
        events.append(
            TriggeredEvent(
                SELF_FULFILLING_LOOP,
                f"Panic={s['Panic']:.1f} Trust={s['Trust']:.1f} Rumor={s['Rumor']:.1f} -> self-fulfilling loop",
            )
        )
    if s["Loss"] > 40 and s["Panic"] > 80:
        s["Price"] -= 3
        events.append(
            TriggeredEvent(LOSS_SPIRAL, f"Loss={s['Loss']:.1f} & Panic={s['Panic']:.1f} -> Price -3, loss spiral")
        )

    if s["Liquidity"] <= 5 or (s["Panic"] >= 95 and s["Trust"] <= 5):
        events.append(
            TriggeredEvent(
                SYSTEMIC_COLLAPSE,
                f"Systemic collapse: Liquidity={s['Liquidity']:.1f} Panic={s['Panic']:.1f} Trust={s['Trust']:.1f}",
            )
        )

    post_state = clamp_state(WorldState(**{key: s[key] for key in WORLD_KEYS}))

    summary: dict[str, ActionAggregate] = {}
    for sub in submissions:
        agg = summary.get(sub.action.value, ActionAggregate())
        summary[sub.action.value] = ActionAggregate(
            count=agg.count + 1,
            total_intensity=agg.total_intensity + sub.intensity,
        )

    ranked = sorted(submissions, key=lambda sub: sub.confidence, reverse=True)
    highlights = tuple(sub.narrative for sub in ranked[:HIGHLIGHT_LIMIT])

    report = RoundReport(
        round_index=round_index,
        rumor_card_id=event.id,
        pre_state=pre_state,
        post_state=post_state,
        delta=delta_state(pre_state, post_state),
        actions_summary=summary,
        triggered_events=tuple(events),
        narrative_highlights=highlights,
        hashes=compute_bundle(pre_state, post_state, event, submissions),
    )
    return ResolveResult(post_state=post_state, report=report, env_out=ResolveEnv(next_shock_bonus=next_shock_bonus))
