"""Built-in rumor-event catalog and the story/chaos draw sequences."""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import OutOfRange, UnknownEvent


class GameMode(str, Enum):
    story = "story"
    chaos = "chaos"
    survival = "survival"


@dataclass(frozen=True)
class RumorEvent:
    """One round's exogenous shock: magnitude, credibility and topic focus."""

    id: str
    title: str
    text: str
    shock: float
    credibility: float
    focus: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "rumor_text": self.text,
            "shock": self.shock,
            "credibility": self.credibility,
            "focus": list(self.focus),
        }


RUMOR_EVENTS: tuple[RumorEvent, ...] = (
    RumorEvent(
        id="R-01",
        title="Bank Run Risk",
        text=(
            "Before dawn, several communities share the same message: the platform's reserves are short "
            "and a historic exchange collapse may repeat. Screenshots of a brief withdrawal delay circulate "
            "as proof. A proof-of-reserves report follows, but the screenshots have already spread."
        ),
        shock=12,
        credibility=0.55,
        focus=("liquidity", "trust"),
    ),
    RumorEvent(
        id="R-02",
        title="Whale Dump",
        text=(
            "On-chain monitors flag more than 12,000 BTC moved from platform-linked wallets to unknown "
            "addresses within six hours. Analysts call it insider selling. The founder dismisses the "
            "screenshots as AI-generated FUD, but the transfer itself is real."
        ),
        shock=10,
        credibility=0.45,
        focus=("panic", "rumor"),
    ),
    RumorEvent(
        id="R-03",
        title="Outflow Screenshots",
        text=(
            "A polished set of charts claims eight billion dollars of net outflow in a week and hot-wallet "
            "balances at record lows. Third-party data shows stable flows, yet the images are reshared "
            "tens of thousands of times. Enough people believe it to make it matter."
        ),
        shock=11,
        credibility=0.60,
        focus=("trust", "liquidity"),
    ),
    RumorEvent(
        id="R-04",
        title="AI Swarm Attack",
        text=(
            "Researchers find over 2,000 new accounts posting near-identical negative content about the "
            "platform, apparently generated in bulk by a language model. The co-founder calls it an "
            "organised smear, and the debate about AI-made FUD becomes fuel for the next wave of fear."
        ),
        shock=8,
        credibility=0.50,
        focus=("rumor", "trust"),
    ),
    RumorEvent(
        id="R-05",
        title="Regulatory Pressure",
        text=(
            "Anonymous sources tell financial media that a major regulator is preparing a formal probe into "
            "anti-money-laundering compliance and customer fund segregation. The token drops 4.7% within "
            "the hour while the platform says it has received no notice."
        ),
        shock=13,
        credibility=0.50,
        focus=("trust", "panic"),
    ),
    RumorEvent(
        id="R-06",
        title="Founder Gone Quiet",
        text=(
            "The founder, who usually posts five times a day, has been silent for 72 hours. A blurry airport "
            "photo with several suitcases trends under a 'founder fled' tag. He eventually returns from "
            "holiday, but the silence has already cracked confidence."
        ),
        shock=9,
        credibility=0.40,
        focus=("rumor", "panic"),
    ),
    RumorEvent(
        id="R-07",
        title="Safety Fund Rebalance",
        text=(
            "The platform's safety fund converts about 40% of its BTC into stablecoins and moves funds to "
            "three new addresses. Optimists see routine rebalancing; pessimists see preparation for mass "
            "withdrawals. The top-up announced later is smaller than what left."
        ),
        shock=7,
        credibility=0.35,
        focus=("trust",),
    ),
    RumorEvent(
        id="R-08",
        title="Network Congestion",
        text=(
            "API latency jumps from 200ms to 2.5 seconds and withdrawals sit in 'processing' for half an "
            "hour. A trader's screen recording passes a million views. It is routine maintenance, but "
            "thousands withdraw in panic and the extra load deepens the congestion."
        ),
        shock=11,
        credibility=0.65,
        focus=("load", "panic"),
    ),
)

STORY_ORDER: tuple[str, ...] = ("R-04", "R-02", "R-01", "R-03", "R-05", "R-08")

CHAOS_STRIDE = 7


class Catalog:
    """Immutable lookup over a fixed set of rumor events."""

    def __init__(self, events: tuple[RumorEvent, ...], story_order: tuple[str, ...]) -> None:
        self._events = tuple(events)
        self._by_id = {event.id: event for event in self._events}
        self._story_order = tuple(story_order)
        for event_id in self._story_order:
            self.get(event_id)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> tuple[RumorEvent, ...]:
        return self._events

    @property
    def story_length(self) -> int:
        return len(self._story_order)

    def get(self, event_id: str) -> RumorEvent:
        event = self._by_id.get(event_id)
        if event is None:
            raise UnknownEvent(event_id)
        return event

    def draw_for_story(self, round_index: int) -> RumorEvent:
        if round_index < 0 or round_index >= len(self._story_order):
            raise OutOfRange(round_index, len(self._story_order))
        return self.get(self._story_order[round_index])

    def draw_for_chaos(self, round_index: int, seed: int | None = None) -> RumorEvent:
        """Seeded draws are reproducible; unseeded draws are for non-audited play only."""

        if seed is None:
            return random.choice(self._events)
        return self._events[abs(seed + round_index * CHAOS_STRIDE) % len(self._events)]

    def draw(self, mode: GameMode, round_index: int, seed: int | None = None) -> RumorEvent:
        if mode == GameMode.story:
            return self.draw_for_story(round_index)
        return self.draw_for_chaos(round_index, seed)


def default_catalog() -> Catalog:
    return Catalog(RUMOR_EVENTS, STORY_ORDER)
