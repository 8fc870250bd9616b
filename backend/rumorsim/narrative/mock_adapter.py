"""Deterministic narrative adapter for local development and repeatable tests.

Builds plain-text recaps straight from the report without external API calls.
"""

from ..engine.resolution import SELF_FULFILLING_LOOP
from .base import GameNarrativeContext, NarrativeAdapter, RoundNarrativeContext


class MockNarrativeAdapter(NarrativeAdapter):
    """Template-based recaps; same report in, same text out."""

    async def narrate_round(self, ctx: RoundNarrativeContext) -> str:
        report = ctx.report
        pre, post = report.pre_state, report.post_state
        exits = report.actions_summary.get("EXIT")
        events = ", ".join(report.event_names()) or "no threshold events"
        return (
            f"Round {report.round_index + 1}: \"{ctx.event.title}\" reached the market. "
            f"Panic moved {pre.Panic:.1f} -> {post.Panic:.1f}, Trust {pre.Trust:.1f} -> {post.Trust:.1f}, "
            f"Price {pre.Price:.1f} -> {post.Price:.1f}. "
            f"{exits.count if exits else 0} of {len(ctx.submissions)} participants headed for the exit. "
            f"Observed: {events}."
        )

    async def narrate_game(self, ctx: GameNarrativeContext) -> str:
        if not ctx.timeline:
            return f"Game {ctx.room_id} ended ({ctx.end_reason}) before any round resolved."
        first, last = ctx.timeline[0].report, ctx.timeline[-1].report
        looped = sum(1 for entry in ctx.timeline if entry.report.has_event(SELF_FULFILLING_LOOP))
        return (
            f"Game {ctx.room_id} ({ctx.mode}) ran {len(ctx.timeline)} rounds and ended: {ctx.end_reason}. "
            f"It opened on \"{ctx.timeline[0].event_title}\" with Panic={first.pre_state.Panic:.0f} and "
            f"closed on \"{ctx.timeline[-1].event_title}\" with Panic={last.post_state.Panic:.0f}, "
            f"Loss={last.post_state.Loss:.0f}. The rumor fed on itself in {looped} round(s)."
        )
