"""OpenAI-backed narrative adapter.

Turns a resolved round (or a whole game timeline) into a short reportage
style recap through the Responses API. Transient API failures are retried
with exponential backoff; anything else propagates to the dispatcher,
which logs and drops it.
"""

import asyncio
from typing import Any

from openai import APIConnectionError, APITimeoutError, InternalServerError, OpenAI, RateLimitError

from ..config import settings
from .base import GameNarrativeContext, NarrativeAdapter, RoundNarrativeContext

ROUND_INSTRUCTIONS = (
    "You are a financial documentary writer. Turn the settlement data of one round of a rumor "
    "simulation into a vivid 150-250 word narrative. Tell a story instead of listing numbers: how the "
    "rumor spread, how people reacted, and what changed in the system. Dramatize any threshold events. "
    "Write like a calm observer recording a crisis as it unfolds, and avoid game terminology."
)

GAME_INSTRUCTIONS = (
    "You are a financial documentary writer. Write a 300-500 word closing account of a complete rumor "
    "simulation. Retrace the whole arc from the first rumor to the final outcome and expose the "
    "self-fulfilling prophecy: how collective behaviour turned a rumor into reality. Point out the irony "
    "that the reaction to risk, not the risk itself, broke the system. End with a reflective paragraph "
    "and avoid game terminology."
)

TRANSIENT_ERRORS = (RateLimitError, APIConnectionError, APITimeoutError, InternalServerError)


class OpenAINarrativeAdapter(NarrativeAdapter):
    """Adapter that calls OpenAI Responses API and returns plain text."""

    def __init__(self, client: Any | None = None) -> None:
        if client is None and not settings.openai_api_key:
            raise RuntimeError("OPENAI_API_KEY is required for NARRATIVE_MODE=openai")
        self._client = client or OpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.openai_timeout_ms / 1000,
            max_retries=0,
        )

    async def narrate_round(self, ctx: RoundNarrativeContext) -> str:
        return await self._request_with_retry(ROUND_INSTRUCTIONS, self._round_prompt(ctx))

    async def narrate_game(self, ctx: GameNarrativeContext) -> str:
        return await self._request_with_retry(GAME_INSTRUCTIONS, self._game_prompt(ctx))

    async def _request_with_retry(self, instructions: str, prompt: str) -> str:
        attempts = max(1, settings.openai_max_retries)
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                response = await asyncio.to_thread(self._create_response, instructions, prompt)
                return self._extract_text(response)
            except TRANSIENT_ERRORS as exc:
                last_error = exc
                if attempt == attempts - 1:
                    break
                await asyncio.sleep(min(4.0, 0.5 * (2**attempt)))
        if last_error:
            raise last_error
        raise RuntimeError("OpenAI request failed without explicit error")

    def _create_response(self, instructions: str, prompt: str) -> Any:
        return self._client.responses.create(
            model=settings.openai_model,
            instructions=instructions,
            input=prompt,
            max_output_tokens=settings.openai_max_output_tokens,
        )

    def _extract_text(self, response: Any) -> str:
        text = getattr(response, "output_text", None)
        if not isinstance(text, str) or not text.strip():
            raise RuntimeError("OpenAI response missing output_text")
        return text.strip()

    def _round_prompt(self, ctx: RoundNarrativeContext) -> str:
        report = ctx.report
        pre, post = report.pre_state.to_dict(), report.post_state.to_dict()
        events = "\n".join(f"- {item.event}: {item.detail}" for item in report.triggered_events) or "- none"
        actions = "\n".join(
            f"- {sub.name} chose {sub.action.value} (intensity {sub.intensity}): {sub.narrative[:80]}"
            for sub in ctx.submissions
        )
        return (
            f"Round {report.round_index + 1}\n"
            f"Rumor: {ctx.event.title} - \"{ctx.event.text}\" "
            f"(shock={ctx.event.shock}, credibility={ctx.event.credibility})\n\n"
            f"State before: {self._format_state(pre)}\n\n"
            f"Choices of the {len(ctx.submissions)} participants:\n{actions}\n\n"
            f"State after: {self._format_state(post)}\n\n"
            f"Triggered events:\n{events}\n\n"
            "Write one narrative describing what happened."
        )

    def _game_prompt(self, ctx: GameNarrativeContext) -> str:
        lines = []
        for entry in ctx.timeline:
            pre, post = entry.report.pre_state, entry.report.post_state
            names = entry.report.event_names()
            outcome = f"triggered: {', '.join(names)}" if names else "calm"
            lines.append(
                f"Round {entry.round_index + 1} [{entry.event_title}]: "
                f"Panic {pre.Panic:.1f}->{post.Panic:.1f}, Trust {pre.Trust:.1f}->{post.Trust:.1f}, "
                f"Price {pre.Price:.1f}->{post.Price:.1f}, Loss {pre.Loss:.1f}->{post.Loss:.1f} | {outcome}"
            )
        final = self._format_state(ctx.timeline[-1].report.post_state.to_dict()) if ctx.timeline else "n/a"
        return (
            f"Complete timeline of a {len(ctx.timeline)}-round rumor simulation ({ctx.mode} mode, "
            f"ended: {ctx.end_reason}):\n\n" + "\n".join(lines) + f"\n\nFinal state: {final}\n\n"
            "Write the closing account."
        )

    def _format_state(self, state: dict[str, float]) -> str:
        return ", ".join(f"{key}={value:.1f}" for key, value in state.items())
