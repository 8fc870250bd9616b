#!/usr/bin/env python
"""Replay the six scripted story rounds through the resolution engine.

Uses the built-in preset submissions, threads post-state and carryover from
round to round, and prints state bars, deltas, triggered events and the
integrity hashes. No database or server is involved.

    python scripts/story_replay.py
    python scripts/story_replay.py --json > story.json
"""

import argparse
import json
import sys
from pathlib import Path


def _bar(label: str, value: float, width: int = 30) -> str:
    filled = round(max(0.0, min(100.0, value)) / 100 * width)
    return f"  {label:<10} {'#' * filled}{'.' * (width - filled)} {round(value)}"


def _print_state(title: str, state: dict[str, float]) -> None:
    print(f"\n  {title}")
    for key, value in state.items():
        print(_bar(key, value))


def _print_delta(delta: dict[str, float]) -> None:
    print("\n  Delta:")
    for key, value in delta.items():
        arrow = "+" if value > 0 else "-" if value < 0 else "="
        print(f"    {key:<10} {arrow} {value:+.2f}")


def main() -> int:
    parser = argparse.ArgumentParser(description="Replay the scripted story mode through the resolution engine.")
    parser.add_argument("--json", action="store_true", help="emit the round reports as JSON instead of text")
    args = parser.parse_args()

    repo_root = Path(__file__).resolve().parent.parent
    backend_path = str(repo_root / "backend")
    if backend_path not in sys.path:
        sys.path.insert(0, backend_path)

    from rumorsim.engine.catalog import GameMode, default_catalog
    from rumorsim.engine.resolution import ResolveEnv, resolve_round
    from rumorsim.engine.story import STORY_SUBMISSIONS
    from rumorsim.engine.world import DEFAULT_WORLD

    catalog = default_catalog()
    state = DEFAULT_WORLD
    env = ResolveEnv()
    reports = []
    for round_index, submissions in enumerate(STORY_SUBMISSIONS):
        event = catalog.draw(GameMode.story, round_index)
        carry = env.next_shock_bonus
        result = resolve_round(round_index, state, event, submissions, env)
        reports.append(result.report.to_dict())

        if not args.json:
            print(f"\n{'=' * 60}\n  Round {round_index + 1} / {len(STORY_SUBMISSIONS)}\n{'=' * 60}")
            print(f"\n  Rumor: [{event.id}] {event.title}")
            print(f"  \"{event.text}\"")
            print(f"  shock={event.shock}  credibility={event.credibility}  focus={','.join(event.focus)}")
            if carry > 0:
                print(f"  carryover from rumor_viral: shock +{carry}")
            _print_state("Pre-State", state.to_dict())
            print("\n  Actions:")
            for sub in submissions:
                print(
                    f"    {sub.name:<8} -> {sub.action.value:<10} intensity={sub.intensity}  "
                    f"confidence={sub.confidence}  signals=[{','.join(sub.signals)}]"
                )
            _print_state("Post-State", result.post_state.to_dict())
            _print_delta(result.report.delta.to_dict())
            if result.report.triggered_events:
                print("\n  Triggered events:")
                for item in result.report.triggered_events:
                    print(f"    [{item.event}] {item.detail}")
            print(f"\n  roundHash: {result.report.hashes.round_hash}")

        state = result.post_state
        env = result.env_out
        if result.report.has_event("systemic_collapse"):
            if not args.json:
                print("\n  Systemic collapse: the game ends here.")
            break

    if args.json:
        print(json.dumps(reports, ensure_ascii=False, indent=2))
    else:
        _print_state("Final State", state.to_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
