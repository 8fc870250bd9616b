"""Preset submissions for the six scripted story rounds (offline demo/replay).

Five players per round with stable personalities: Alpha trends toward
EXIT, Bravo defends the system, Charlie follows the crowd, Delta amplifies,
Echo hunts for arbitrage or waits.
"""

from .actions import ActionKind, Submission

_A = ActionKind

_ROUNDS: tuple[tuple[tuple[str, ActionKind, int, tuple[str, ...], float, str], ...], ...] = (
    # Round 0: R-04 AI Swarm Attack (shock=8, cred=0.50)
    (
        ("Alpha", _A.AMPLIFY, 2, ("rumor_spread", "ai_generated"), 0.7,
         "Bot-written posts are flooding in. Rumor=15 is low but climbing fast and Trust=78 only looks solid; "
         "once the information space is polluted, trust falls all at once. Amplify and watch the reaction."),
        ("Bravo", _A.WAIT, 1, ("uncertainty",), 0.5,
         "The system is healthy: Panic=25 is low and Price=88 is stable. A credibility 0.50 attack does not "
         "justify overreacting. Hold and reassess with next round's numbers."),
        ("Charlie", _A.WAIT, 1, ("low_threat",), 0.45,
         "Panic=25, Trust=78, Liquidity=85, everything is normal. One AI rumor will not shake fundamentals "
         "and Loss=2 is close to zero. There is no reason to act yet."),
        ("Delta", _A.AMPLIFY, 1, ("info_warfare",), 0.55,
         "The seeds of information war are planted. Rumor=15 is the starting point, but bulk generation means "
         "it spreads faster than expected. Trust=78 is high now, but pollution works with a lag."),
        ("Echo", _A.STABILIZE, 1, ("counter_narrative",), 0.6,
         "Bot attacks can be identified and countered. Trust=78 is our advantage; publishing clarifications "
         "keeps Rumor=15 pinned low and Panic=25 fully under control."),
    ),
    # Round 1: R-02 Whale Dump (shock=10, cred=0.45)
    (
        ("Alpha", _A.EXIT, 2, ("whale_dump", "rumor_rising"), 0.7,
         "A whale dump on top of last round's bot attack, and Rumor=24 keeps rising. Panic=30 is not high yet "
         "but the trend is bad and Price=88 is under pressure. Exiting is still cheap."),
        ("Bravo", _A.STABILIZE, 2, ("counter_narrative", "trust_repair"), 0.6,
         "The whale story has credibility 0.45 and can be challenged. Trust=75 is still healthy but needs "
         "active defence, and Liquidity=85 means fundamentals are fine."),
        ("Charlie", _A.WAIT, 1, ("uncertainty",), 0.4,
         "Two rumors in and the system still works. Price=88 dipped a little and Loss=2 remains low. The "
         "evidence for the dump is thin, so no panic. Keep watching the numbers."),
        ("Delta", _A.EXIT, 1, ("panic_trend",), 0.55,
         "Panic=30 is on an upward channel and two negative rounds have dented confidence. Rumor=24 keeps "
         "spreading; another high-shock card and it may be too late to leave."),
        ("Echo", _A.ARBITRAGE, 2, ("price_dip",), 0.5,
         "The dip opens an arbitrage window. Liquidity=85 is ample and Load=30 is manageable. Fear-driven "
         "mispricing is the opportunity, but watch the liquidity line."),
    ),
    # Round 2: R-01 Bank Run Risk (shock=12, cred=0.55)
    (
        ("Alpha", _A.EXIT, 3, ("bank_run", "panic_rising"), 0.85,
         "A bank run is a systemic threat. Panic=40 is clearly up and Trust=68 keeps sliding. Shock 12 at "
         "credibility 0.55 accelerates the decline. Full retreat now."),
        ("Bravo", _A.STABILIZE, 3, ("emergency_response",), 0.55,
         "Emergency stabilisation. The Trust=68 slide has to stop and Panic=40 needs a strong hedge. "
         "Liquidity=70 is the lifeline and a run must not drain it. This is the key round."),
        ("Charlie", _A.EXIT, 2, ("liquidity_concern",), 0.7,
         "Three shocks in a row: Liquidity=70 is falling and Panic=40 keeps climbing. With the earlier "
         "rumors as groundwork this card is more credible than it looks. Safer to leave."),
        ("Delta", _A.AMPLIFY, 2, ("panic_spread",), 0.65,
         "Fear has spread from a few to the many. Rumor=35 accumulates while Trust=68 drops; the conditions "
         "for a self-fulfilling loop are forming. Amplifying just makes the reaction faster."),
        ("Echo", _A.ARBITRAGE, 1, ("price_dip",), 0.4,
         "Price=80 is falling harder but the system has not broken. A small probing position; if Liquidity=70 "
         "drops below 50 I leave immediately. More risk, more reward."),
    ),
    # Round 3: R-03 Outflow Screenshots (shock=11, cred=0.60)
    (
        ("Alpha", _A.EXIT, 3, ("capital_flight", "evidence"), 0.9,
         "The screenshots carry the highest credibility so far. Panic=60 is high, Trust=50 has fallen hard "
         "and Liquidity=50 is bleeding. Four rounds of shocks put the system near the edge."),
        ("Bravo", _A.STABILIZE, 2, ("last_stand",), 0.4,
         "Trust=50 is low but I will not give up. Every bit of stabilisation delays collapse. The images may "
         "be fake, yet Panic=60 says the market does not care whether they are true."),
        ("Charlie", _A.AMPLIFY, 3, ("panic_spread", "evidence"), 0.8,
         "The outflow screenshots make every earlier rumor believable. Panic=60 and Rumor=50 are both high "
         "while Trust=50 is weak. The loop has either started or is about to."),
        ("Delta", _A.EXIT, 2, ("bank_run",), 0.75,
         "The run is turning from rumor into reality. Liquidity=50 is dropping fast, Price=65 is crashing, "
         "and Loss=5 pushes more panic. This is how a rumor fulfils itself."),
        ("Echo", _A.WAIT, 1, ("frozen",), 0.3,
         "Chaos. Panic=60 is extreme but the screenshots may be forged, and Price=65 may be overshooting. "
         "Stay calm in the noise and wait for the truth to come out."),
    ),
    # Round 4: R-05 Regulatory Pressure (shock=13, cred=0.50)
    (
        ("Alpha", _A.EXIT, 3, ("regulatory", "systemic_risk"), 0.85,
         "Regulation is the ultimate risk and shock 13 is the largest yet. Trust=35 is low, Panic=75 is high "
         "and Liquidity=35 is drying up. This news could be the final straw."),
        ("Bravo", _A.STABILIZE, 1, ("token_effort",), 0.25,
         "A token effort. Trust=35 shows the system is badly damaged, but giving up means conceding. Every "
         "bit of resistance with Panic=75 records that someone tried to stop it."),
        ("Charlie", _A.EXIT, 3, ("regulatory", "panic_high"), 0.8,
         "Regulation, a run, outflows and a bot attack stacked together. Panic=75 and Liquidity=35 say the "
         "system is riddled with holes; the news only confirms the worst case."),
        ("Delta", _A.AMPLIFY, 2, ("regulatory", "panic_spread"), 0.7,
         "If the probe is real the whole system gets rebuilt. Rumor=65 is now consensus and Panic=75 has "
         "become action. Amplifying speeds up the clearing and shortens the pain."),
        ("Echo", _A.ARBITRAGE, 2, ("extreme_dip",), 0.35,
         "Extreme fear is extreme opportunity. Price=45 is very low, and if the regulator never acts the "
         "rebound will be huge. A last high-risk, high-reward bet with Loss=12."),
    ),
    # Round 5: R-08 Network Congestion (shock=11, cred=0.65)
    (
        ("Alpha", _A.EXIT, 3, ("network_congestion", "final_exit"), 0.9,
         "Congestion is the last straw. Everyone is trying to leave and Load=85 shows the system cannot bear "
         "it. Panic=90 and Trust=20: the rumor said it would collapse, so everyone made it collapse."),
        ("Bravo", _A.STABILIZE, 1, ("symbolic",), 0.2,
         "One last symbolic stand. With Trust=20 and Panic=90 the system has failed, but the record should "
         "show someone tried. Not to win, but to prove not everyone chose panic."),
        ("Charlie", _A.AMPLIFY, 3, ("network_congestion", "final_push"), 0.85,
         "Congestion has the highest credibility because it is really happening: everyone runs, so the "
         "network jams. Load=85 and Rumor=80 show the prophecy fulfilled by collective behaviour."),
        ("Delta", _A.EXIT, 2, ("final_exit",), 0.75,
         "The final retreat of the final round. Six rumors all said the same thing. Panic=90 and Price=30: "
         "in the end it was not the rumors that killed the system, it was us."),
        ("Echo", _A.WAIT, 1, ("acceptance",), 0.25,
         "It is settled. From a healthy system to Panic=90 and Trust=20 in six rounds. What broke it was "
         "not the risk itself but the reaction to the risk. Waiting is the only honest move."),
    ),
)

STORY_SUBMISSIONS: tuple[tuple[Submission, ...], ...] = tuple(
    tuple(
        Submission(
            name=name,
            action=action,
            intensity=intensity,
            signals=signals,
            confidence=confidence,
            narrative=narrative,
        )
        for name, action, intensity, signals, confidence, narrative in round_rows
    )
    for round_rows in _ROUNDS
)
