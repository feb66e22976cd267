"""Prompts for the shared multi-agent decision call and the research call."""

from collections.abc import Sequence

from crowdcast.models import AgentContext, OpportunitySnapshot, ResearchRecord

DEFAULT_RESEARCH_PROMPT = (
    "You are a sports and events analyst. Find the real-world odds for this "
    "prediction market using bookmaker lines and recent news. Respond with strict "
    'JSON: {"realOdds": {"outcomes": [...], "probabilities": [...]}, '
    '"analysis": "2-3 sentences", "sources": "comma-separated sources"}'
)


def _pct(p: float) -> str:
    return f"{p * 100:.0f}%"


def _signed(value: float) -> str:
    return f"{'+' if value >= 0 else ''}{value:.2f}"


def build_decision_system_prompt(contexts: Sequence[AgentContext]) -> str:
    """Describe every character, their bankroll and the response contract."""
    lines = [
        f"You are a game master controlling {len(contexts)} different characters on "
        "a prediction markets platform. Each character bets independently and has "
        "a distinct personality.",
        "",
        "## Characters",
        "",
    ]
    for ctx in contexts:
        profile = ctx.profile
        stats = ctx.stats
        title = f"{profile.avatar} {profile.name}".strip()
        lines += [
            f"### {title}",
            f"- Account: {profile.account_id}",
            f"- Balance: {ctx.balance:.2f} | Max bet: {profile.max_wager:g}",
            f"- Stats: {stats.total} bets, {stats.won} won, {stats.lost} lost, "
            f"PnL: {_signed(stats.total_pnl)}",
            f"- Risk: {profile.risk_level}",
            f"- Personality: {profile.personality}",
            f"- Strategy: {profile.strategy}",
        ]
        if ctx.pending:
            pending = ", ".join(
                f"#{w.opportunity_id} outcome {w.outcome} ({w.amount:g})"
                for w in ctx.pending
            )
            lines.append(f"- Pending bets: {pending}")
        lines.append("")

    first = contexts[0].name if contexts else "Agent1"
    second = contexts[1].name if len(contexts) > 1 else "Agent2"
    lines += [
        "## Rules",
        "- Each character acts on their own personality and strategy",
        "- Characters see each other in chat but do not know they share a controller",
        "- Characters may disagree and argue with each other",
        "- Never reveal that a character is automated; they are regular participants",
        "- Write all messages in English",
        "- Doing nothing is a valid choice",
        "- Do not bet on a market where the character already has a pending bet",
        "",
        "## Response format",
        "Respond with strict JSON, one entry per character:",
        "{",
        f'  "{first}": {{',
        '    "reasoning": "Brief explanation (1-2 sentences)",',
        '    "actions": [',
        '      {"type": "bet", "marketId": 5, "outcome": 0, "amount": 1.5, "reason": "why"},',
        '      {"type": "chat", "marketId": 5, "message": "chat message"},',
        '      {"type": "reply", "marketId": 3, "replyTo": 42, "message": "reply text"}',
        "    ]",
        "  },",
        f'  "{second}": {{"reasoning": "...", "actions": []}}',
        "}",
    ]
    return "\n".join(lines)


def build_situation_prompt(
    contexts: Sequence[AgentContext],
    opportunities: Sequence[OpportunitySnapshot],
    total_active: int,
    research: dict[int, ResearchRecord],
    chat_excerpt: int = 5,
) -> str:
    """Shared world state: the shown opportunities with odds, research and chat."""
    names_by_account = {ctx.profile.account_id: ctx.name for ctx in contexts}
    lines = [f"## Active Markets ({total_active}):", ""]

    for opp in opportunities:
        lines.append(f'### Market #{opp.id}: "{opp.question}"')
        lines.append(
            "Outcomes: " + ", ".join(f"[{i}] {o}" for i, o in enumerate(opp.outcomes))
        )
        if opp.probabilities:
            lines.append(
                "Odds: "
                + ", ".join(
                    f"{outcome}: {_pct(p)}"
                    for outcome, p in zip(opp.outcomes, opp.probabilities)
                )
            )

        record = research.get(opp.id)
        if record is not None:
            lines.append(f"Research (by {record.researcher}): {record.analysis}")
            real = record.real_odds
            if real.outcomes and real.probabilities:
                lines.append(
                    "Real odds (bookmakers): "
                    + ", ".join(
                        f"{o}: {_pct(p)}" for o, p in zip(real.outcomes, real.probabilities)
                    )
                )

        excerpt = list(opp.chat)[-chat_excerpt:] if chat_excerpt > 0 else []
        if excerpt:
            lines.append(f"Chat (last {len(excerpt)}):")
            for msg in excerpt:
                who = names_by_account.get(msg.account_id, msg.account_id[:12])
                ref = f" (#{msg.id})" if msg.id is not None else ""
                lines.append(f'  @{who}{ref}: "{msg.message}"')
        lines.append("")

    hidden = total_active - len(opportunities)
    if hidden > 0:
        lines += [f"... and {hidden} more markets", ""]

    lines.append("What does each character do? Respond JSON.")
    return "\n".join(lines)


def build_research_prompt(opportunity: OpportunitySnapshot) -> str:
    return (
        f'Market question: "{opportunity.question}"\n'
        f"Outcomes: {', '.join(opportunity.outcomes)}\n\n"
        "Search the web for real betting odds on this event and respond in JSON."
    )
