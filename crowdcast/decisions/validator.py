"""Turns an untrusted oracle action list into safe, in-budget actions."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Iterable
from typing import Any

from crowdcast.exceptions import BudgetViolation
from crowdcast.models import (
    MAX_MESSAGE_LENGTH,
    ActionProposal,
    BetAction,
    ChatAction,
    OpportunitySnapshot,
    ReplyAction,
)

logger = logging.getLogger(__name__)

_OPPORTUNITY_KEYS = ("opportunity_id", "opportunityId", "marketId", "market_id")
_REPLY_KEYS = ("reply_to", "replyTo")
# Float sums of exact-fit bets overshoot the balance by rounding noise
_BUDGET_EPSILON = 1e-9


def _lookup(raw: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _coerce_number(value: Any) -> float | None:
    """Accept numbers and numeric strings; None for anything non-finite."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _coerce_index(value: Any) -> int | None:
    number = _coerce_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def _reply_reference(value: Any) -> int | str | None:
    if value is None:
        return None
    index = _coerce_index(value)
    return index if index is not None else str(value)


def validate_actions(
    raw_actions: Any,
    opportunities: Iterable[OpportunitySnapshot],
    balance: float,
    max_wager: float,
    agent_name: str = "",
) -> list[ActionProposal]:
    """Filter, coerce and budget one agent's proposed actions.

    Actions are checked in order and a failing action is dropped on its own.
    Bet amounts are clamped to ``max_wager``; a bet that would take the running
    total over ``balance`` is dropped and later, smaller bets may still fit.
    Chat and reply messages are truncated to 500 characters.
    """
    if not isinstance(raw_actions, list):
        if raw_actions:
            logger.warning(f"[{agent_name}] Actions payload is not a list; ignoring")
        return []

    active_ids = {opp.id for opp in opportunities}
    accepted: list[ActionProposal] = []
    committed = 0.0

    def drop(reason: str, raw: Any) -> None:
        logger.debug(str(BudgetViolation(agent_name, reason, raw)))

    for raw in raw_actions:
        if not isinstance(raw, dict):
            drop("action is not an object", raw)
            continue

        action_type = raw.get("type")
        if action_type not in ("bet", "chat", "reply"):
            drop(f"unknown action type {action_type!r}", raw)
            continue

        opportunity_id = _coerce_index(_lookup(raw, _OPPORTUNITY_KEYS))
        if opportunity_id is None or opportunity_id not in active_ids:
            drop("opportunity is not active", raw)
            continue

        if action_type == "bet":
            outcome = _coerce_index(raw.get("outcome"))
            if outcome is None or outcome < 0:
                drop("outcome must be a non-negative index", raw)
                continue
            amount = _coerce_number(raw.get("amount"))
            if amount is None or amount <= 0:
                drop("amount must be a positive number", raw)
                continue
            amount = min(amount, max_wager)
            if committed + amount > balance + _BUDGET_EPSILON:
                drop(
                    f"{amount:.2f} on top of {committed:.2f} exceeds balance {balance:.2f}",
                    raw,
                )
                continue
            committed += amount
            accepted.append(
                BetAction(
                    opportunity_id=opportunity_id,
                    outcome=outcome,
                    amount=amount,
                    reason=str(raw.get("reason") or ""),
                )
            )
            continue

        message = raw.get("message")
        if not isinstance(message, str) or not message.strip():
            drop("message must be non-empty text", raw)
            continue
        message = message[:MAX_MESSAGE_LENGTH]

        if action_type == "chat":
            accepted.append(ChatAction(opportunity_id=opportunity_id, message=message))
        else:
            accepted.append(
                ReplyAction(
                    opportunity_id=opportunity_id,
                    message=message,
                    reply_to=_reply_reference(_lookup(raw, _REPLY_KEYS)),
                )
            )

    if raw_actions and not accepted:
        logger.warning(
            f"[{agent_name}] Oracle proposed {len(raw_actions)} actions but all were "
            f"rejected. Raw: {json.dumps(raw_actions, default=str)[:300]}"
        )

    return accepted
