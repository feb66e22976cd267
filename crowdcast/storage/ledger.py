"""Per-agent wager ledger backed by SQLite.

Storage errors are wrapped in LedgerError and always propagate: history
correctness is load-bearing for balances, stats and reconciliation.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from crowdcast.exceptions import LedgerError, ReconciliationConflict
from crowdcast.models import (
    TERMINAL_STATES,
    AgentStats,
    WagerRecord,
    WagerState,
    utc_now,
)
from crowdcast.services.market.models import RESOLVED, VOIDED, AuthoritativeWager, Opportunity
from crowdcast.storage.database import (
    LedgerBase,
    as_utc,
    create_sqlite_engine,
    make_session_factory,
    session_scope,
)

logger = logging.getLogger(__name__)

RECONCILED_REASONING = "reconciled from authority"


class WagerRow(LedgerBase):
    __tablename__ = "wagers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[int] = mapped_column(Integer, index=True)
    outcome: Mapped[int] = mapped_column(Integer)
    amount: Mapped[float] = mapped_column(Float)
    odds_at_placement: Mapped[float | None] = mapped_column(Float, nullable=True)
    reasoning: Mapped[str] = mapped_column(Text, default="")
    state: Mapped[str] = mapped_column(String(8), default="pending", index=True)
    pnl: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_wagers_amount_positive"),
        CheckConstraint(
            "state IN ('pending', 'won', 'lost', 'voided')", name="ck_wagers_state"
        ),
    )

    def to_record(self) -> WagerRecord:
        return WagerRecord(
            id=self.id,
            opportunity_id=self.opportunity_id,
            outcome=self.outcome,
            amount=self.amount,
            odds_at_placement=self.odds_at_placement,
            reasoning=self.reasoning or "",
            state=self.state,
            pnl=self.pnl or 0.0,
            created_at=as_utc(self.created_at),
            resolved_at=as_utc(self.resolved_at),
        )


class ChatRow(LedgerBase):
    __tablename__ = "chat_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[int] = mapped_column(Integer, index=True)
    message: Mapped[str] = mapped_column(Text)
    reply_to: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def settle_wager(
    opportunity: Opportunity, outcome: int, amount: float
) -> tuple[WagerState, float]:
    """Terminal state and realized PnL of a wager against an opportunity.

    Winners split the whole pool pro rata with the winning outcome's pool:
    ``amount * total_pool / winning_pool - amount`` (0 if that pool is empty).
    """
    if opportunity.status == VOIDED:
        return "voided", 0.0
    if opportunity.status != RESOLVED or opportunity.resolved_outcome is None:
        return "pending", 0.0
    if opportunity.resolved_outcome != outcome:
        return "lost", -amount
    winning_pool = opportunity.pool_for(outcome)
    if winning_pool <= 0:
        return "won", 0.0
    return "won", amount * opportunity.total_pool / winning_pool - amount


class Ledger:
    """Durable wager history for a single agent. Single writer."""

    def __init__(
        self,
        path: Path | str,
        agent_name: str = "",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.agent_name = agent_name
        self._clock = clock
        self._engine = create_sqlite_engine(path)
        self._sessions = make_session_factory(self._engine)
        try:
            LedgerBase.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to open ledger at {path}: {e}") from e

    def close(self) -> None:
        self._engine.dispose()

    def record_wager(
        self,
        opportunity_id: int,
        outcome: int,
        amount: float,
        odds: float | None = None,
        reasoning: str = "",
    ) -> WagerRecord:
        row = WagerRow(
            opportunity_id=opportunity_id,
            outcome=outcome,
            amount=amount,
            odds_at_placement=odds,
            reasoning=reasoning,
            state="pending",
            pnl=0.0,
            created_at=self._clock(),
        )
        try:
            with session_scope(self._sessions) as db:
                db.add(row)
                db.flush()
                return row.to_record()
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to record wager: {e}") from e

    def resolve_wager(
        self, opportunity_id: int, result: WagerState, pnl: float
    ) -> WagerRecord | None:
        """Move the oldest pending wager on an opportunity to a terminal state.

        Oldest means earliest created_at, then lowest id. Returns None when
        nothing is pending there; terminal rows are never touched.
        """
        if result not in TERMINAL_STATES:
            raise ValueError(f"Not a terminal wager state: {result}")

        try:
            with session_scope(self._sessions) as db:
                rows = db.scalars(
                    select(WagerRow)
                    .where(
                        WagerRow.opportunity_id == opportunity_id,
                        WagerRow.state == "pending",
                    )
                    .order_by(WagerRow.created_at, WagerRow.id)
                ).all()
                if not rows:
                    logger.debug(
                        f"[{self.agent_name}] No pending wager on #{opportunity_id}"
                    )
                    return None
                if len(rows) > 1:
                    conflict = ReconciliationConflict(
                        opportunity_id, [r.id for r in rows]
                    )
                    logger.warning(
                        f"[{self.agent_name}] {conflict}; resolving oldest "
                        f"(id={rows[0].id}) only"
                    )
                target = rows[0]
                target.state = result
                target.pnl = pnl
                target.resolved_at = self._clock()
                db.flush()
                return target.to_record()
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to resolve wager: {e}") from e

    def pending_wagers(self) -> list[WagerRecord]:
        return self._select_wagers(
            select(WagerRow)
            .where(WagerRow.state == "pending")
            .order_by(WagerRow.created_at, WagerRow.id)
        )

    def recent_wagers(self, limit: int = 20) -> list[WagerRecord]:
        return self._select_wagers(
            select(WagerRow)
            .order_by(WagerRow.created_at.desc(), WagerRow.id.desc())
            .limit(limit)
        )

    def wagers_for_opportunity(self, opportunity_id: int) -> list[WagerRecord]:
        return self._select_wagers(
            select(WagerRow)
            .where(WagerRow.opportunity_id == opportunity_id)
            .order_by(WagerRow.created_at, WagerRow.id)
        )

    def stats(self) -> AgentStats:
        """Recompute aggregate statistics from every stored wager."""
        wagers = self._select_wagers(select(WagerRow))
        counts = {state: 0 for state in ("pending", "won", "lost", "voided")}
        for wager in wagers:
            counts[wager.state] += 1
        decided = counts["won"] + counts["lost"]
        return AgentStats(
            total=len(wagers),
            pending=counts["pending"],
            won=counts["won"],
            lost=counts["lost"],
            voided=counts["voided"],
            total_wagered=sum(w.amount for w in wagers),
            total_pnl=sum(w.pnl for w in wagers),
            win_rate=counts["won"] / decided if decided else 0.0,
        )

    def reconcile_from_authority(
        self,
        authoritative_wagers: Iterable[AuthoritativeWager],
        opportunities: Iterable[Opportunity],
    ) -> int:
        """Backfill an empty ledger from the authority's wager history.

        Runs only against an empty ledger, in a single transaction; returns the
        number of rows imported (0 when the ledger already had history).
        """
        by_id = {opp.id: opp for opp in opportunities}
        now = self._clock()

        try:
            with session_scope(self._sessions) as db:
                existing = db.scalar(select(func.count()).select_from(WagerRow))
                if existing:
                    logger.info(
                        f"[{self.agent_name}] Ledger holds {existing} wagers; "
                        "skipping reconciliation"
                    )
                    return 0

                imported = 0
                skipped = 0
                for wager in authoritative_wagers:
                    opportunity = by_id.get(wager.opportunity_id)
                    if opportunity is None:
                        skipped += 1
                        continue
                    if (
                        wager.timestamp is not None
                        and opportunity.created_at is not None
                        and wager.timestamp < opportunity.created_at
                    ):
                        # Left over from an earlier incarnation of this opportunity
                        skipped += 1
                        continue
                    if wager.amount <= 0:
                        skipped += 1
                        continue

                    state, pnl = settle_wager(opportunity, wager.outcome, wager.amount)
                    db.add(
                        WagerRow(
                            opportunity_id=wager.opportunity_id,
                            outcome=wager.outcome,
                            amount=wager.amount,
                            odds_at_placement=None,
                            reasoning=RECONCILED_REASONING,
                            state=state,
                            pnl=pnl,
                            created_at=wager.timestamp or now,
                            resolved_at=now if state in TERMINAL_STATES else None,
                        )
                    )
                    imported += 1

                logger.info(
                    f"[{self.agent_name}] Reconciled {imported} wagers from authority "
                    f"({skipped} skipped)"
                )
                return imported
        except SQLAlchemyError as e:
            raise LedgerError(f"Reconciliation failed, nothing imported: {e}") from e

    def record_chat(
        self, opportunity_id: int, message: str, reply_to: int | str | None = None
    ) -> None:
        row = ChatRow(
            opportunity_id=opportunity_id,
            message=message,
            reply_to=str(reply_to) if reply_to is not None else None,
            created_at=self._clock(),
        )
        try:
            with session_scope(self._sessions) as db:
                db.add(row)
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to record chat: {e}") from e

    def chat_count(self) -> int:
        try:
            with session_scope(self._sessions) as db:
                return int(db.scalar(select(func.count()).select_from(ChatRow)))
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to read ledger: {e}") from e

    def _select_wagers(self, statement) -> list[WagerRecord]:
        try:
            with session_scope(self._sessions) as db:
                return [row.to_record() for row in db.scalars(statement).all()]
        except SQLAlchemyError as e:
            raise LedgerError(f"Failed to read ledger: {e}") from e
