"""Shared, append-only cache of research records keyed by opportunity."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import DateTime, Integer, String, Text, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from crowdcast.exceptions import TransientIOError
from crowdcast.models import RealOdds, ResearchFindings, ResearchRecord, utc_now
from crowdcast.storage.database import (
    ResearchBase,
    as_utc,
    create_sqlite_engine,
    make_session_factory,
    session_scope,
)

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30


class ResearchRow(ResearchBase):
    __tablename__ = "research"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[int] = mapped_column(Integer, index=True)
    question: Mapped[str] = mapped_column(Text, default="")
    real_odds: Mapped[str] = mapped_column(Text, default="{}")
    analysis: Mapped[str] = mapped_column(Text, default="")
    sources: Mapped[str] = mapped_column(Text, default="")
    researcher: Mapped[str] = mapped_column(String(64), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)

    def to_record(self) -> ResearchRecord:
        return ResearchRecord(
            id=self.id,
            opportunity_id=self.opportunity_id,
            question=self.question or "",
            real_odds=RealOdds.model_validate(json.loads(self.real_odds or "{}")),
            analysis=self.analysis or "",
            sources=self.sources or "",
            researcher=self.researcher or "",
            created_at=as_utc(self.created_at),
        )


class ResearchCache:
    """Staleness-gated research store shared by every agent.

    Freshness is a read-before-write check, not a lock: concurrent writers may
    both append a fresh record, and readers simply take the newest.
    """

    def __init__(
        self,
        path: Path | str,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._clock = clock
        self._engine = create_sqlite_engine(path)
        self._sessions = make_session_factory(self._engine)
        ResearchBase.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def is_fresh(
        self, opportunity_id: int, ttl_minutes: float = DEFAULT_TTL_MINUTES
    ) -> bool:
        """True iff a record younger than the TTL exists.

        Fails open: a storage error reads as "not fresh" so a refresh is tried.
        """
        cutoff = self._clock() - timedelta(minutes=ttl_minutes)
        try:
            with session_scope(self._sessions) as db:
                latest = db.scalar(
                    select(func.max(ResearchRow.created_at)).where(
                        ResearchRow.opportunity_id == opportunity_id
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(f"Research freshness check failed for #{opportunity_id}: {e}")
            return False
        if latest is None:
            return False
        return as_utc(latest) > cutoff

    def record_research(
        self, opportunity_id: int, findings: ResearchFindings
    ) -> ResearchRecord:
        row = ResearchRow(
            opportunity_id=opportunity_id,
            question=findings.question,
            real_odds=findings.real_odds.model_dump_json(),
            analysis=findings.analysis,
            sources=findings.sources,
            researcher=findings.researcher,
            created_at=self._clock(),
        )
        try:
            with session_scope(self._sessions) as db:
                db.add(row)
                db.flush()
                return row.to_record()
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to store research for #{opportunity_id}: {e}") from e

    def current_by_opportunity(self) -> dict[int, ResearchRecord]:
        """Latest record per opportunity; ties go to the later insert."""
        try:
            with session_scope(self._sessions) as db:
                rows = db.scalars(
                    select(ResearchRow).order_by(ResearchRow.created_at, ResearchRow.id)
                ).all()
                current: dict[int, ResearchRecord] = {}
                for row in rows:
                    current[row.opportunity_id] = row.to_record()
                return current
        except SQLAlchemyError as e:
            raise TransientIOError(f"Failed to load research: {e}") from e
