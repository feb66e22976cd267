"""FastAPI status server over live orchestrator state."""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from crowdcast import __version__
from crowdcast.models import utc_now
from crowdcast.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def create_app(orchestrator: Orchestrator) -> FastAPI:
    app = FastAPI(title="Crowdcast Status API", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "agents": len(orchestrator.participants)}

    @app.get("/api/debug")
    def debug() -> dict[str, Any]:
        report = orchestrator.last_report
        return {
            "cycleCount": orchestrator.cycle_count,
            "agents": [p.name for p in orchestrator.participants],
            "researcher": orchestrator.researcher.name if orchestrator.researcher else None,
            "uptimeSeconds": (utc_now() - orchestrator.started_at).total_seconds(),
            "stopping": orchestrator.stopping,
            "lastCycle": report.model_dump(mode="json") if report else None,
        }

    @app.get("/api/balances")
    def balances() -> dict[str, Any]:
        return {
            name: snapshot.model_dump(mode="json")
            for name, snapshot in orchestrator.balances.items()
        }

    @app.get("/api/sync-status")
    def sync_status() -> dict[str, Any]:
        return orchestrator.ledger_summary()

    @app.get("/api/agents/{name}/wagers")
    def agent_wagers(name: str, limit: int = 20) -> list[dict[str, Any]]:
        for participant in orchestrator.participants:
            if participant.name == name:
                return [
                    w.model_dump(mode="json")
                    for w in participant.ledger.recent_wagers(limit)
                ]
        raise HTTPException(status_code=404, detail=f"Unknown agent: {name}")

    return app
