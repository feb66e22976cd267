"""Crowdcast CLI entry point."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

import uvicorn

from crowdcast import __version__
from crowdcast.agents.profiles import load_profiles
from crowdcast.api.server import create_app
from crowdcast.config import Settings, get_settings
from crowdcast.models import AgentProfile
from crowdcast.orchestrator import Orchestrator, open_orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Crowdcast Configuration
# Operational parameters only. Secrets (oracle key, gateway token,
# dashboard secret, logfire token) belong in .env.

market:
  base_url: http://localhost:4001/api
  chat_limit: 10

wallet:
  paper_mode: true
  paper_balance: 10.0
  gateway_url: ""

oracle:
  base_url: https://api.venice.ai/api/v1
  decision_model: llama-3.3-70b
  decision_temperature: 0.85
  decision_max_tokens: 3000
  research_model: llama-3.3-70b

orchestrator:
  max_opportunities: 8
  research_ttl_minutes: 30
  research_delay_seconds: 2
  agent_delay_max_seconds: 30
  action_delay_min_seconds: 1
  action_delay_max_seconds: 4
  cycle_min_minutes: 10
  cycle_max_minutes: 20
  low_balance_threshold: 3.0
  reconcile_on_startup: true

dashboard:
  base_url: ""

api:
  enabled: false
  host: 0.0.0.0
  port: 10000
"""

SAMPLE_PROFILE = """# One file per agent. Field names from older JSON profiles
# (maxBetNear, cycleMinutes, webSearch, researchPrompt, ...) are accepted too.
name: Shark
avatar: "🦈"
account_id: shark.testnet
personality: Cold, numbers-first bettor who trusts bookmaker lines over hype.
strategy: Bet only where research shows a clear gap between market odds and real odds.
model: llama-3.3-70b
temperature: 0.7
max_wager: 2.0
risk_level: medium
cycle_minutes: [10, 20]
performs_research: true
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from crowdcast.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _load_agent_profiles(settings: Settings) -> list[AgentProfile]:
    profiles = load_profiles(settings.agents_dir)
    if not profiles:
        raise RuntimeError(
            f"No agent profiles in {settings.agents_dir}. "
            "Run 'python -m crowdcast init' to create a sample."
        )
    return profiles


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory, configuration and a sample agent."""
    data_dir = Path("data").resolve()

    try:
        for subdir in ("agents", "ledgers"):
            (data_dir / subdir).mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        agents_dir = data_dir / "agents"
        if not any(agents_dir.iterdir()):
            sample_path = agents_dir / "shark.yaml"
            sample_path.write_text(SAMPLE_PROFILE, encoding="utf-8")
            logger.info(f"Created sample agent profile: {sample_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Copy .env.example to .env and add your oracle API key")
        print("2. Add agent profiles under data/agents/")
        print("3. Run 'python -m crowdcast config' to verify configuration")
        print("4. Run 'python -m crowdcast run' to start the agents\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
        orch = settings.orchestrator

        print("\n=== Crowdcast Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Market:")
        print(f"  API: {settings.market.base_url}")
        print(f"  Chat Limit: {settings.market.chat_limit}\n")

        print("Wallet:")
        print(f"  Paper Mode: {settings.wallet.paper_mode}")
        print(f"  Gateway: {settings.wallet.gateway_url or '(none)'}\n")

        print("Oracle:")
        print(f"  Endpoint: {settings.oracle.base_url}")
        print(f"  Decision Model: {settings.oracle.decision_model}")
        print(f"  Research Model: {settings.oracle.research_model}\n")

        print("Orchestrator:")
        print(f"  Opportunities per Prompt: {orch.max_opportunities}")
        print(f"  Research TTL: {orch.research_ttl_minutes} min")
        print(f"  Cycle Sleep: {orch.cycle_min_minutes:g}-{orch.cycle_max_minutes:g} min")
        print(f"  Low Balance Threshold: {orch.low_balance_threshold:g}\n")

        profiles = load_profiles(settings.agents_dir)
        print(f"Agents ({len(profiles)}):")
        for profile in profiles:
            research = " [research]" if profile.performs_research else ""
            print(
                f"  {profile.avatar} {profile.name} ({profile.account_id}) "
                f"max {profile.max_wager:g}{research}"
            )
        print()

        print("Secrets:")
        print(f"  Oracle: {'✓ Set' if settings.oracle_api_key else '✗ Not set'}")
        print(f"  Wallet Gateway: {'✓ Set' if settings.wallet_gateway_token else '✗ Not set'}")
        print(f"  Dashboard: {'✓ Set' if settings.dashboard_secret else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Configuration error: {e}\n")
        return 1


def _install_stop_handlers(orchestrator: Orchestrator) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, orchestrator.stop)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} not supported here")


async def _run(
    settings: Settings,
    profiles: list[AgentProfile],
    once: bool,
    serve: bool,
    max_cycles: int | None,
) -> None:
    async with open_orchestrator(settings, profiles) as orchestrator:
        if once:
            if settings.orchestrator.reconcile_on_startup:
                await orchestrator.reconcile_all()
            report = await orchestrator.run_cycle()
            print(
                f"\nCycle #{report.cycle}: {report.status}, "
                f"{report.opportunities} opportunities, "
                f"{report.actions_executed} actions executed\n"
            )
            return

        _install_stop_handlers(orchestrator)
        server: uvicorn.Server | None = None
        server_task: asyncio.Task | None = None
        if serve:
            server = uvicorn.Server(
                uvicorn.Config(
                    create_app(orchestrator),
                    host=settings.api.host,
                    port=settings.api.port,
                    log_level="warning",
                )
            )
            server_task = asyncio.create_task(server.serve())
            logger.info(f"Status API on http://{settings.api.host}:{settings.api.port}")

        try:
            await orchestrator.run_forever(max_cycles=max_cycles)
        finally:
            if server is not None and server_task is not None:
                server.should_exit = True
                await server_task


def cmd_run(args: argparse.Namespace) -> int:
    """Start the agent loop."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        profiles = _load_agent_profiles(settings)

        print("\n=== Crowdcast Agents ===\n")
        print(f"Version: {__version__}")
        print(f"Mode: {'PAPER' if settings.wallet.paper_mode else 'LIVE'}")
        print(f"Agents: {', '.join(p.name for p in profiles)}")
        print(f"Data Directory: {settings.data_dir}\n")

        asyncio.run(
            _run(
                settings,
                profiles,
                once=args.once,
                serve=args.serve or settings.api.enabled,
                max_cycles=args.cycles,
            )
        )
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


async def _reconcile(settings: Settings, profiles: list[AgentProfile]) -> dict[str, int]:
    async with open_orchestrator(settings, profiles) as orchestrator:
        return await orchestrator.reconcile_all()


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Backfill empty agent ledgers from the authoritative wager history."""
    try:
        _init_logfire()
        settings = get_settings()
        profiles = _load_agent_profiles(settings)
        results = asyncio.run(_reconcile(settings, profiles))

        print("\n=== Reconciliation ===\n")
        for profile in profiles:
            imported = results.get(profile.name)
            status = "failed" if imported is None else f"{imported} wagers imported"
            print(f"  {profile.name}: {status}")
        print()
        return 0

    except Exception as e:
        logger.error(f"Reconciliation failed: {e}", exc_info=True)
        print(f"\n❌ Reconciliation failed: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Crowdcast: autonomous AI participants on prediction markets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Crowdcast {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory, configuration and a sample agent",
    )
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration and loaded agents",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_run = subparsers.add_parser(
        "run",
        help="Start the agent loop",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle then exit",
    )
    parser_run.add_argument(
        "--serve",
        action="store_true",
        help="Also serve the status API",
    )
    parser_run.add_argument(
        "--cycles",
        type=int,
        default=None,
        help="Stop after this many cycles",
    )
    parser_run.set_defaults(func=cmd_run)

    parser_reconcile = subparsers.add_parser(
        "reconcile",
        help="Rebuild empty ledgers from the authoritative wager history",
    )
    parser_reconcile.set_defaults(func=cmd_reconcile)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
