"""Logfire initialization and best-effort side-effect helpers."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

import logfire

from crowdcast import __version__
from crowdcast.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> None:
    """
    Initialize Logfire tracing and instrumentation.

    Call once at startup, before the orchestrator is built. Instruments
    pydantic-ai (oracle calls), httpx (market, wallet, dashboard clients) and
    bridges stdlib logging. Without a token, logs a warning and returns.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="crowdcast",
            service_version=__version__,
            environment="paper" if settings.wallet.paper_mode else "live",
        )
        logfire.instrument_pydantic_ai()
        logfire.instrument_httpx()

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire tracing initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


@contextmanager
def best_effort(operation: str) -> Iterator[None]:
    """Run a side effect whose failure must never reach the caller.

    Usage:
        with best_effort("publish stats"):
            await publisher.publish_stats(...)
    """
    try:
        yield
    except Exception as e:
        logger.warning(f"{operation} failed: {e}")
