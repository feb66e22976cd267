"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from crowdcast.llm_providers import DEFAULT_DECISION_MODEL, DEFAULT_RESEARCH_MODEL

logger = logging.getLogger(__name__)


class MarketConfig(BaseModel):
    """Market REST API connection parameters."""

    base_url: str = "http://localhost:4001/api"
    timeout_seconds: float = 15.0
    max_retries: int = 3
    chat_limit: int = 10
    units_per_token: float = 1e24  # raw on-chain amounts -> whole tokens


class WalletConfig(BaseModel):
    """Wager placement parameters."""

    paper_mode: bool = True
    paper_balance: float = 10.0
    gateway_url: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 3


class OracleConfig(BaseModel):
    """Reasoning oracle endpoint and sampling parameters."""

    base_url: str = "https://api.venice.ai/api/v1"
    decision_model: str = DEFAULT_DECISION_MODEL.value
    decision_temperature: float = 0.85
    decision_max_tokens: int = 3000
    research_model: str = DEFAULT_RESEARCH_MODEL.value
    research_temperature: float = 0.3
    research_max_tokens: int = 1500
    timeout_seconds: float = 120.0


class OrchestratorConfig(BaseModel):
    """Cycle bounds and pacing."""

    max_opportunities: int = 8  # caps prompt size
    chat_excerpt: int = 5
    research_ttl_minutes: int = 30
    research_delay_seconds: float = 2.0
    agent_delay_max_seconds: float = 30.0
    action_delay_min_seconds: float = 1.0
    action_delay_max_seconds: float = 4.0
    cycle_min_minutes: float = 10.0
    cycle_max_minutes: float = 20.0
    low_balance_threshold: float = 3.0
    reconcile_on_startup: bool = True

    @model_validator(mode="after")
    def check_bounds(self) -> "OrchestratorConfig":
        if self.cycle_min_minutes > self.cycle_max_minutes:
            raise ValueError("cycle_min_minutes must not exceed cycle_max_minutes")
        if self.action_delay_min_seconds > self.action_delay_max_seconds:
            raise ValueError(
                "action_delay_min_seconds must not exceed action_delay_max_seconds"
            )
        return self


class DashboardConfig(BaseModel):
    """Dashboard push endpoint. Empty base_url means log-only."""

    base_url: str = ""
    timeout_seconds: float = 5.0


class ApiConfig(BaseModel):
    """Status API server."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 10000


class Settings(BaseSettings):
    """Main configuration class."""

    # Paths
    data_dir: Path = Path("data")

    # Secrets
    oracle_api_key: str = ""
    wallet_gateway_token: str = ""
    dashboard_secret: str = ""
    logfire_token: str = ""

    # Nested configuration sections
    market: MarketConfig = Field(default_factory=MarketConfig)
    wallet: WalletConfig = Field(default_factory=WalletConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def agents_dir(self) -> Path:
        return self.data_dir / "agents"

    @property
    def ledger_dir(self) -> Path:
        return self.data_dir / "ledgers"

    @property
    def research_db_path(self) -> Path:
        return self.data_dir / "research.db"

    def load_yaml_config(self) -> None:
        """Load and merge YAML configuration."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.warning(
                f"Config file not found: {config_path}. "
                "Using defaults. Run 'python -m crowdcast init' to create it."
            )
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in [
                "market",
                "wallet",
                "oracle",
                "orchestrator",
                "dashboard",
                "api",
            ]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)
                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name] or {})
                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
