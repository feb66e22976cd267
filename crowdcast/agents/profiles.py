"""Load agent profiles from ``data/agents``."""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from crowdcast.models import AgentProfile

logger = logging.getLogger(__name__)

PROFILE_SUFFIXES = (".yaml", ".yml", ".json")


def load_profile(path: Path) -> AgentProfile:
    """Parse one YAML or JSON profile file (JSON is valid YAML)."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Profile {path.name} is not a mapping")
    return AgentProfile.model_validate(data)


def load_profiles(directory: Path) -> list[AgentProfile]:
    """Load every profile in a directory, skipping broken or duplicate ones."""
    if not directory.is_dir():
        logger.warning(f"Agent profile directory not found: {directory}")
        return []

    profiles: list[AgentProfile] = []
    seen: set[str] = set()
    for path in sorted(directory.iterdir()):
        if path.suffix.lower() not in PROFILE_SUFFIXES:
            continue
        try:
            profile = load_profile(path)
        except (OSError, ValueError, yaml.YAMLError, ValidationError) as e:
            logger.error(f"Skipping agent profile {path.name}: {e}")
            continue
        if profile.name in seen:
            logger.error(f"Skipping {path.name}: duplicate agent name {profile.name!r}")
            continue
        seen.add(profile.name)
        profiles.append(profile)

    logger.info(f"Loaded {len(profiles)} agent profiles from {directory}")
    return profiles


def ledger_filename(profile: AgentProfile) -> str:
    slug = "-".join(profile.name.lower().split()) or "agent"
    return f"{slug}.db"
