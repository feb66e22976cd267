from .participant import Participant
from .profiles import load_profile, load_profiles
from .researcher import Researcher

__all__ = ["Participant", "Researcher", "load_profile", "load_profiles"]
