"""Configuration schema and loader."""

from missionctl.config.loader import load_config
from missionctl.config.schema import MissionCtlConfig

__all__ = ["MissionCtlConfig", "load_config"]
