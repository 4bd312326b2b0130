"""missionctl - mission orchestration engine for autonomous agents."""

__version__ = "0.1.0"
