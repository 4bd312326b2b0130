"""Shared test helpers for the missionctl test suite."""

from __future__ import annotations

from tests.helpers.fakes import FakeClock, FakeGateway, make_agent, make_engine, make_mission, make_task, seed

__all__ = ["FakeClock", "FakeGateway", "make_agent", "make_engine", "make_mission", "make_task", "seed"]
