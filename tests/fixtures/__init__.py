"""
Test fixtures for deterministic testing.

This module provides:
- FakeConnector: scripted connector with call recording
- FakeClock: movable clock
- seed_templates / seed_delivery: a three-step milestone chain
"""

from .fakes import FIXED_NOW, FakeClock, FakeConnector, envelope, seed_delivery, seed_templates

__all__ = ["FIXED_NOW", "FakeClock", "FakeConnector", "envelope", "seed_delivery", "seed_templates"]
