"""Pytest configuration and shared fixtures."""

from datetime import date

import pytest

from tickler.modules.occurrences.projector import Lookahead


# Wednesday
TODAY = date(2024, 3, 13)


@pytest.fixture
def today() -> date:
    """Fixed reference date so window projections are deterministic."""
    return TODAY


@pytest.fixture
def lookahead() -> Lookahead:
    """Default projection windows, independent of the environment."""
    return Lookahead(weeks=8, months=2, years=2, horizon_days=14)
