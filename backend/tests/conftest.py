"""Shared test fixtures."""

import pytest

from tests.helpers import random_walk_bars


@pytest.fixture
def walk_bars():
    return random_walk_bars(300)
