# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for record store tests."""

from pathlib import Path

import pytest

from fixture_lair.config import Config
from fixture_lair.store import RecordStore


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Default configuration, isolated from any .fixture_lair.yml in the cwd."""
    return Config(config_path=tmp_path / ".fixture_lair.yml", check_consistency=True)


@pytest.fixture
def store(config: Config) -> RecordStore:
    """Fresh store per test."""
    return RecordStore(config)
