########## Test Fixtures ##########
# Keeps sqlite and run logs inside pytest's tmp_path for every test.

from __future__ import annotations

import random
from typing import Iterator

import pytest

from aitown.core import config, db


@pytest.fixture(autouse=True)
def isolated_storage(tmp_path, monkeypatch) -> Iterator[None]:
    """Point the database and text log at a throwaway directory."""

    # 1 Swap paths before any engine is created, then drop the cache after.   # steps
    monkeypatch.setattr(config, "DB_FILE", str(tmp_path / "town_state.sqlite"))
    monkeypatch.setattr(config, "LOG_TEXT_DIR", str(tmp_path / "logs"))
    db.reset_engine()
    yield
    db.reset_engine()


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same value."""

    def __init__(self, value: float, seed: int = 7) -> None:
        super().__init__(seed)
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def always_yes() -> FixedRandom:
    return FixedRandom(0.0)


@pytest.fixture
def always_no() -> FixedRandom:
    return FixedRandom(0.99)
