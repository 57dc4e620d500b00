import random

import pytest

from core import Grid
from session import GameSession, ScoreKeeper


class FixedRandom(random.Random):
    """Random source whose `random()` always returns the same draw."""

    def __init__(self, draw: float = 0.5, seed: int = 0) -> None:
        super().__init__(seed)
        self.draw = draw

    def random(self) -> float:
        return self.draw


def load_board(session: GameSession, values):
    session.grid = Grid.from_values(values, session.allocator)
    session.tiles = session.grid.tiles()
    return session


@pytest.fixture
def host():
    return ScoreKeeper()


@pytest.fixture
def make_session(host):
    def _make(rows=4, cols=4, values=None, rng=None):
        session = GameSession.hosted_by(host, rows, cols, rng=rng or FixedRandom())
        if values is not None:
            load_board(session, values)
        return session
    return _make
