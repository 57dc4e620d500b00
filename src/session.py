# session.py
# Session coordination: move -> settle sequencing and the game status state machine.

import logging
import random
from typing import Callable, List, Optional

from core import (
    DIRECTION,
    GameStatus,
    Grid,
    IdentityAllocator,
    MoveResult,
    Spawner,
    Tile,
    can_continue,
    is_win,
    merge_and_spawn,
    move_in_direction,
    reset_board,
)

logger = logging.getLogger(__name__)


class MoveBarrier:
    """Countdown of tile animations that must report completion before a move settles."""

    def __init__(self) -> None:
        self.pending = 0

    @property
    def in_flight(self) -> bool:
        return self.pending > 0

    def seed(self, count: int) -> None:
        self.pending = count

    def complete(self) -> bool:
        """Counts one completion. Returns True when this completion released the barrier."""
        if self.pending == 0:
            logger.debug("Ignoring completion signal with nothing in flight")
            return False
        self.pending -= 1
        return self.pending == 0

    def discard(self) -> None:
        self.pending = 0


class ScoreKeeper:
    """
    In-memory host for a game session: score total, best score, status and pause flag.

    Win and loss pause input until the notification is dismissed, the same way a
    modal overlay would.
    """

    def __init__(self, best: int = 0) -> None:
        self.total = 0
        self.best = best
        self.status = GameStatus.RUNNING
        self.paused = False

    def add_score(self, delta: int) -> None:
        self.total += delta
        if self.total > self.best:
            self.best = self.total

    def set_status(self, status: GameStatus) -> None:
        if status != self.status:
            logger.info("Game status %s -> %s", self.status.value, status.value)
        self.status = status
        if status == GameStatus.RESTART:
            self.total = 0
        self.paused = status in (GameStatus.WIN, GameStatus.LOST)

    def get_status(self) -> GameStatus:
        return self.status

    def dismiss_notification(self) -> GameStatus:
        """A dismissed win keeps playing and a dismissed loss restarts. Other statuses have no notification."""
        if self.status == GameStatus.WIN:
            self.set_status(GameStatus.CONTINUE)
        elif self.status == GameStatus.LOST:
            self.set_status(GameStatus.RESTART)
        return self.status


class GameSession:
    """
    Owns the grid of one game and glues the engine together.

    Directional input runs the move engine immediately and seeds the move barrier with
    the number of tiles that moved. Input arriving while a move is in flight or while
    paused is dropped, not queued. Once every moved tile has been reported settled the
    pending merges are finalized, new tiles spawn and the terminal-state check runs.

    Args:
        rows (int): Initial board rows.
        cols (int): Initial board columns.
        add_score (Callable[[int], None]): Sink for score gained in each settle cycle.
        set_status (Callable[[GameStatus], None]): Sink for status transitions.
        get_status (Callable[[], GameStatus]): Current host status, read each cycle.
        rng (random.Random): Optional seeded random source for spawning.
        get_paused (Callable[[], bool]): Optional host pause flag, checked with `set_paused`.
    """

    def __init__(
        self,
        rows: int,
        cols: int,
        add_score: Callable[[int], None],
        set_status: Callable[[GameStatus], None],
        get_status: Callable[[], GameStatus],
        rng: Optional[random.Random] = None,
        get_paused: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._add_score = add_score
        self._set_status = set_status
        self._get_status = get_status
        self._get_paused = get_paused
        self.allocator = IdentityAllocator()
        self.spawner = Spawner(rng)
        self.barrier = MoveBarrier()
        self.paused = False
        self.grid = Grid(rows, cols)
        self.tiles: List[Tile] = []
        self.last_move = MoveResult(tiles=[])
        self.reset(rows, cols)

    @classmethod
    def hosted_by(cls, host: ScoreKeeper, rows: int, cols: int, rng: Optional[random.Random] = None) -> "GameSession":
        return cls(
            rows, cols, host.add_score, host.set_status, host.get_status,
            rng=rng, get_paused=lambda: host.paused,
        )

    @property
    def rows(self) -> int:
        return self.grid.rows

    @property
    def cols(self) -> int:
        return self.grid.cols

    @property
    def is_paused(self) -> bool:
        return self.paused or (self._get_paused is not None and self._get_paused())

    def set_paused(self, paused: bool) -> None:
        self.paused = paused

    def restart(self) -> None:
        """Asks the host to restart, then resets with the current dimensions."""
        self._set_status(GameStatus.RESTART)
        self.evaluate_status()

    def reset(self, rows: int, cols: int) -> None:
        """Full reset with the given dimensions; any move in flight is discarded."""
        self.barrier.discard()
        self.grid, self.tiles = reset_board(rows, cols, self.spawner, self.allocator)
        self.last_move = MoveResult(tiles=self.tiles)
        self._set_status(GameStatus.RUNNING)
        logger.debug("Reset %dx%d board with %d tile(s)", rows, cols, len(self.tiles))

    def apply_move(self, direction: DIRECTION) -> None:
        if self.barrier.in_flight or self.is_paused:
            logger.debug("Dropped %s input (in flight=%s, paused=%s)", direction.name, self.barrier.in_flight, self.is_paused)
            return

        result = move_in_direction(self.grid, direction)
        self.last_move = result
        if not result.changed:
            return

        self.barrier.seed(len(result.moved))
        self.tiles = result.tiles
        self.evaluate_status()

    def notify_move_settled(self) -> None:
        if self.barrier.complete():
            self._settle()

    def _settle(self) -> None:
        result = merge_and_spawn(self.grid, self.spawner, self.allocator)
        self._add_score(result.score)
        self.tiles = result.tiles
        logger.debug("Settled move: +%d score, %d spawned", result.score, len(result.spawned))
        self.evaluate_status()

    def evaluate_status(self) -> None:
        """Runs the restart / win / loss checks against the host's current status."""
        status = self._get_status()
        if status == GameStatus.RESTART:
            self.reset(self.rows, self.cols)
        elif status == GameStatus.RUNNING and is_win(self.tiles):
            self._set_status(GameStatus.WIN)
        elif status != GameStatus.LOST and not can_continue(self.grid, self.tiles):
            self._set_status(GameStatus.LOST)
