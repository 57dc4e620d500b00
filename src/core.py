# core.py
# Board state-transition engine for a sliding-tile (2048-style) game on an N x M grid.

import logging
import random
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

WIN_TILE = 2048
SPAWN_AREA_THRESHOLD = 24  # boards at least this large spawn two tiles per cycle
FOUR_PROBABILITY = 0.01


class GameStatus(str, Enum):
    """Represents the session status as seen by the host."""
    RUNNING = "running"
    WIN = "win"
    LOST = "lost"
    CONTINUE = "continue"
    RESTART = "restart"


class DIRECTION(Enum):
    """Represents the possible move directions as (row, col) unit vectors."""
    UP = (-1, 0)
    DOWN = (1, 0)
    LEFT = (0, -1)
    RIGHT = (0, 1)

    @property
    def dr(self) -> int:
        return self.value[0]

    @property
    def dc(self) -> int:
        return self.value[1]


def clamp(value: int, low: int, high: int) -> int:
    return max(min(high, value), low)


# --- Identity Allocation ---

class IdentityAllocator:
    """
    Issues tile identities for a single game session.

    Indices start at 0 and strictly increase until `reset()`. Render ids combine
    the index with a generation token that changes on every reset, so ids never
    repeat even across resets of the same session.
    """

    def __init__(self) -> None:
        self._next_index = 0
        self.generation = uuid.uuid4().hex[:8]

    def next(self) -> int:
        index = self._next_index
        self._next_index += 1
        return index

    def render_id(self, index: int) -> str:
        return f"{index}_{self.generation}"

    def reset(self) -> None:
        self._next_index = 0
        self.generation = uuid.uuid4().hex[:8]

    @property
    def issued(self) -> int:
        """Number of indices handed out since the last reset."""
        return self._next_index


# --- Grid Model ---

@dataclass
class Tile:
    index: int
    id: str
    r: int
    c: int
    value: int = 2
    is_new: bool = True
    is_merging: bool = False
    can_merge: bool = False

    @property
    def location(self) -> Tuple[int, int]:
        return self.r, self.c


class Grid:
    """A fixed rows x cols matrix of cells, each empty (None) or holding one Tile."""

    def __init__(self, rows: int, cols: int) -> None:
        self.rows = rows
        self.cols = cols
        self._cells: List[List[Optional[Tile]]] = [[None] * cols for _ in range(rows)]

    @property
    def area(self) -> int:
        return self.rows * self.cols

    def __getitem__(self, location: Tuple[int, int]) -> Optional[Tile]:
        r, c = location
        return self._cells[r][c]

    def place(self, tile: Tile) -> None:
        self._cells[tile.r][tile.c] = tile

    def remove(self, r: int, c: int) -> Optional[Tile]:
        tile = self._cells[r][c]
        self._cells[r][c] = None
        return tile

    def relocate(self, tile: Tile, r: int, c: int) -> None:
        """Moves a tile to (r, c), clearing its old cell. Identity is unchanged."""
        if self._cells[tile.r][tile.c] is tile:
            self._cells[tile.r][tile.c] = None
        tile.r, tile.c = r, c
        self._cells[r][c] = tile

    def empty_cells(self) -> List[Tuple[int, int]]:
        """Row-major list of (row, col) tuples for empty cells."""
        return [
            (r, c)
            for r in range(self.rows)
            for c in range(self.cols)
            if self._cells[r][c] is None
        ]

    def __iter__(self) -> Iterator[Tile]:
        for row in self._cells:
            for tile in row:
                if tile is not None:
                    yield tile

    def tiles(self) -> List[Tile]:
        return sort_tiles(list(self))

    def values(self) -> List[List[int]]:
        """Plain value matrix, 0 for empty cells."""
        return [[tile.value if tile else 0 for tile in row] for row in self._cells]

    @classmethod
    def from_values(cls, values: List[List[int]], allocator: IdentityAllocator) -> "Grid":
        """
        Builds a grid from a value matrix (0 = empty), allocating tiles in row-major order.
        Args:
            values (List[List[int]]): Rectangular matrix of tile values.
            allocator (IdentityAllocator): Source of tile identities.
        Returns:
            Grid: A grid whose tiles are not flagged as new.
        """
        grid = cls(len(values), len(values[0]))
        for r, row in enumerate(values):
            for c, value in enumerate(row):
                if value:
                    grid.place(_new_tile(allocator, r, c, value, is_new=False))
        return grid


def sort_tiles(tiles: List[Tile]) -> List[Tile]:
    return sorted(tiles, key=lambda tile: tile.index)


def _new_tile(allocator: IdentityAllocator, r: int, c: int, value: int, is_new: bool = True) -> Tile:
    index = allocator.next()
    return Tile(index=index, id=allocator.render_id(index), r=r, c=c, value=value, is_new=is_new)


# --- Spawning ---

def spawn_count(rows: int, cols: int, on_reset: bool = False) -> int:
    """
    Number of tiles to spawn for a board of the given size.
    Args:
        rows (int): Board rows.
        cols (int): Board columns.
        on_reset (bool): True for a full board reset, False for a settle cycle.
    Returns:
        int: 4/2 on reset and 2/1 per settle cycle, for large/small boards.
    """
    large = rows * cols >= SPAWN_AREA_THRESHOLD
    if on_reset:
        return 4 if large else 2
    return 2 if large else 1


class Spawner:
    """Places new tiles on random empty cells using an injected random source."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng if rng is not None else random.Random()

    def tile_value(self) -> int:
        return 4 if self.rng.random() > 1 - FOUR_PROBABILITY else 2

    def spawn(self, grid: Grid, count: int, allocator: IdentityAllocator) -> List[Tile]:
        """
        Creates up to `count` new tiles on distinct empty cells and places them on the grid.
        Args:
            grid (Grid): The grid to populate.
            count (int): Requested number of tiles.
            allocator (IdentityAllocator): Source of tile identities.
        Returns:
            List[Tile]: The spawned tiles, empty if the grid has no free cell.
        """
        empty_cells = grid.empty_cells()
        amount = min(count, len(empty_cells))
        if not amount:
            return []

        self.rng.shuffle(empty_cells)
        new_tiles = []
        for r, c in empty_cells[:amount]:
            tile = _new_tile(allocator, r, c, self.tile_value())
            grid.place(tile)
            new_tiles.append(tile)
        logger.debug("Spawned %d tile(s): %s", len(new_tiles), [(t.r, t.c, t.value) for t in new_tiles])
        return new_tiles


def reset_board(rows: int, cols: int, spawner: Spawner, allocator: IdentityAllocator) -> Tuple[Grid, List[Tile]]:
    """
    Starts a fresh board: restarts identities, builds an empty grid and spawns the reset tiles.
    Args:
        rows (int): Board rows (must be positive; not validated).
        cols (int): Board columns (must be positive; not validated).
        spawner (Spawner): Tile spawner.
        allocator (IdentityAllocator): The session's identity allocator.
    Returns:
        Tuple[Grid, List[Tile]]: The new grid and its tiles sorted by index.
    """
    allocator.reset()
    grid = Grid(rows, cols)
    new_tiles = spawner.spawn(grid, spawn_count(rows, cols, on_reset=True), allocator)
    return grid, sort_tiles(new_tiles)


# --- Moving ---

@dataclass
class MoveResult:
    tiles: List[Tile]
    moved: List[int] = field(default_factory=list)
    absorbed: List[Tile] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.moved)


def traversal_order(rows: int, cols: int, direction: DIRECTION) -> List[Tuple[int, int]]:
    """
    Order in which cells are resolved for a move: the edge the tiles move toward comes first,
    so a tile is never placed before the tiles in front of it.
    """
    row_order = range(rows - 1, -1, -1) if direction.dr > 0 else range(rows)
    col_order = range(cols - 1, -1, -1) if direction.dc > 0 else range(cols)
    return [(r, c) for r in row_order for c in col_order]


def _find_destination(grid: Grid, tile: Tile, direction: DIRECTION) -> Tuple[int, int, Optional[Tile]]:
    """Walks `tile` toward `direction`. Returns the final cell and the merge target, if any."""
    curr_r, curr_c = tile.r, tile.c
    while True:
        next_r = clamp(curr_r + direction.dr, 0, grid.rows - 1)
        next_c = clamp(curr_c + direction.dc, 0, grid.cols - 1)
        if (next_r, next_c) == (curr_r, curr_c):
            return curr_r, curr_c, None

        blocker = grid[next_r, next_c]
        if blocker is not None:
            if blocker.value == tile.value and not blocker.can_merge:
                return next_r, next_c, blocker
            return curr_r, curr_c, None
        curr_r, curr_c = next_r, next_c


def move_in_direction(grid: Grid, direction: DIRECTION) -> MoveResult:
    """
    Slides every tile on the grid toward `direction`, in place.

    A tile landing on an equal-valued tile that has not merged yet this move is absorbed:
    it leaves the grid and the stationary tile is flagged `can_merge` until the next
    finalize doubles it. A flagged tile refuses further merges, so each tile merges at
    most once per move. Renderers keyed on the moving tile must animate it from
    `absorbed`, since only the target remains on the grid.

    A move that changes nothing leaves the grid untouched, animation flags included.

    Args:
        grid (Grid): The grid to mutate.
        direction (DIRECTION): The move direction.
    Returns:
        MoveResult: The remaining tiles (sorted by index), the indices of tiles that moved
                    in placement order, and the tiles absorbed into a merge.
    """
    result = MoveResult(tiles=[])

    for r, c in traversal_order(grid.rows, grid.cols, direction):
        tile = grid[r, c]
        if tile is None:
            continue

        dest_r, dest_c, target = _find_destination(grid, tile, direction)
        if (dest_r, dest_c) == (r, c):
            continue

        if target is not None:
            grid.remove(r, c)
            tile.r, tile.c = dest_r, dest_c
            target.can_merge = True
            result.absorbed.append(tile)
        else:
            grid.relocate(tile, dest_r, dest_c)
        result.moved.append(tile.index)

    if result.changed:
        for tile in list(grid) + result.absorbed:
            tile.is_new = False
            tile.is_merging = False
    result.tiles = grid.tiles()
    return result


# --- Settling ---

@dataclass
class SettleResult:
    tiles: List[Tile]
    score: int = 0
    spawned: List[Tile] = field(default_factory=list)


def merge_and_spawn(grid: Grid, spawner: Spawner, allocator: IdentityAllocator) -> SettleResult:
    """
    Resolves pending merges and spawns the settle-cycle tiles.
    Args:
        grid (Grid): The grid to mutate.
        spawner (Spawner): Tile spawner.
        allocator (IdentityAllocator): The session's identity allocator.
    Returns:
        SettleResult: All tiles sorted by index, the score gained from merges
                      (sum of doubled values), and the newly spawned tiles.
    """
    score = 0
    for tile in grid:
        if tile.can_merge:
            tile.value *= 2
            tile.is_merging = True
            tile.can_merge = False
            score += tile.value
        else:
            tile.is_merging = False
        tile.is_new = False

    spawned = spawner.spawn(grid, spawn_count(grid.rows, grid.cols), allocator)
    return SettleResult(tiles=grid.tiles(), score=score, spawned=spawned)


# --- Game State Checks ---

def is_win(tiles: List[Tile], win_tile: int = WIN_TILE) -> bool:
    """True if any tile has reached `win_tile`."""
    return any(tile.value == win_tile for tile in tiles)


def can_continue(grid: Grid, tiles: List[Tile]) -> bool:
    """
    Check whether any move remains possible.
    Args:
        grid (Grid): The game grid.
        tiles (List[Tile]): The tiles currently on the grid.
    Returns:
        bool: True if a cell is empty or some tile has an equal-valued axis neighbour.
    """
    if len(tiles) < grid.area:
        return True

    for tile in tiles:
        for direction in DIRECTION:
            next_r = clamp(tile.r + direction.dr, 0, grid.rows - 1)
            next_c = clamp(tile.c + direction.dc, 0, grid.cols - 1)
            if (next_r, next_c) == (tile.r, tile.c):
                continue  # off-board neighbour
            neighbour = grid[next_r, next_c]
            if neighbour is None or neighbour.value == tile.value:
                return True
    return False
