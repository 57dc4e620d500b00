import logging
import os
import random
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import core
from session import GameSession, ScoreKeeper

logger = logging.getLogger(__name__)

DEFAULT_ROWS = int(os.getenv("GAME_ROWS", "4"))
DEFAULT_COLS = int(os.getenv("GAME_COLS", "4"))
RATE_LIMIT = os.getenv("RATE_LIMIT", "100/minute")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "1") != "0"
MIN_SCALE = 2
MAX_SCALE = 16

# Initialize the rate limiter
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)
app = FastAPI(
    title="2048 Game API",
    description="A stateful API for playing the 2048 game. The server owns the board; "\
                "clients send moves and report when each moved tile's animation has finished.",
    version="2.0.0"
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# --- Session registry ---

@dataclass
class GameRecord:
    game_id: str
    host: ScoreKeeper
    session: GameSession


class GameRegistry:
    """Container for active games. Handlers run on the event loop, one at a time."""

    def __init__(self) -> None:
        self._games: Dict[str, GameRecord] = {}

    def create(self, rows: int, cols: int, seed: Optional[int] = None) -> GameRecord:
        host = ScoreKeeper()
        rng = random.Random(seed) if seed is not None else None
        record = GameRecord(
            game_id=uuid4().hex,
            host=host,
            session=GameSession.hosted_by(host, rows, cols, rng=rng),
        )
        self._games[record.game_id] = record
        logger.info("Created game %s (%dx%d)", record.game_id, rows, cols)
        return record

    def get(self, game_id: str) -> GameRecord:
        try:
            return self._games[game_id]
        except KeyError as exc:
            raise KeyError(f"Unknown game id: {game_id}") from exc

    def remove(self, game_id: str) -> None:
        record = self._games.pop(game_id, None)
        if record is None:
            raise KeyError(f"Unknown game id: {game_id}")
        logger.info("Removed game %s", game_id)


registry = GameRegistry()


# --- Pydantic Models for API requests and responses ---

class NewGameSettings(BaseModel):
    """Settings for creating a new game."""
    rows: int = Field(
        default=DEFAULT_ROWS,
        ge=MIN_SCALE,
        le=MAX_SCALE,
        description="Number of rows on the board."
    )
    cols: int = Field(
        default=DEFAULT_COLS,
        ge=MIN_SCALE,
        le=MAX_SCALE,
        description="Number of columns on the board."
    )
    seed: Optional[int] = Field(
        default=None,
        description="Optional seed for reproducible tile spawns."
    )


class ResizeRequest(BaseModel):
    """New board dimensions; resizing restarts the game."""
    rows: int = Field(..., ge=MIN_SCALE, le=MAX_SCALE)
    cols: int = Field(..., ge=MIN_SCALE, le=MAX_SCALE)


class TileData(BaseModel):
    """A tile as the renderer sees it."""
    id: str = Field(..., description="Render key, stable for the tile's lifetime.")
    index: int = Field(..., ge=0, description="Allocation order within the current board.")
    r: int = Field(..., ge=0)
    c: int = Field(..., ge=0)
    value: int = Field(..., ge=2)
    is_new: bool
    is_merging: bool
    can_merge: bool


class GameStateData(BaseModel):
    """Represents the complete state of a game instance."""
    game_id: str
    rows: int = Field(..., gt=0)
    cols: int = Field(..., gt=0)
    tiles: List[TileData] = Field(..., description="Tiles on the board, sorted by allocation order.")
    board: List[List[int]] = Field(..., description="Plain value matrix, 0 for empty cells.")
    score: int = Field(..., ge=0, description="Current score of the game.")
    best: int = Field(..., ge=0, description="Best score reached by this game.")
    status: core.GameStatus = Field(..., description="running, win, lost, continue or restart.")
    paused: bool
    pending: int = Field(..., ge=0, description="Moved tiles still waiting for a settle signal.")


class MoveRequestData(BaseModel):
    """Data required to make a move."""
    direction: Literal["UP", "DOWN", "LEFT", "RIGHT"] = Field(
        ...,
        description="Direction of the move (UP, DOWN, LEFT, RIGHT)."
    )


class MoveResponseData(GameStateData):
    """Response after a move, including which tiles are now animating."""
    moved: List[int] = Field(default_factory=list, description="Indices of moved tiles in placement order.")
    absorbed: List[TileData] = Field(
        default_factory=list,
        description="Tiles that slid into a merge and left the board."
    )
    move_was_effective: bool
    message: Optional[str] = None


class SettleRequest(BaseModel):
    """Number of moved tiles whose animation has finished."""
    count: int = Field(default=1, ge=1)


class PauseRequest(BaseModel):
    paused: bool


# --- Helpers ---

def _tile_data(tile: core.Tile) -> TileData:
    return TileData(
        id=tile.id,
        index=tile.index,
        r=tile.r,
        c=tile.c,
        value=tile.value,
        is_new=tile.is_new,
        is_merging=tile.is_merging,
        can_merge=tile.can_merge,
    )


def _state_fields(record: GameRecord) -> dict:
    session = record.session
    return dict(
        game_id=record.game_id,
        rows=session.rows,
        cols=session.cols,
        tiles=[_tile_data(tile) for tile in session.tiles],
        board=session.grid.values(),
        score=record.host.total,
        best=record.host.best,
        status=record.host.status,
        paused=session.is_paused,
        pending=session.barrier.pending,
    )


def _get_record(game_id: str) -> GameRecord:
    try:
        return registry.get(game_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Game not found")


# --- API Endpoints ---

@app.post("/game/new", response_model=GameStateData, summary="Start a New 2048 Game")
@limiter.limit(RATE_LIMIT)
async def start_new_game(request: Request, settings: NewGameSettings):
    """
    Creates a new server-side game.

    - **rows** / **cols**: Board dimensions (2 to 16). Default is 4x4.
    - **seed**: Optional seed for reproducible spawns.

    Boards of 24 cells or more start with four tiles, smaller boards with two.
    """
    try:
        record = registry.create(settings.rows, settings.cols, settings.seed)
        return GameStateData(**_state_fields(record))
    except Exception as e:
        logger.error("Unexpected error in /game/new: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred during game creation: {str(e)}")


@app.get("/game/{game_id}", response_model=GameStateData, summary="Get the Game State")
@limiter.limit(RATE_LIMIT)
async def get_game(request: Request, game_id: str):
    record = _get_record(game_id)
    return GameStateData(**_state_fields(record))


@app.post("/game/{game_id}/move", response_model=MoveResponseData, summary="Make a Move in the Game")
@limiter.limit(RATE_LIMIT)
async def make_move(request: Request, game_id: str, request_data: MoveRequestData):
    """
    Slides the tiles toward `direction`.

    When tiles move, the response lists their indices in `moved`; the client must
    then call `/settle` once per moved tile (or with `count`) before merges resolve,
    new tiles spawn and the next move is accepted. Moves sent while tiles are still
    in flight, or while the game is paused, are dropped.
    """
    record = _get_record(game_id)
    session = record.session
    message: Optional[str] = None
    try:
        if session.barrier.in_flight:
            message = "Move dropped; previous move has not settled."
        elif session.is_paused:
            message = "Move dropped; game is paused."
        else:
            session.apply_move(core.DIRECTION[request_data.direction])
            if not session.last_move.changed:
                message = "Move was not effective; board state unchanged by slide."
    except Exception as e:
        logger.error("Unexpected error in /game/%s/move: %s", game_id, e, exc_info=True)
        raise HTTPException(status_code=500, detail=f"An unexpected server error occurred while processing the move: {str(e)}")

    effective = message is None
    return MoveResponseData(
        **_state_fields(record),
        moved=list(session.last_move.moved) if effective else [],
        absorbed=[_tile_data(tile) for tile in session.last_move.absorbed] if effective else [],
        move_was_effective=effective,
        message=message,
    )


@app.post("/game/{game_id}/settle", response_model=GameStateData, summary="Report Finished Tile Animations")
@limiter.limit(RATE_LIMIT)
async def settle_move(request: Request, game_id: str, settle: SettleRequest):
    """
    Reports `count` finished tile animations. When the last one arrives, merges
    resolve, the score is updated, new tiles spawn and win/loss are checked.
    Signals beyond the number of tiles in flight are ignored.
    """
    record = _get_record(game_id)
    for _ in range(min(settle.count, record.session.barrier.pending)):
        record.session.notify_move_settled()
    return GameStateData(**_state_fields(record))


@app.post("/game/{game_id}/pause", response_model=GameStateData, summary="Pause or Resume Input")
@limiter.limit(RATE_LIMIT)
async def pause_game(request: Request, game_id: str, pause: PauseRequest):
    record = _get_record(game_id)
    record.session.set_paused(pause.paused)
    return GameStateData(**_state_fields(record))


@app.post("/game/{game_id}/dismiss", response_model=GameStateData, summary="Dismiss the Win/Loss Notification")
@limiter.limit(RATE_LIMIT)
async def dismiss_notification(request: Request, game_id: str):
    """
    A dismissed win continues the game; a dismissed loss restarts it.
    With no win or loss showing the game is left as it is.
    """
    record = _get_record(game_id)
    showing = record.host.status
    if record.host.dismiss_notification() != showing:
        record.session.evaluate_status()
    return GameStateData(**_state_fields(record))


@app.post("/game/{game_id}/restart", response_model=GameStateData, summary="Restart the Game")
@limiter.limit(RATE_LIMIT)
async def restart_game(request: Request, game_id: str):
    record = _get_record(game_id)
    record.session.restart()
    return GameStateData(**_state_fields(record))


@app.post("/game/{game_id}/resize", response_model=GameStateData, summary="Restart with New Dimensions")
@limiter.limit(RATE_LIMIT)
async def resize_game(request: Request, game_id: str, size: ResizeRequest):
    record = _get_record(game_id)
    record.host.set_status(core.GameStatus.RESTART)
    record.session.reset(size.rows, size.cols)
    return GameStateData(**_state_fields(record))


@app.delete("/game/{game_id}", status_code=204, summary="End a Game")
@limiter.limit(RATE_LIMIT)
async def delete_game(request: Request, game_id: str):
    try:
        registry.remove(game_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Game not found")
    return Response(status_code=204)
