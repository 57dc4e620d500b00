# cli_driver.py
# This file is intended to be run to play or test the 2048 game on the CLI

import logging
import os
import sys
from typing import List

from core import DIRECTION, GameStatus, Tile
from session import GameSession, ScoreKeeper

logger = logging.getLogger(__name__)

BOARD_ROWS = int(os.getenv("GAME_ROWS", "4"))
BOARD_COLS = int(os.getenv("GAME_COLS", "4"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "WARNING")

DIRECTION_KEYS = {'W': DIRECTION.UP, 'A': DIRECTION.LEFT, 'S': DIRECTION.DOWN, 'D': DIRECTION.RIGHT}


def play_move(session: GameSession, direction: DIRECTION) -> bool:
    """
    Applies a move and immediately reports every moved tile as settled,
    since the terminal has no animations to wait for.
    Returns:
        bool: True if any tile moved.
    """
    session.apply_move(direction)
    moved = len(session.last_move.moved) if session.barrier.in_flight else 0
    for _ in range(moved):
        session.notify_move_settled()
    return moved > 0


def main():
    logging.basicConfig(level=LOG_LEVEL)

    # 1. Initialize game
    host = ScoreKeeper()
    session = GameSession.hosted_by(host, BOARD_ROWS, BOARD_COLS)
    display_board_state(session, host)

    # 2. Game Loop
    while True:
        prompt = "Enter move (W/A/S/D for Up/Left/Down/Right, R to restart, Q to quit): "
        if host.status == GameStatus.WIN:
            prompt = "You reached 2048! C to keep playing, R to restart, Q to quit: "
        elif host.status == GameStatus.LOST:
            prompt = "No more moves possible. R to restart, Q to quit: "

        try:
            move_input = input(prompt).strip().upper()
        except EOFError:
            move_input = 'Q'

        if move_input == 'Q':
            print("Quitting game.")
            break
        if move_input == 'R':
            session.restart()
        elif move_input == 'C' and host.status == GameStatus.WIN:
            host.dismiss_notification()
        elif move_input in DIRECTION_KEYS:
            if host.paused:
                print("Game is over; restart to play again." if host.status == GameStatus.LOST else "Press C to continue.")
                continue
            if not play_move(session, DIRECTION_KEYS[move_input]):
                print("Move did not change the board. Try a different direction.")
                continue
        else:
            print("Invalid input. Use W, A, S, D.")
            continue

        display_board_state(session, host)

    # 3. Game Ended
    print("\n--- Final Board State ---")
    display_board_state(session, host)
    return 0


# --- Display Function ---
def render_board(tiles: List[Tile], rows: int, cols: int) -> str:
    cells = [["."] * cols for _ in range(rows)]
    for tile in tiles:
        cells[tile.r][tile.c] = str(tile.value)
    return "\n".join("\t".join(row) for row in cells)


def display_board_state(session: GameSession, host: ScoreKeeper):
    """Prints the board, score, and game status to the console."""
    print(f"\nScore: {host.total}\tBest: {host.best}")
    status_message = {
        GameStatus.WIN: "YOU WON!",
        GameStatus.LOST: "GAME OVER!",
    }
    print(status_message.get(host.status, f"Status: {host.status.value}"))
    print(render_board(session.tiles, session.rows, session.cols))
    print("-" * (session.cols * 8))


if __name__ == "__main__":
    sys.exit(main())
