from conftest import FixedRandom, load_board

import cli_driver
from core import DIRECTION
from session import GameSession, ScoreKeeper


def test_play_move_settles_every_moved_tile() -> None:
    host = ScoreKeeper()
    session = GameSession.hosted_by(host, 4, 4, rng=FixedRandom())
    load_board(session, [[2, 2, 2, 2], [0] * 4, [0] * 4, [0] * 4])

    assert cli_driver.play_move(session, DIRECTION.LEFT)
    assert not session.barrier.in_flight
    assert session.grid.values()[0][:2] == [4, 4]
    assert host.total == 8

    load_board(session, [[2, 4, 0, 0], [0] * 4, [0] * 4, [0] * 4])
    assert not cli_driver.play_move(session, DIRECTION.UP)


def test_render_board_marks_empty_cells() -> None:
    host = ScoreKeeper()
    session = GameSession.hosted_by(host, 2, 3, rng=FixedRandom())
    load_board(session, [[2, 0, 4], [0, 0, 8]])
    assert cli_driver.render_board(session.tiles, 2, 3) == "2\t.\t4\n.\t.\t8"


def test_main_quits_on_q(monkeypatch, capsys) -> None:
    inputs = iter(["x", "A", "Q"])
    monkeypatch.setattr("builtins.input", lambda prompt: next(inputs))
    assert cli_driver.main() == 0
    output = capsys.readouterr().out
    assert "Invalid input" in output
    assert "Quitting game." in output
