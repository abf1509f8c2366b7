import itertools

import pytest

from oarigin.models.room import GamePhase, Player, PlayerStatus
from oarigin.services.turn_machine import TurnMachine


def _roster(*names):
    return [Player(id=f"p{i + 1}", username=name) for i, name in enumerate(names)]


def test_start_points_to_first_alive_player():
    roster = _roster("Alice", "Bob")
    roster[0].status = PlayerStatus.DEAD
    machine = TurnMachine(roster=roster)

    machine.start()

    assert machine.phase == GamePhase.PLAYING
    assert machine.current_player().username == "Bob"


def test_start_with_nobody_alive_ends():
    roster = _roster("Alice")
    roster[0].status = PlayerStatus.DEAD
    machine = TurnMachine(roster=roster)

    machine.start()

    assert machine.phase == GamePhase.ENDED
    assert machine.current_player() is None


def test_advance_skips_dead_players_and_wraps():
    machine = TurnMachine(roster=_roster("Alice", "Bob", "Cara", "Dan"))
    machine.start()
    machine.kill_player("Bob")
    machine.kill_player("Dan")

    assert machine.advance_turn().username == "Cara"
    assert machine.advance_turn().username == "Alice"
    assert machine.advance_turn().username == "Cara"


def test_kill_player_is_case_insensitive_and_records_order():
    machine = TurnMachine(roster=_roster("Alice", "Bob", "Cara"))
    machine.start()

    assert machine.kill_player("  bOB ") is True
    assert machine.kill_player("cara") is True
    assert machine.dead_players == ["Bob", "Cara"]
    assert machine.phase == GamePhase.PLAYING


def test_kill_unknown_or_dead_player_is_a_no_op():
    machine = TurnMachine(roster=_roster("Alice", "Bob"))
    machine.start()
    machine.kill_player("Bob")

    assert machine.kill_player("Bob") is False
    assert machine.kill_player("Zed") is False
    assert machine.dead_players == ["Bob"]


def test_last_death_ends_and_resets_index():
    machine = TurnMachine(roster=_roster("Alice", "Bob"))
    machine.start()
    machine.advance_turn()
    machine.kill_player("Alice")
    assert machine.phase == GamePhase.PLAYING

    machine.kill_player("Bob")

    assert machine.phase == GamePhase.ENDED
    assert machine.index == 0
    assert machine.check_end() is True
    assert machine.advance_turn() is None


def test_newcomer_enters_rotation_through_shared_roster():
    roster = _roster("Alice")
    machine = TurnMachine(roster=roster)
    machine.start()

    roster.append(Player(id="p9", username="Zoe"))

    assert machine.advance_turn().username == "Zoe"
    assert machine.advance_turn().username == "Alice"


def test_player_removed_before_pointer_keeps_current_player():
    roster = _roster("Alice", "Bob", "Cara")
    machine = TurnMachine(roster=roster)
    machine.start()
    machine.advance_turn()
    machine.advance_turn()
    assert machine.current_player().username == "Cara"

    del roster[0]
    machine.on_player_removed(0)

    assert machine.current_player().username == "Cara"


def test_removed_current_player_passes_turn_to_next_alive():
    roster = _roster("Alice", "Bob", "Cara")
    roster[1].status = PlayerStatus.DEAD
    machine = TurnMachine(roster=roster)
    machine.start()

    del roster[0]
    machine.on_player_removed(0)

    assert machine.current_player().username == "Cara"


def test_round_trip_dict():
    machine = TurnMachine(roster=_roster("Alice", "Bob"))
    machine.start()
    machine.kill_player("Alice")

    other = TurnMachine(roster=machine.roster)
    other.load_dict(machine.to_dict())

    assert other.phase == GamePhase.PLAYING
    assert other.dead_players == ["Alice"]
    assert other.index == machine.index


def test_kill_player_by_id_targets_the_right_namesake():
    tm = TurnMachine(roster=_roster("Alex", "Alex"))
    tm.start()

    assert tm.kill_player_by_id("p2") is True

    assert tm.roster[0].status == PlayerStatus.ALIVE
    assert tm.roster[1].status == PlayerStatus.DEAD
    assert tm.kill_player_by_id("p2") is False
    assert tm.kill_player_by_id("ghost") is False


_PATTERNS = [
    (alive, pos)
    for alive in itertools.product([True, False], repeat=4)
    if any(alive)
    for pos in range(4)
    if alive[pos]
]


@pytest.mark.parametrize("alive,pos", _PATTERNS)
def test_advance_lands_on_next_alive_for_every_roster(alive, pos):
    roster = _roster("A", "B", "C", "D")
    for player, is_alive in zip(roster, alive):
        if not is_alive:
            player.status = PlayerStatus.DEAD
    tm = TurnMachine(roster=roster, phase=GamePhase.PLAYING, index=pos)

    tm.advance_turn()

    assert tm.phase == GamePhase.PLAYING
    assert tm.roster[tm.index].alive
    if sum(alive) == 1:
        assert tm.index == pos
    else:
        assert tm.index != pos
        skipped = range(pos + 1, pos + (tm.index - pos) % 4)
        assert all(not roster[i % 4].alive for i in skipped)
