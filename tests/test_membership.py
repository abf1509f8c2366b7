from oarigin.models.room import Player, PlayerStatus
from oarigin.services.membership import MembershipSynchronizer


def test_reconcile_detects_newly_joined_in_snapshot_order():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.clear_new_players()

    result = sync.reconcile(
        [
            {"id": "p1", "username": "Alice"},
            {"id": "p3", "username": "Cara"},
            {"player_id": "p2", "display_name": "Bob"},
        ]
    )

    assert [p.username for p in result.newly_joined] == ["Cara", "Bob"]
    assert [p.id for p in sync.roster] == ["p1", "p3", "p2"]
    assert [p.username for p in sync.new_players()] == ["Cara", "Bob"]


def test_reconnecting_dead_player_stays_dead():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.roster[0].status = PlayerStatus.DEAD

    result = sync.reconcile([{"id": "p1", "username": "Alice"}])

    assert result.newly_joined == []
    assert sync.get("p1").status == PlayerStatus.DEAD


def test_absent_players_are_kept():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.add("p2", "Bob")

    sync.reconcile([{"id": "p2", "username": "Bob"}])
    sync.reconcile([])

    assert [p.id for p in sync.roster] == ["p1", "p2"]


def test_duplicate_snapshot_is_a_no_op():
    sync = MembershipSynchronizer()
    snapshot = [{"id": "p1", "username": "Alice"}, {"id": "p1", "username": "Alice"}]

    first = sync.reconcile(snapshot)
    second = sync.reconcile(snapshot)

    assert len(first.newly_joined) == 1
    assert second.newly_joined == []
    assert len(sync.roster) == 1
    assert sync.pending_intro == ["p1"]


def test_roster_list_is_mutated_in_place():
    shared = []
    sync = MembershipSynchronizer(roster=shared)

    sync.reconcile([Player(id="p1", username="Alice")])
    sync.load_dict({"roster": [{"id": "p2", "username": "Bob"}]})

    assert sync.roster is shared
    assert [p.id for p in shared] == ["p2"]


def test_clear_new_players_by_id_keeps_later_arrivals():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.add("p2", "Bob")

    sync.clear_new_players(["p1"])

    assert sync.pending_intro == ["p2"]


def test_leave_returns_index_and_unqueues():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.add("p2", "Bob")

    assert sync.leave("p2") == 1
    assert sync.leave("p2") is None
    assert sync.pending_intro == ["p1"]


def test_departed_dead_player_rejoins_dead_and_unqueued():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.add("p2", "Bob")
    sync.clear_new_players()
    sync.get("p1").status = PlayerStatus.DEAD

    sync.leave("p1")
    result = sync.reconcile([{"id": "p1", "username": "Alice"}])

    assert [p.id for p in result.newly_joined] == ["p1"]
    assert sync.get("p1").status == PlayerStatus.DEAD
    assert sync.pending_intro == []
    assert sync.departed == {}


def test_departed_record_survives_round_trip():
    sync = MembershipSynchronizer()
    sync.add("p1", "Alice")
    sync.get("p1").status = PlayerStatus.DEAD
    sync.leave("p1")

    reloaded = MembershipSynchronizer()
    reloaded.load_dict(sync.to_dict())
    reloaded.reconcile([Player(id="p1", username="Alice")])

    assert reloaded.get("p1").status == PlayerStatus.DEAD
