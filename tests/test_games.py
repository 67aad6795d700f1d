"""Tests for game ticking, claims and leaving, run against a scripted cursor."""

from datetime import datetime, timedelta

import psycopg2.errors
import pytest

from api import bingo, config, games, notify, timers, users
from api.bingo import FREE
from api.errors import Conflict, InsufficientBalance, InvalidRequest

CARD = [
    [1, 16, 31, 46, 61],
    [2, 17, 32, 47, 62],
    [3, 18, FREE, 48, 63],
    [4, 19, 34, 49, 64],
    [5, 20, 35, 50, 65],
]
NOW = datetime(2024, 1, 1, 12, 0, 0)


def make_game(**overrides):
    game = {
        "game_id": "g1",
        "room_id": "bronze",
        "status": "active",
        "countdown_time": 0,
        "players": [1, 2, 3],
        "called_numbers": [],
        "latest_number": None,
        "number_sequence": list(range(1, 76)),
        "number_sequence_hash": None,
        "stake": 10,
        "prize_pool": 30,
        "winner_id": None,
        "is_paused": False,
        "started_at": NOW,
        "created_at": NOW,
    }
    game.update(overrides)
    return game


@pytest.fixture(autouse=True)
def fixed_rules(monkeypatch):
    monkeypatch.setattr(config, "COMMISSION_PERCENT", 10)
    monkeypatch.setattr(config, "MIN_PLAYERS", 2)
    monkeypatch.setattr(config, "MAX_GAME_MINUTES", 10)


@pytest.fixture
def results(monkeypatch):
    sent = []
    monkeypatch.setattr(notify, "notify_game_result", lambda players, winner, prize: sent.append((players, winner, prize)))
    return sent


# --- plan_tick ---
def test_paused_game_does_nothing():
    assert games.plan_tick(make_game(is_paused=True), NOW) == ("paused", {})


def test_countdown_decrements():
    assert games.plan_tick(make_game(status="countdown", countdown_time=5), NOW) == ("countdown", {"countdown_time": 4})


def test_countdown_end_starts_game_with_committed_sequence():
    action, updates = games.plan_tick(make_game(status="countdown", countdown_time=1), NOW)

    assert action == "start"
    assert updates["status"] == "active"
    assert updates["started_at"] == NOW
    assert sorted(updates["number_sequence"]) == list(range(1, 76))
    assert updates["number_sequence_hash"] == bingo.sequence_hash(updates["number_sequence"])


def test_countdown_at_zero_starts_game():
    assert games.plan_tick(make_game(status="countdown", countdown_time=0), NOW)[0] == "start"


def test_missing_countdown_uses_default(monkeypatch):
    monkeypatch.setattr(config, "COUNTDOWN_SECONDS", 10)

    assert games.plan_tick(make_game(status="countdown", countdown_time=None), NOW) == ("countdown", {"countdown_time": 9})


def test_active_game_calls_next_number_in_sequence():
    game = make_game(number_sequence=[9, 70, 3], called_numbers=[9])

    action, updates = games.plan_tick(game, NOW + timedelta(seconds=5))

    assert action == "call_number"
    assert updates == {"called_numbers": [9, 70], "latest_number": 70}


def test_active_game_without_sequence_gets_one():
    action, updates = games.plan_tick(make_game(number_sequence=None), NOW)

    assert action == "call_number"
    assert updates["latest_number"] == updates["number_sequence"][0]
    assert updates["number_sequence_hash"] == bingo.sequence_hash(updates["number_sequence"])


def test_all_numbers_called():
    game = make_game(number_sequence=[1, 2], called_numbers=[2, 1])

    assert games.plan_tick(game, NOW) == ("all_numbers_called", {})


def test_game_with_winner_ends():
    assert games.plan_tick(make_game(winner_id=2), NOW)[0] == "end"


def test_long_running_game_times_out():
    assert games.plan_tick(make_game(), NOW + timedelta(minutes=11))[0] == "timeout"


def test_waiting_game_is_left_alone():
    assert games.plan_tick(make_game(status="waiting"), NOW) == ("none", {})


# --- public_view ---
def test_sequence_hidden_until_finished():
    view = games.public_view(make_game(latest_number=17, number_sequence_hash="abc"))

    assert "number_sequence" not in view
    assert view["number_sequence_hash"] == "abc"
    assert view["latest_number"] == {"letter": "I", "number": 17}
    assert view["player_count"] == 3
    assert view["started_at"] == NOW.isoformat()


def test_sequence_revealed_after_finish():
    assert "number_sequence" in games.public_view(make_game(status="finished"))
    assert "number_sequence" in games.public_view(make_game(), reveal=True)


# --- tick ---
def test_tick_skips_locked_game(fake_db):
    assert games.tick("g1")["action"] == "skip"
    assert "SKIP LOCKED" in fake_db.executed[0][0]


def test_tick_counts_down(fake_db):
    fake_db.rows = [make_game(status="countdown", countdown_time=3)]

    result = games.tick("g1")

    assert result["action"] == "countdown"
    assert result["countdown_time"] == 2


def test_transition_rejects_unknown_action():
    with pytest.raises(InvalidRequest, match="Unknown action"):
        games.transition("g1", "explode")


# --- claim_bingo ---
def test_valid_claim_pays_net_prize(fake_db, results):
    fake_db.rows = [make_game(called_numbers=[1, 16, 31, 46, 61]), {"card": CARD}]

    result = games.claim_bingo("g1", 1)

    assert result["prize"] == 27
    assert result["commission"] == 3
    assert result["lines"] == ["row0"]
    assert results == [([1, 2, 3], 1, 27)]
    winner_update = fake_db.statements("winner_id = %s, ended_at")[0]
    assert winner_update[0] == 1
    assert fake_db.statements("games_won = games_won + 1") == [(27, 27, 1)]


def test_second_claim_loses_the_race(fake_db, results):
    fake_db.rows = [make_game(called_numbers=[1, 16, 31, 46, 61]), {"card": CARD}]
    fake_db.rowcount = 0

    with pytest.raises(Conflict) as excinfo:
        games.claim_bingo("g1", 1)

    assert excinfo.value.code == "ALREADY_WON"
    assert not fake_db.statements("games_won = games_won + 1")
    assert results == []


def test_claim_after_winner_is_rejected(fake_db):
    fake_db.rows = [make_game(winner_id=2)]

    with pytest.raises(Conflict):
        games.claim_bingo("g1", 1)


def test_false_claim_disqualifies_player(fake_db, results):
    fake_db.rows = [make_game(called_numbers=[1, 2]), {"card": CARD}]

    with pytest.raises(InvalidRequest) as excinfo:
        games.claim_bingo("g1", 1)

    assert excinfo.value.code == "FALSE_BINGO"
    assert excinfo.value.extra["disqualified"] is True
    assert fake_db.statements("invalid_bingo_count = invalid_bingo_count + 1") == [(1,)]
    assert results == []


def test_false_claim_leaving_one_player_awards_them(fake_db, results):
    fake_db.rows = [make_game(players=[1, 2], prize_pool=20), {"card": CARD}]

    with pytest.raises(InvalidRequest):
        games.claim_bingo("g1", 1)

    assert results == [([1, 2], 2, 18)]


# --- leave_game ---
def test_leaving_before_countdown_refunds_stake(fake_db):
    fake_db.rows = [make_game(status="waiting_for_players", players=[1, 2], prize_pool=20), {"tx_id": "TX1"}]

    result = games.leave_game("g1", 1)

    assert result["refunded"] is True
    assert fake_db.statements("UPDATE users SET wallet = wallet +") == [(10, 1)]
    assert fake_db.statements("SET status = 'refunded'") == [("TX1",)]


def test_leaving_running_game_hands_win_to_last_player(fake_db, results):
    fake_db.rows = [make_game(players=[1, 2], prize_pool=20)]

    result = games.leave_game("g1", 1)

    assert result["auto_win"] is True
    assert result["winner_id"] == 2
    assert results == [([1, 2], 2, 18)]
    assert not fake_db.statements("SET status = 'refunded'")


def test_leaving_finished_game_is_a_noop(fake_db):
    fake_db.rows = [make_game(status="finished")]

    assert games.leave_game("g1", 1)["message"] == "Game already finished"


# --- join_game ---
ROOM = {"room_id": "bronze", "name": "Bronze Room", "stake": 10, "status": "active"}


@pytest.fixture
def member(monkeypatch):
    monkeypatch.setattr(users, "require_user", lambda user_id, active=True: {"user_id": user_id, "is_suspended": False})


@pytest.fixture
def scheduled(monkeypatch):
    calls = []
    monkeypatch.setattr(timers, "schedule", lambda game_id, delay, fn, *args: calls.append((game_id, delay)) or True)
    return calls


def test_first_player_creates_waiting_game(fake_db, member, scheduled):
    fake_db.rows = [ROOM, [], None, None, make_game(status="waiting", players=[1], prize_pool=0)]

    result = games.join_game("bronze", 1)

    assert result["action"] == "created"
    assert result["game"]["status"] == "waiting"
    assert fake_db.statements("INSERT INTO games")[0][3] == [1]
    assert scheduled == []


def test_second_player_starts_waiting_period(fake_db, member, scheduled, monkeypatch):
    monkeypatch.setattr(config, "WAITING_PERIOD_SECONDS", 30)
    fake_db.rows = [ROOM, [], None, make_game(status="waiting", players=[2]),
                    make_game(status="waiting", players=[2])]

    result = games.join_game("bronze", 1)

    assert result["action"] == "joined"
    assert result["game"]["status"] == "waiting_for_players"
    assert result["game"]["countdown_time"] == 30
    assert result["game"]["players"] == [2, 1]
    assert scheduled == [("g1", 30)]


def test_rejoining_open_game_is_idempotent(fake_db, member, scheduled):
    fake_db.rows = [ROOM, [], None, make_game(status="waiting", players=[1]),
                    make_game(status="waiting", players=[1])]

    assert games.join_game("bronze", 1)["action"] == "already_joined"


def test_creation_race_joins_the_winning_game(fake_db, member, scheduled, monkeypatch):
    def lost_race(room, user_id):
        raise psycopg2.errors.UniqueViolation()

    monkeypatch.setattr(games, "_create_game", lost_race)
    fake_db.rows = [ROOM, [], None, None, make_game(status="waiting", players=[2]),
                    make_game(status="waiting", players=[2])]

    result = games.join_game("bronze", 1)

    assert result["action"] == "joined"
    assert result["game_id"] == "g1"


def test_active_game_players_rejoin_and_others_spectate(fake_db, member):
    fake_db.rows = [ROOM, [], make_game(players=[1, 2]), None]
    assert games.join_game("bronze", 1)["action"] == "already_joined_active"

    fake_db.rows = [ROOM, [], make_game(players=[1, 2]), None]
    assert games.join_game("bronze", 3)["action"] == "spectate"


def test_closed_room_cannot_be_joined(fake_db, member):
    fake_db.rows = [dict(ROOM, status="inactive")]

    with pytest.raises(InvalidRequest, match="closed"):
        games.join_game("bronze", 1)


# --- confirm_join ---
def test_confirm_join_deducts_stake_and_deals_card(fake_db, member):
    fake_db.rows = [make_game(status="waiting_for_players", players=[1, 2], prize_pool=10),
                    None, {"wallet": 40}, {"prize_pool": 20}, [{"card": CARD}]]

    result = games.confirm_join("g1", 1)

    assert result["balance"] == 40
    assert result["prize_pool"] == 20
    assert result["card"] != CARD
    assert bingo.validate_card(result["card"]) is result["card"]
    assert fake_db.statements("wallet = wallet - %s") == [(10, 1, 10)]
    assert fake_db.statements("'stake', 'completed'")[0][2] == -10


def test_confirm_join_twice_does_not_charge_again(fake_db, member):
    fake_db.rows = [make_game(status="waiting_for_players", players=[1, 2]), {"tx_id": "TX1"}, {"card": CARD}]

    result = games.confirm_join("g1", 1)

    assert result["already_staked"] is True
    assert result["card"] == CARD
    assert not fake_db.statements("wallet = wallet - %s")


def test_confirm_join_without_funds(fake_db, member):
    fake_db.rows = [make_game(status="waiting", players=[1]), None, None]

    with pytest.raises(InsufficientBalance):
        games.confirm_join("g1", 1)

    assert not fake_db.statements("INSERT INTO transactions")
    assert not fake_db.statements("INSERT INTO player_cards")


def test_confirm_join_after_start_is_refused(fake_db, member):
    fake_db.rows = [make_game(players=[1, 2])]

    with pytest.raises(InvalidRequest, match="staking"):
        games.confirm_join("g1", 1)


# --- transitions and no-winner endings ---
def test_countdown_needs_enough_players(fake_db):
    fake_db.rows = [make_game(status="waiting_for_players", players=[1])]

    result = games.transition("g1", "start_countdown")

    assert result == {"success": False, "message": "Not enough players", "current_status": "waiting_for_players"}


def test_finish_without_winner_refunds_every_stake(fake_db, results):
    fake_db.rows = [make_game(players=[1, 2], prize_pool=20),
                    [{"tx_id": "TX1", "user_id": 1}, {"tx_id": "TX2", "user_id": 2}]]

    assert games.finish_without_winner("g1") is True

    assert fake_db.statements("UPDATE users SET wallet = wallet +") == [(10, 1), (10, 2)]
    assert fake_db.statements("end_reason = %s, countdown_time = 0")[0][1] == "no_winner"
    assert results == [([1, 2], None, 0)]


def test_finish_without_winner_skips_finished_game(fake_db, results):
    fake_db.rows = [make_game(status="finished", winner_id=2)]

    assert games.finish_without_winner("g1") is False
    assert not fake_db.statements("UPDATE users SET wallet")


def test_tick_timeout_refunds_stakes(fake_db):
    fake_db.rows = [make_game(players=[1, 2]), [{"tx_id": "TX1", "user_id": 1}, {"tx_id": "TX2", "user_id": 2}]]

    result = games.tick("g1")

    assert result["action"] == "timeout"
    assert fake_db.statements("UPDATE users SET wallet = wallet +") == [(10, 1), (10, 2)]
    assert fake_db.statements("end_reason = %s, countdown_time = 0")[0][1] == "timeout"


def test_force_end_refunds_and_clears_timer(fake_db, monkeypatch):
    cleared = []
    monkeypatch.setattr(timers, "clear", lambda game_id: cleared.append(game_id) or True)
    fake_db.rows = [make_game(status="countdown", players=[1, 2]), [{"tx_id": "TX1", "user_id": 1}]]

    assert games.force_end("g1") == 1

    assert fake_db.statements("SET status = 'refunded'") == [("TX1",)]
    assert fake_db.statements("end_reason = %s, countdown_time = 0")[0][1] == "admin_force_end"
    assert cleared == ["g1"]


def test_force_end_on_finished_game(fake_db):
    fake_db.rows = [make_game(status="finished")]

    with pytest.raises(Conflict):
        games.force_end("g1")
