from unittest.mock import AsyncMock

from api import bot, config, games, users, wallet
from api.errors import InvalidRequest, NotFound


def test_join_requires_room_and_user(client):
    response = client.post("/api/game/join", json={})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Missing required fields: roomId, userId"


def test_join_passes_numeric_user_id(client, monkeypatch):
    calls = []
    monkeypatch.setattr(games, "join_game", lambda room_id, user_id: calls.append((room_id, user_id)) or
                        {"success": True, "action": "created", "game_id": "g1"})

    response = client.post("/api/game/join", json={"roomId": "bronze", "userId": "42"})

    assert response.status_code == 200
    assert response.get_json()["action"] == "created"
    assert calls == [("bronze", 42)]


def test_non_numeric_user_id_is_rejected(client):
    response = client.post("/api/game/claim-bingo", json={"gameId": "g1", "userId": "bob"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Valid userId is required"


def test_domain_errors_render_code_and_extras(client, monkeypatch):
    def false_bingo(game_id, user_id):
        raise InvalidRequest("Not a valid bingo", code="FALSE_BINGO", disqualified=True)

    monkeypatch.setattr(games, "claim_bingo", false_bingo)

    response = client.post("/api/game/claim-bingo", json={"gameId": "g1", "userId": 7})

    assert response.status_code == 400
    assert response.get_json() == {"error": "Not a valid bingo", "code": "FALSE_BINGO", "disqualified": True}


def test_missing_game_is_404(client, monkeypatch):
    def missing(game_id, reveal=False):
        raise NotFound("Game not found")

    monkeypatch.setattr(games, "get_game", missing)

    response = client.get("/api/games/nope")

    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


def test_unexpected_errors_become_500(client, monkeypatch):
    def broken(game_id):
        raise RuntimeError("db gone")

    monkeypatch.setattr(games, "tick", broken)

    response = client.post("/api/game/tick", json={"gameId": "g1"})

    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}


def test_unknown_route_keeps_404(client):
    assert client.get("/api/does-not-exist").status_code == 404


def test_user_data_validates_id(client):
    response = client.get("/api/user_data?user_id=abc")

    assert response.status_code == 400


def test_user_data_unregistered(client, monkeypatch):
    def unknown(user_id):
        raise NotFound("User not found", registered=False)

    monkeypatch.setattr(users, "user_data", unknown)

    response = client.get("/api/user_data?user_id=5")

    assert response.status_code == 404
    assert response.get_json()["registered"] is False


def test_leaderboard(client, monkeypatch):
    monkeypatch.setattr(users, "leaderboard", lambda limit: [{"rank": 1, "username": "abebe", "games_won": 3}][:limit])

    response = client.get("/api/leaderboard?limit=5")

    assert response.get_json() == {"leaders": [{"rank": 1, "username": "abebe", "games_won": 3}]}


def test_withdraw_requires_bank_details(client):
    response = client.post("/api/wallet/withdraw", json={"userId": 1, "amount": 100})

    assert response.status_code == 400
    assert "bankName, accountNumber, accountHolder" in response.get_json()["error"]


def test_deposit_request(client, monkeypatch):
    monkeypatch.setattr(wallet, "request_deposit",
                        lambda user_id, amount, method, ref: {"tx_id": "TX1ABCDEF", "amount": int(amount)})

    response = client.post("/api/wallet/deposit", json={"userId": 1, "amount": "50", "paymentMethod": "cbe"})

    body = response.get_json()
    assert body["success"] is True
    assert body["tx_id"] == "TX1ABCDEF"


def test_cleanup_without_user_cleans_stale_games(client, monkeypatch):
    monkeypatch.setattr(games, "cleanup", lambda user_id=None: 3)

    response = client.post("/api/game/cleanup", json={})

    assert response.get_json()["message"] == "Cleaned up 3 old games"


def test_webhook_reports_unconfigured_bot(client):
    assert client.get("/api/webhook").get_json() == {"status": "ok", "bot_configured": False}
    assert client.post("/api/webhook", json={"update_id": 1}).status_code == 503


def test_webhook_rejects_wrong_secret(client, monkeypatch):
    handled = AsyncMock()
    monkeypatch.setattr(bot, "application", object())
    monkeypatch.setattr(bot, "process_update", handled)
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "s3cret")

    response = client.post("/api/webhook", json={"update_id": 1},
                           headers={"X-Telegram-Bot-Api-Secret-Token": "guess"})

    assert response.status_code == 401
    handled.assert_not_called()


def test_webhook_processes_update_with_secret(client, monkeypatch):
    handled = AsyncMock()
    monkeypatch.setattr(bot, "application", object())
    monkeypatch.setattr(bot, "process_update", handled)
    monkeypatch.setattr(config, "WEBHOOK_SECRET", "s3cret")

    response = client.post("/api/webhook", json={"update_id": 1},
                           headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"})

    assert response.get_json() == {"status": "ok"}
    handled.assert_awaited_once_with({"update_id": 1})


def test_player_rooms_hide_inactive(client, monkeypatch):
    calls = []
    monkeypatch.setattr(games, "list_rooms", lambda include_inactive=False: calls.append(include_inactive) or [])

    client.get("/api/rooms")

    assert calls == [False]
