import pytest

from api import admin, config, games, wallet
from api.errors import Unauthorized

PROFILE = {"id": 1, "username": "root", "email": None, "full_name": None, "role": "admin"}


@pytest.fixture
def audited(monkeypatch):
    entries = []
    monkeypatch.setattr(admin, "audit", lambda admin_id, action, details=None: entries.append((admin_id, action, details)))
    return entries


@pytest.fixture
def signed_in(monkeypatch, audited):
    tokens = []

    def from_token(token):
        tokens.append(token)
        if token != "good-token":
            raise Unauthorized("Unauthorized")
        return PROFILE

    monkeypatch.setattr(admin, "admin_from_token", from_token)
    return {"Authorization": "Bearer good-token"}


def test_admin_endpoints_need_a_session(client):
    response = client.get("/api/admin/live-games")

    assert response.status_code == 401
    assert response.get_json()["code"] == "UNAUTHORIZED"


def test_login_sets_session_cookie(client, monkeypatch):
    monkeypatch.setattr(admin, "login", lambda username, password, ip, agent: ("tok123", PROFILE))

    response = client.post("/api/admin/login", json={"username": "root", "password": "pw"})

    assert response.status_code == 200
    assert response.get_json()["sessionToken"] == "tok123"
    cookie = response.headers["Set-Cookie"]
    assert cookie.startswith("admin_session=tok123")
    assert "HttpOnly" in cookie


def test_login_is_rate_limited(client, monkeypatch):
    monkeypatch.setattr(config, "LOGIN_RATE_LIMIT", 2)

    def bad_login(username, password, ip, agent):
        raise Unauthorized("Invalid credentials")

    monkeypatch.setattr(admin, "login", bad_login)

    statuses = [client.post("/api/admin/login", json={"username": "root", "password": "x"}).status_code
                for _ in range(3)]

    assert statuses == [401, 401, 429]
    response = client.post("/api/admin/login", json={"username": "root", "password": "x"})
    assert int(response.headers["Retry-After"]) > 0


def test_login_limit_is_per_username(client, monkeypatch):
    monkeypatch.setattr(config, "LOGIN_RATE_LIMIT", 1)

    def bad_login(username, password, ip, agent):
        raise Unauthorized("Invalid credentials")

    monkeypatch.setattr(admin, "login", bad_login)

    first = client.post("/api/admin/login", json={"username": "Root", "password": "x"})
    same_user = client.post("/api/admin/login", json={"username": "root", "password": "x"})
    other_user = client.post("/api/admin/login", json={"username": "ops", "password": "x"})

    assert [first.status_code, same_user.status_code, other_user.status_code] == [401, 429, 401]
    assert same_user.get_json()["code"] == "RATE_LIMITED"


def test_cookie_session_is_accepted(client, signed_in):
    client.set_cookie("admin_session", "good-token")

    response = client.get("/api/admin/me")

    assert response.get_json()["admin"]["username"] == "root"


def test_force_end_is_audited(client, monkeypatch, signed_in, audited):
    monkeypatch.setattr(games, "force_end", lambda game_id: 4)

    response = client.post("/api/admin/games/force-end", json={"gameId": "g1"}, headers=signed_in)

    assert response.get_json() == {"success": True, "refunded": 4}
    assert audited == [(1, "game_force_end", {"game_id": "g1", "refunded": 4})]


def test_deposit_review(client, monkeypatch, signed_in, audited):
    calls = []

    def review(tx_id, approve):
        calls.append((tx_id, approve))
        return {"tx_id": tx_id, "status": "completed", "user_id": 7, "amount": 50}

    monkeypatch.setattr(wallet, "review_deposit", review)

    response = client.post("/api/admin/deposits", json={"action": "approve", "txId": "TX1"}, headers=signed_in)

    assert response.get_json()["status"] == "completed"
    assert calls == [("TX1", True)]
    assert audited[0][1] == "deposit_approve"


def test_withdrawal_review_rejects_unknown_action(client, signed_in):
    response = client.post("/api/admin/withdrawals", json={"action": "maybe", "withdrawalId": "WD1"},
                           headers=signed_in)

    assert response.status_code == 400


def test_pending_withdrawals_listing(client, monkeypatch, signed_in):
    monkeypatch.setattr(wallet, "list_withdrawals", lambda status: [{"withdraw_id": "WD1", "status": status}])

    response = client.get("/api/admin/withdrawals?status=all", headers=signed_in)

    assert response.get_json()["data"] == [{"withdraw_id": "WD1", "status": "all"}]


def test_admin_room_list_includes_inactive(client, monkeypatch, signed_in):
    rooms = [{"room_id": "bronze", "status": "active"}, {"room_id": "vip", "status": "inactive"}]
    monkeypatch.setattr(games, "list_rooms", lambda include_inactive=False: rooms if include_inactive else rooms[:1])

    response = client.get("/api/admin/rooms", headers=signed_in)

    assert response.get_json()["rooms"] == rooms
