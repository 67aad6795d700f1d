from datetime import datetime

import pytest

from api import admin
from api.errors import Unauthorized
from api.passwords import hash_token

ADMIN_ROW = {"admin_id": 1, "username": "root", "email": None, "full_name": None, "role": "admin"}


def test_missing_token_is_unauthorized():
    with pytest.raises(Unauthorized):
        admin.admin_from_token(None)


def test_unknown_token_is_unauthorized(fake_db):
    with pytest.raises(Unauthorized) as excinfo:
        admin.admin_from_token("stolen")

    assert excinfo.value.code == "UNAUTHORIZED"


def test_expired_session_is_rejected(fake_db):
    fake_db.rows = [dict(ADMIN_ROW, expires_at=datetime(2000, 1, 1))]

    with pytest.raises(Unauthorized) as excinfo:
        admin.admin_from_token("tok")

    assert excinfo.value.code == "SESSION_EXPIRED"
    assert not fake_db.statements("last_seen_at")


def test_live_session_returns_profile_and_touches_it(fake_db):
    fake_db.rows = [dict(ADMIN_ROW, expires_at=datetime(2999, 1, 1))]

    profile = admin.admin_from_token("tok")

    assert profile == {"id": 1, "username": "root", "email": None, "full_name": None, "role": "admin"}
    assert fake_db.executed[0][1] == (hash_token("tok"),)
    assert fake_db.statements("last_seen_at")[0][1] == hash_token("tok")
