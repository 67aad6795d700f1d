import logging
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import g, request
from psycopg2.extras import Json

from . import config, db, notify, users
from .errors import Unauthorized
from .passwords import generate_token, hash_password, hash_token, needs_rehash, verify_password

logger = logging.getLogger('api.admin')

SESSION_COOKIE = 'admin_session'


def _now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _profile(admin):
    return {
        'id': admin['admin_id'],
        'username': admin['username'],
        'email': admin.get('email'),
        'full_name': admin.get('full_name'),
        'role': admin['role'],
    }


def login(username, password, ip='', user_agent=''):
    """Check credentials and open a session. Returns ``(raw_token, profile)``."""
    with db.cursor() as cur:
        cur.execute(
            "SELECT * FROM admin_users WHERE (username = %s OR email = %s) AND is_active = TRUE",
            (username, username)
        )
        admin = cur.fetchone()
        if not admin or not verify_password(password, admin['password']):
            logger.warning(f"Failed admin login for {username!r} from {ip}")
            raise Unauthorized("Invalid credentials")

        if needs_rehash(admin['password']):
            cur.execute("UPDATE admin_users SET password = %s WHERE admin_id = %s",
                        (hash_password(password), admin['admin_id']))
            logger.info(f"Upgraded legacy password for admin {admin['username']}")

        now = _now()
        token = generate_token()
        cur.execute("UPDATE admin_users SET last_login = %s WHERE admin_id = %s", (now, admin['admin_id']))
        cur.execute(
            """
            INSERT INTO admin_sessions (token_hash, admin_id, created_at, last_seen_at, expires_at, ip, user_agent)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            """,
            (hash_token(token), admin['admin_id'], now, now,
             now + timedelta(hours=config.ADMIN_SESSION_HOURS), ip, user_agent)
        )
    logger.info(f"Admin {admin['username']} logged in from {ip}")
    return token, _profile(admin)


def admin_from_token(token):
    if not token:
        raise Unauthorized("Unauthorized")
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT a.*, s.expires_at FROM admin_sessions s
            JOIN admin_users a ON a.admin_id = s.admin_id
            WHERE s.token_hash = %s AND a.is_active = TRUE
            """,
            (hash_token(token),)
        )
        admin = cur.fetchone()
        if not admin:
            raise Unauthorized("Unauthorized")
        if admin['expires_at'] <= _now():
            raise Unauthorized("Session expired", code="SESSION_EXPIRED")
        cur.execute("UPDATE admin_sessions SET last_seen_at = %s WHERE token_hash = %s",
                    (_now(), hash_token(token)))
    return _profile(admin)


def logout(token):
    if not token:
        return False
    with db.cursor() as cur:
        cur.execute("DELETE FROM admin_sessions WHERE token_hash = %s", (hash_token(token),))
        return cur.rowcount > 0


def create_admin(username, password, email=None, full_name=None, role='admin'):
    with db.cursor() as cur:
        cur.execute(
            """
            INSERT INTO admin_users (username, email, password, full_name, role)
            VALUES (%s, %s, %s, %s, %s) RETURNING admin_id
            """,
            (username, email, hash_password(password), full_name, role)
        )
        return cur.fetchone()['admin_id']


def request_token():
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):].strip()
    return None


def require_admin(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        g.admin = admin_from_token(request_token())
        return view(*args, **kwargs)
    return wrapper


def audit(admin_id, action, details=None):
    with db.cursor() as cur:
        cur.execute("INSERT INTO audit_log (admin_id, action, details) VALUES (%s, %s, %s)",
                    (admin_id, action, Json(details or {})))


def recent_audit(limit=100):
    with db.cursor() as cur:
        cur.execute("SELECT * FROM audit_log ORDER BY created_at DESC LIMIT %s", (limit,))
        return cur.fetchall()


def broadcast(text):
    user_ids = users.all_user_ids()
    success = 0
    for uid in user_ids:
        if notify.send_message(uid, f"📢 Announcement:\n\n{text}").get('ok'):
            success += 1
    logger.info(f"Broadcast sent to {success}/{len(user_ids)} users")
    return success, len(user_ids)


def stats():
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM users) AS users,
                (SELECT COUNT(*) FROM games WHERE status <> 'finished') AS live_games,
                (SELECT COUNT(*) FROM games WHERE status = 'finished') AS finished_games,
                (SELECT COALESCE(SUM(commission_amount), 0) FROM games) AS commission,
                (SELECT COUNT(*) FROM transactions WHERE transaction_type = 'deposit' AND status = 'pending')
                    AS pending_deposits,
                (SELECT COUNT(*) FROM withdrawals WHERE status = 'pending') AS pending_withdrawals
            """
        )
        return cur.fetchone()
