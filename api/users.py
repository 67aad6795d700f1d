import hashlib
import logging

from . import config, db
from .errors import Conflict, Forbidden, InvalidRequest, NotFound

logger = logging.getLogger('api.users')


def generate_referral_code(user_id):
    return hashlib.md5(str(user_id).encode()).hexdigest()[:8]


def get_user(user_id):
    with db.cursor() as cur:
        cur.execute("SELECT * FROM users WHERE user_id = %s", (user_id,))
        return cur.fetchone()


def require_user(user_id, active=True):
    user = get_user(user_id)
    if not user:
        raise NotFound("User not found", registered=False)
    if active and user['is_suspended']:
        raise Forbidden("Account suspended", code="SUSPENDED")
    return user


def is_registered(user_id):
    return get_user(user_id) is not None


def validate_username(username):
    username = (username or '').strip()
    if not 3 <= len(username) <= 20:
        raise InvalidRequest("Username must be 3-20 characters")
    return username


def register_user(user_id, phone, name, username, referred_by=None):
    """Create the account with the starting bonus. Returns True if created."""
    username = validate_username(username)
    with db.cursor() as cur:
        cur.execute("SELECT 1 FROM users WHERE lower(username) = lower(%s) AND user_id <> %s",
                    (username, user_id))
        if cur.fetchone():
            raise Conflict("Username already taken", code="USERNAME_TAKEN")
        cur.execute(
            """
            INSERT INTO users (user_id, phone, name, username, referral_code, referred_by, wallet, role)
            VALUES (%s, %s, %s, %s, %s, %s, %s, 'user')
            ON CONFLICT (user_id) DO NOTHING
            """,
            (user_id, phone, name, username, generate_referral_code(user_id), referred_by, config.STARTING_BONUS)
        )
        created = cur.rowcount == 1
        if not created:
            cur.execute("UPDATE users SET username = %s WHERE user_id = %s AND username IS NULL",
                        (username, user_id))
            return False

        if config.STARTING_BONUS:
            cur.execute(
                """
                INSERT INTO transactions (tx_id, user_id, amount, transaction_type, status, note)
                VALUES (%s, %s, %s, 'bonus', 'completed', 'starting bonus')
                """,
                (f"BN{user_id}", user_id, config.STARTING_BONUS)
            )
        if referred_by:
            cur.execute("SELECT user_id FROM users WHERE referral_code = %s AND user_id <> %s",
                        (referred_by, user_id))
            referrer = cur.fetchone()
            if referrer:
                cur.execute(
                    "INSERT INTO referrals (referrer_id, referee_id) VALUES (%s, %s) ON CONFLICT (referee_id) DO NOTHING",
                    (referrer['user_id'], user_id)
                )
    logger.info(f"Registered user {user_id} as {username}")
    return True


def check_referral_bonus(user_id):
    """Pay REFERRAL_BONUS for every REFERRAL_THRESHOLD uncredited referrals."""
    with db.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) AS n FROM referrals WHERE referrer_id = %s AND bonus_credited = FALSE",
            (user_id,)
        )
        referral_count = cur.fetchone()['n']
        bonuses = referral_count // config.REFERRAL_THRESHOLD
        if not bonuses:
            return 0
        bonus_amount = bonuses * config.REFERRAL_BONUS
        cur.execute(
            """
            UPDATE referrals SET bonus_credited = TRUE WHERE referral_id IN (
                SELECT referral_id FROM referrals
                WHERE referrer_id = %s AND bonus_credited = FALSE
                ORDER BY referral_id LIMIT %s
            )
            """,
            (user_id, bonuses * config.REFERRAL_THRESHOLD)
        )
        cur.execute("UPDATE users SET wallet = wallet + %s WHERE user_id = %s", (bonus_amount, user_id))
    logger.info(f"Credited {bonus_amount} ETB referral bonus to {user_id}")
    return bonus_amount


def ensure_referral_code(user_id):
    with db.cursor() as cur:
        cur.execute("SELECT referral_code FROM users WHERE user_id = %s", (user_id,))
        row = cur.fetchone()
        if row and row['referral_code']:
            return row['referral_code']
        code = generate_referral_code(user_id)
        cur.execute("UPDATE users SET referral_code = %s WHERE user_id = %s", (code, user_id))
        return code


def balance(user_id):
    user = get_user(user_id)
    return user['wallet'] if user else 0


def leaderboard(limit=10):
    limit = max(1, min(int(limit), 100))
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT username, games_won, total_winnings, wallet
            FROM users
            WHERE role = 'user'
            ORDER BY games_won DESC, total_winnings DESC, wallet DESC
            LIMIT %s
            """,
            (limit,)
        )
        return [
            {'rank': i, 'username': row['username'] or 'Anonymous', 'games_won': row['games_won'],
             'total_winnings': row['total_winnings'], 'wallet': row['wallet']}
            for i, row in enumerate(cur.fetchall(), 1)
        ]


def user_data(user_id):
    user = get_user(user_id)
    if not user:
        raise NotFound("User not found", registered=False)
    bonus = check_referral_bonus(user_id)
    if bonus:
        user = get_user(user_id)
    return {
        'wallet': user['wallet'],
        'username': user['username'],
        'role': user['role'],
        'games_played': user['games_played'],
        'games_won': user['games_won'],
        'invalid_bingo_count': user['invalid_bingo_count'],
        'is_suspended': user['is_suspended'],
        'registered': True,
        'referral_bonus': bonus,
    }


def register_device(user_id, device_hash, ip):
    """Record a device fingerprint; return how many accounts share it."""
    with db.cursor() as cur:
        cur.execute(
            """
            INSERT INTO devices (user_id, device_hash, ip) VALUES (%s, %s, %s)
            ON CONFLICT (user_id, device_hash)
            DO UPDATE SET ip = EXCLUDED.ip, last_seen = CURRENT_TIMESTAMP
            """,
            (user_id, device_hash, ip)
        )
        cur.execute("SELECT COUNT(DISTINCT user_id) AS n FROM devices WHERE device_hash = %s", (device_hash,))
        shared = cur.fetchone()['n']
    if shared > 1:
        logger.warning(f"Device {device_hash[:12]} shared by {shared} accounts (latest {user_id})")
    return shared


def all_user_ids():
    with db.cursor(dict_rows=False) as cur:
        cur.execute("SELECT user_id FROM users")
        return [row[0] for row in cur.fetchall()]


def search_users(query, limit=50):
    pattern = f"%{query or ''}%"
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT user_id, username, name, phone, wallet, games_played, games_won,
                   invalid_bingo_count, is_suspended, registration_date
            FROM users
            WHERE username ILIKE %s OR phone ILIKE %s OR CAST(user_id AS TEXT) LIKE %s
            ORDER BY registration_date DESC
            LIMIT %s
            """,
            (pattern, pattern, pattern, limit)
        )
        return cur.fetchall()


def set_suspended(user_id, suspended):
    with db.cursor() as cur:
        cur.execute("UPDATE users SET is_suspended = %s WHERE user_id = %s", (bool(suspended), user_id))
        if cur.rowcount == 0:
            raise NotFound("User not found")
