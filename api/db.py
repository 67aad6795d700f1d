import logging
from contextlib import contextmanager

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from . import config

logger = logging.getLogger('api.db')

DEFAULT_ROOMS = [
    ('bronze', 'Bronze Room', 10),
    ('silver', 'Silver Room', 20),
    ('gold', 'Gold Room', 50),
    ('diamond', 'Diamond Room', 100),
]

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS users (
        user_id BIGINT PRIMARY KEY,
        phone TEXT,
        username TEXT UNIQUE,
        name TEXT,
        wallet INTEGER DEFAULT 0 CHECK (wallet >= 0),
        games_played INTEGER DEFAULT 0,
        games_won INTEGER DEFAULT 0,
        total_winnings INTEGER DEFAULT 0,
        referral_code TEXT UNIQUE,
        referred_by TEXT,
        registration_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        role TEXT DEFAULT 'user',
        invalid_bingo_count INTEGER DEFAULT 0,
        is_suspended BOOLEAN DEFAULT FALSE
    );
    CREATE INDEX IF NOT EXISTS idx_users_referral_code ON users(referral_code);

    CREATE TABLE IF NOT EXISTS referrals (
        referral_id SERIAL PRIMARY KEY,
        referrer_id BIGINT REFERENCES users(user_id),
        referee_id BIGINT UNIQUE REFERENCES users(user_id),
        bonus_credited BOOLEAN DEFAULT FALSE,
        timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX IF NOT EXISTS idx_referrals_referrer_id ON referrals(referrer_id);

    CREATE TABLE IF NOT EXISTS rooms (
        room_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        stake INTEGER NOT NULL CHECK (stake > 0),
        status TEXT DEFAULT 'active',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS games (
        game_id TEXT PRIMARY KEY,
        room_id TEXT REFERENCES rooms(room_id),
        status TEXT NOT NULL DEFAULT 'waiting',
        countdown_time INTEGER DEFAULT 0,
        players BIGINT[] DEFAULT '{}',
        called_numbers INTEGER[] DEFAULT '{}',
        latest_number INTEGER,
        number_sequence INTEGER[],
        number_sequence_hash TEXT,
        stake INTEGER NOT NULL,
        prize_pool INTEGER DEFAULT 0,
        commission_amount INTEGER,
        net_prize INTEGER,
        winner_id BIGINT,
        is_paused BOOLEAN DEFAULT FALSE,
        end_reason TEXT,
        waiting_started_at TIMESTAMP,
        countdown_started_at TIMESTAMP,
        started_at TIMESTAMP,
        ended_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE UNIQUE INDEX IF NOT EXISTS idx_games_one_open_per_room ON games(room_id)
        WHERE status IN ('waiting', 'waiting_for_players', 'countdown');
    CREATE INDEX IF NOT EXISTS idx_games_status ON games(status);

    CREATE TABLE IF NOT EXISTS player_cards (
        game_id TEXT REFERENCES games(game_id) ON DELETE CASCADE,
        user_id BIGINT REFERENCES users(user_id),
        card JSONB NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (game_id, user_id)
    );

    CREATE TABLE IF NOT EXISTS transactions (
        tx_id TEXT PRIMARY KEY,
        user_id BIGINT REFERENCES users(user_id),
        amount INTEGER NOT NULL,
        method TEXT,
        verification_code TEXT,
        reference TEXT,
        transaction_type TEXT DEFAULT 'deposit',
        status TEXT DEFAULT 'pending',
        game_id TEXT,
        note TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON transactions(user_id);
    CREATE INDEX IF NOT EXISTS idx_transactions_game ON transactions(game_id, transaction_type);

    CREATE TABLE IF NOT EXISTS withdrawals (
        withdraw_id TEXT PRIMARY KEY,
        user_id BIGINT REFERENCES users(user_id),
        amount INTEGER,
        status TEXT DEFAULT 'pending',
        request_time TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        processed_at TIMESTAMP,
        method TEXT,
        account_number TEXT,
        account_holder TEXT,
        admin_note TEXT
    );
    CREATE INDEX IF NOT EXISTS idx_withdrawals_user_id ON withdrawals(user_id);

    CREATE TABLE IF NOT EXISTS admin_users (
        admin_id SERIAL PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE,
        password TEXT NOT NULL,
        full_name TEXT,
        role TEXT DEFAULT 'admin',
        is_active BOOLEAN DEFAULT TRUE,
        last_login TIMESTAMP
    );

    CREATE TABLE IF NOT EXISTS admin_sessions (
        token_hash TEXT PRIMARY KEY,
        admin_id INTEGER REFERENCES admin_users(admin_id) ON DELETE CASCADE,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_seen_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        expires_at TIMESTAMP NOT NULL,
        ip TEXT,
        user_agent TEXT
    );

    CREATE TABLE IF NOT EXISTS devices (
        user_id BIGINT REFERENCES users(user_id),
        device_hash TEXT NOT NULL,
        ip TEXT,
        first_seen TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        last_seen TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (user_id, device_hash)
    );
    CREATE INDEX IF NOT EXISTS idx_devices_hash ON devices(device_hash);

    CREATE TABLE IF NOT EXISTS audit_log (
        id SERIAL PRIMARY KEY,
        admin_id INTEGER,
        action TEXT NOT NULL,
        details JSONB,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
'''

# --- DB Pool ---
db_pool = None


def get_db_connection():
    global db_pool
    if db_pool is None:
        config.require("DATABASE_URL")
        db_pool = psycopg2.pool.SimpleConnectionPool(config.DB_POOL_MIN, config.DB_POOL_MAX, config.DATABASE_URL)
    return db_pool.getconn()


def release_db_connection(conn):
    if db_pool:
        db_pool.putconn(conn)


@contextmanager
def cursor(dict_rows=True):
    """Yield a cursor inside one transaction, committing on success."""
    conn = get_db_connection()
    try:
        with conn.cursor(cursor_factory=RealDictCursor if dict_rows else None) as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_db_connection(conn)


def init_db():
    with cursor(dict_rows=False) as cur:
        cur.execute(SCHEMA)
        cur.executemany(
            "INSERT INTO rooms (room_id, name, stake) VALUES (%s, %s, %s) ON CONFLICT (room_id) DO NOTHING",
            DEFAULT_ROOMS
        )
    logger.info("Database schema ready")
