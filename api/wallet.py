import logging
import random
import string

from . import config, db, notify
from .errors import Conflict, InsufficientBalance, InvalidRequest, NotFound
from .users import require_user

logger = logging.getLogger('api.wallet')

PAYMENT_METHODS = ('telebirr', 'cbe', 'bank_transfer')


def generate_tx_id(user_id):
    return f"TX{user_id}{''.join(random.choices(string.ascii_uppercase + string.digits, k=6))}"


def generate_withdraw_id(user_id):
    return f"WD{user_id}{random.randint(1000, 9999)}"


def compute_payout(gross, percent=None):
    """Split a prize pool into ``(commission, net_prize)``."""
    percent = config.COMMISSION_PERCENT if percent is None else percent
    percent = max(0, min(100, int(percent)))
    commission = int(gross) * percent // 100
    return commission, int(gross) - commission


def parse_amount(value, minimum):
    try:
        amount = int(value)
    except (TypeError, ValueError):
        raise InvalidRequest("Amount must be a whole number")
    if amount <= 0:
        raise InvalidRequest("Amount must be positive")
    if amount < minimum:
        raise InvalidRequest(f"Minimum amount is {minimum} ETB", code="BELOW_MINIMUM")
    return amount


def request_deposit(user_id, amount, method=None, reference=None):
    amount = parse_amount(amount, config.MINIMUM_DEPOSIT)
    method = (method or 'bank_transfer').lower()
    if method not in PAYMENT_METHODS:
        raise InvalidRequest(f"Unknown payment method '{method}'")
    user = require_user(user_id)

    tx_id = generate_tx_id(user_id)
    with db.cursor() as cur:
        cur.execute(
            """
            INSERT INTO transactions (tx_id, user_id, amount, method, verification_code, reference, transaction_type)
            VALUES (%s, %s, %s, %s, %s, %s, 'deposit')
            """,
            (tx_id, user_id, amount, method, tx_id[-6:], reference)
        )
    logger.info(f"User {user_id} requested {amount} ETB deposit via {method} ({tx_id})")

    notify.notify_admins(
        "💰 New Deposit Request\n\n"
        f"User: {user['username']}\n"
        f"Telegram ID: {user_id}\n"
        f"Amount: {amount} ETB\n"
        f"Method: {method}\n"
        + (f"Reference: {reference}\n" if reference else '')
        + f"Transaction ID: {tx_id}",
        reply_markup=notify.deposit_review_markup(tx_id)
    )
    return {'tx_id': tx_id, 'verification_code': tx_id[-6:], 'amount': amount}


def review_deposit(tx_id, approve):
    with db.cursor() as cur:
        cur.execute(
            "SELECT * FROM transactions WHERE tx_id = %s AND transaction_type = 'deposit' FOR UPDATE",
            (tx_id,)
        )
        tx = cur.fetchone()
        if not tx:
            raise NotFound("Deposit not found")
        if tx['status'] != 'pending':
            raise Conflict(f"Deposit already {tx['status']}")
        status = 'completed' if approve else 'rejected'
        cur.execute("UPDATE transactions SET status = %s WHERE tx_id = %s", (status, tx_id))
        if approve:
            cur.execute("UPDATE users SET wallet = wallet + %s WHERE user_id = %s RETURNING wallet",
                        (tx['amount'], tx['user_id']))
            new_balance = cur.fetchone()['wallet']
        else:
            new_balance = None
    logger.info(f"Deposit {tx_id} {status}")

    if approve:
        notify.send_message(tx['user_id'], f"✅ Deposit of {tx['amount']} ETB approved. Balance: {new_balance} ETB")
    else:
        notify.send_message(tx['user_id'], f"❌ Deposit of {tx['amount']} ETB was rejected. Contact support.")
    return {'tx_id': tx_id, 'status': status, 'user_id': tx['user_id'], 'amount': tx['amount']}


def pending_deposits():
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT t.tx_id, t.user_id, t.amount, t.method, t.reference, t.verification_code, t.created_at, u.username
            FROM transactions t LEFT JOIN users u ON u.user_id = t.user_id
            WHERE t.transaction_type = 'deposit' AND t.status = 'pending'
            ORDER BY t.created_at
            """
        )
        return cur.fetchall()


def request_withdrawal(user_id, amount, bank_name, account_number, account_holder):
    amount = parse_amount(amount, config.MINIMUM_WITHDRAWAL)
    user = require_user(user_id)
    withdraw_id = generate_withdraw_id(user_id)
    with db.cursor() as cur:
        # Hold the funds now so they cannot be staked while the request is pending
        cur.execute(
            "UPDATE users SET wallet = wallet - %s WHERE user_id = %s AND wallet >= %s RETURNING wallet",
            (amount, user_id, amount)
        )
        if cur.fetchone() is None:
            raise InsufficientBalance(f"Insufficient balance for {amount} ETB withdrawal")
        cur.execute(
            """
            INSERT INTO withdrawals (withdraw_id, user_id, amount, method, account_number, account_holder)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (withdraw_id, user_id, amount, bank_name, account_number, account_holder)
        )
        cur.execute(
            """
            INSERT INTO transactions (tx_id, user_id, amount, method, transaction_type, status)
            VALUES (%s, %s, %s, %s, 'withdrawal', 'pending')
            """,
            (withdraw_id, user_id, -amount, bank_name)
        )
    logger.info(f"User {user_id} requested {amount} ETB withdrawal ({withdraw_id})")
    notify.notify_admins(
        "💸 New Withdrawal Request\n\n"
        f"User: {user['username']} ({user_id})\n"
        f"Amount: {amount} ETB\n"
        f"Bank: {bank_name}\nAccount: {account_number}\nHolder: {account_holder}\n"
        f"Withdrawal ID: {withdraw_id}"
    )
    return {'withdrawal_id': withdraw_id, 'amount': amount}


def review_withdrawal(withdraw_id, approve, admin_note=None):
    with db.cursor() as cur:
        cur.execute("SELECT * FROM withdrawals WHERE withdraw_id = %s FOR UPDATE", (withdraw_id,))
        withdrawal = cur.fetchone()
        if not withdrawal:
            raise NotFound("Withdrawal not found")
        if withdrawal['status'] != 'pending':
            raise Conflict(f"Withdrawal already {withdrawal['status']}")
        status = 'completed' if approve else 'rejected'
        cur.execute(
            "UPDATE withdrawals SET status = %s, admin_note = %s, processed_at = CURRENT_TIMESTAMP WHERE withdraw_id = %s",
            (status, admin_note, withdraw_id)
        )
        cur.execute("UPDATE transactions SET status = %s WHERE tx_id = %s", (status, withdraw_id))
        if not approve:
            cur.execute("UPDATE users SET wallet = wallet + %s WHERE user_id = %s",
                        (withdrawal['amount'], withdrawal['user_id']))
    logger.info(f"Withdrawal {withdraw_id} {status}")

    if approve:
        notify.send_message(withdrawal['user_id'], f"✅ Your withdrawal of {withdrawal['amount']} ETB has been sent.")
    else:
        notify.send_message(withdrawal['user_id'],
                            f"❌ Withdrawal of {withdrawal['amount']} ETB rejected and refunded."
                            + (f"\nNote: {admin_note}" if admin_note else ''))
    return {'withdrawal_id': withdraw_id, 'status': status}


def list_withdrawals(status='pending'):
    query = """
        SELECT w.*, u.username FROM withdrawals w LEFT JOIN users u ON u.user_id = w.user_id
    """
    params = ()
    if status != 'all':
        query += " WHERE w.status = %s"
        params = (status,)
    query += " ORDER BY w.request_time DESC"
    with db.cursor() as cur:
        cur.execute(query, params)
        return cur.fetchall()


def adjust_balance(user_id, delta, reason):
    try:
        delta = int(delta)
    except (TypeError, ValueError):
        raise InvalidRequest("Amount must be a whole number")
    if delta == 0:
        raise InvalidRequest("Amount must not be zero")
    with db.cursor() as cur:
        cur.execute(
            "UPDATE users SET wallet = wallet + %s WHERE user_id = %s AND wallet + %s >= 0 RETURNING wallet",
            (delta, user_id, delta)
        )
        row = cur.fetchone()
        if row is None:
            cur.execute("SELECT 1 FROM users WHERE user_id = %s", (user_id,))
            if cur.fetchone() is None:
                raise NotFound("User not found")
            raise InsufficientBalance("Adjustment would make the balance negative")
        cur.execute(
            """
            INSERT INTO transactions (tx_id, user_id, amount, transaction_type, status, note)
            VALUES (%s, %s, %s, 'adjustment', 'completed', %s)
            """,
            (generate_tx_id(user_id), user_id, delta, reason)
        )
    logger.info(f"Adjusted balance of {user_id} by {delta} ({reason})")
    return row['wallet']


def history(user_id, limit=20):
    limit = max(1, min(int(limit), 100))
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT tx_id, amount, method, transaction_type, status, game_id, created_at
            FROM transactions WHERE user_id = %s
            ORDER BY created_at DESC LIMIT %s
            """,
            (user_id, limit)
        )
        return cur.fetchall()