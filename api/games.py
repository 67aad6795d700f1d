"""Game lifecycle: rooms, joining, staking, ticking, claims and payouts.

A game moves through ``waiting -> waiting_for_players -> countdown -> active
-> finished``. Every transition is a single SQL statement run while holding
the game's row lock, so concurrent requests from several players resolve in
the database. The timer registry only prevents duplicate follow-up timers.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone

from psycopg2 import errors, sql
from psycopg2.extras import Json

from . import bingo, config, db, notify, timers, users
from .errors import Conflict, Forbidden, InsufficientBalance, InvalidRequest, NotFound
from .wallet import compute_payout, generate_tx_id

logger = logging.getLogger('api.games')

OPEN_STATUSES = ('waiting', 'waiting_for_players', 'countdown')
STAKE_REFUNDABLE = ('waiting', 'waiting_for_players')
TRANSITIONS = ('start_countdown', 'start_game', 'update_countdown')


def _now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else value


def public_view(game, reveal=False):
    """JSON-ready game dict; the call sequence stays secret until the game ends."""
    view = {key: _iso(value) for key, value in game.items()}
    if not reveal and game['status'] != 'finished':
        view.pop('number_sequence', None)
    latest = game.get('latest_number')
    view['latest_number'] = {'letter': bingo.letter_for(latest), 'number': latest} if latest else None
    view['player_count'] = len(game.get('players') or [])
    return view


def _start_updates(now):
    sequence = bingo.generate_number_sequence()
    return {
        'status': 'active',
        'countdown_time': 0,
        'started_at': now,
        'number_sequence': sequence,
        'number_sequence_hash': bingo.sequence_hash(sequence),
    }


def plan_tick(game, now=None):
    """Decide what one tick does to ``game``. Returns ``(action, updates)``."""
    now = now or _now()
    status = game['status']
    if game.get('is_paused'):
        return 'paused', {}

    if status == 'countdown':
        current = game.get('countdown_time')
        if current is None:
            current = config.COUNTDOWN_SECONDS
        if current > 1:
            return 'countdown', {'countdown_time': current - 1}
        return 'start', _start_updates(now)

    if status == 'active':
        if game.get('winner_id'):
            return 'end', {}
        started = game.get('started_at')
        if started and now - started > timedelta(minutes=config.MAX_GAME_MINUTES):
            return 'timeout', {}
        updates = {}
        sequence = game.get('number_sequence')
        if not sequence:
            sequence = bingo.generate_number_sequence()
            updates.update(number_sequence=sequence, number_sequence_hash=bingo.sequence_hash(sequence))
        called = list(game.get('called_numbers') or [])
        number = bingo.next_number(sequence, called)
        if number is None:
            return 'all_numbers_called', updates
        updates.update(called_numbers=called + [number], latest_number=number)
        return 'call_number', updates

    return 'none', {}


def _update_game(cur, game_id, updates):
    assignments = sql.SQL(', ').join(
        sql.SQL("{} = %s").format(sql.Identifier(column)) for column in updates
    )
    cur.execute(
        sql.SQL("UPDATE games SET {} WHERE game_id = %s").format(assignments),
        list(updates.values()) + [game_id]
    )


def _lock_game(cur, game_id, skip_locked=False):
    query = "SELECT * FROM games WHERE game_id = %s FOR UPDATE"
    if skip_locked:
        query += " SKIP LOCKED"
    cur.execute(query, (game_id,))
    return cur.fetchone()


def _require_game(cur, game_id):
    game = _lock_game(cur, game_id)
    if not game:
        raise NotFound("Game not found")
    return game


def _stake_paid(cur, game_id, user_id):
    cur.execute(
        """
        SELECT tx_id FROM transactions
        WHERE game_id = %s AND user_id = %s AND transaction_type = 'stake' AND status = 'completed'
        LIMIT 1
        """,
        (game_id, user_id)
    )
    row = cur.fetchone()
    return row['tx_id'] if row else None


def _count_games_played(cur, game_id):
    cur.execute(
        """
        UPDATE users SET games_played = games_played + 1
        WHERE user_id IN (
            SELECT user_id FROM transactions
            WHERE game_id = %s AND transaction_type = 'stake' AND status = 'completed'
        )
        """,
        (game_id,)
    )


def _refund_stake(cur, game, user_id, tx_id):
    cur.execute("UPDATE transactions SET status = 'refunded' WHERE tx_id = %s", (tx_id,))
    cur.execute("UPDATE users SET wallet = wallet + %s WHERE user_id = %s", (game['stake'], user_id))
    cur.execute(
        """
        INSERT INTO transactions (tx_id, user_id, amount, transaction_type, status, game_id)
        VALUES (%s, %s, %s, 'refund', 'completed', %s)
        """,
        (generate_tx_id(user_id), user_id, game['stake'], game['game_id'])
    )


def _refund_all_stakes(cur, game):
    players = list(game.get('players') or [])
    cur.execute(
        """
        SELECT tx_id, user_id FROM transactions
        WHERE game_id = %s AND transaction_type = 'stake' AND status = 'completed' AND user_id = ANY(%s)
        """,
        (game['game_id'], players)
    )
    stakes = cur.fetchall()
    for stake in stakes:
        _refund_stake(cur, game, stake['user_id'], stake['tx_id'])
    return len(stakes)


def _award(cur, game, winner_id, reason, players=None):
    """Finish ``game`` with ``winner_id`` and pay the net prize."""
    commission, net = compute_payout(game['prize_pool'])
    players = list(game['players'] if players is None else players)
    cur.execute(
        """
        UPDATE games
        SET status = 'finished', winner_id = %s, ended_at = %s, commission_amount = %s,
            net_prize = %s, end_reason = %s, players = %s
        WHERE game_id = %s AND status <> 'finished' AND winner_id IS NULL
        """,
        (winner_id, _now(), commission, net, reason, players, game['game_id'])
    )
    if cur.rowcount == 0:
        raise Conflict("Game already has a winner", code="ALREADY_WON")
    cur.execute(
        """
        UPDATE users SET wallet = wallet + %s, total_winnings = total_winnings + %s,
            games_won = games_won + 1
        WHERE user_id = %s
        """,
        (net, net, winner_id)
    )
    cur.execute(
        """
        INSERT INTO transactions (tx_id, user_id, amount, transaction_type, status, game_id, note)
        VALUES (%s, %s, %s, 'win', 'completed', %s, %s)
        """,
        (generate_tx_id(winner_id), winner_id, net, game['game_id'], f"commission {commission}")
    )
    logger.info(f"User {winner_id} won game {game['game_id']}: pool {game['prize_pool']}, "
                f"commission {commission}, paid {net} ({reason})")
    return commission, net


def _finish(cur, game, reason):
    cur.execute(
        """
        UPDATE games SET status = 'finished', ended_at = %s, end_reason = %s, countdown_time = 0
        WHERE game_id = %s AND status <> 'finished' AND winner_id IS NULL
        """,
        (_now(), reason, game['game_id'])
    )
    return cur.rowcount == 1


def _drop_running_player(cur, game, user_id, reason):
    """Remove a player from a countdown/active game; a lone survivor wins."""
    remaining = [p for p in game['players'] if p != user_id]
    if len(remaining) == 1:
        winner_id = remaining[0]
        _, net = _award(cur, game, winner_id, reason, players=remaining)
        return {'success': True, 'message': 'Player left, remaining player wins',
                'winner_id': winner_id, 'prize': net, 'auto_win': True, 'finished': True}
    _update_game(cur, game['game_id'], {'players': remaining})
    if not remaining:
        _finish(cur, game, 'abandoned')
        return {'success': True, 'message': 'All players left, game ended', 'finished': True}
    return {'success': True, 'message': 'Player left game'}


# --- Rooms ---
def list_rooms(include_inactive=False):
    """Rooms by stake. Players only see active rooms."""
    where = "" if include_inactive else "WHERE r.status = 'active'"
    with db.cursor() as cur:
        cur.execute(
            f"""
            SELECT r.room_id, r.name, r.stake, r.status,
                COALESCE((
                    SELECT cardinality(g.players) FROM games g
                    WHERE g.room_id = r.room_id
                      AND g.status IN ('waiting', 'waiting_for_players', 'countdown', 'active')
                    ORDER BY g.created_at DESC LIMIT 1
                ), 0) AS current_players
            FROM rooms r
            {where}
            ORDER BY r.stake ASC
            """
        )
        return cur.fetchall()


def get_room(room_id):
    with db.cursor() as cur:
        cur.execute("SELECT * FROM rooms WHERE room_id = %s", (room_id,))
        room = cur.fetchone()
    if not room:
        raise NotFound(f"Room '{room_id}' not found")
    return room


def save_room(room_id, name=None, stake=None, status=None):
    if stake is not None and int(stake) <= 0:
        raise InvalidRequest("Stake must be positive")
    if status is not None and status not in ('active', 'inactive'):
        raise InvalidRequest("Status must be active or inactive")
    with db.cursor() as cur:
        cur.execute(
            """
            INSERT INTO rooms (room_id, name, stake, status)
            VALUES (%(room_id)s, COALESCE(%(name)s, %(room_id)s), %(stake)s, COALESCE(%(status)s, 'active'))
            ON CONFLICT (room_id) DO UPDATE SET
                name = COALESCE(%(name)s, rooms.name),
                stake = COALESCE(%(stake)s, rooms.stake),
                status = COALESCE(%(status)s, rooms.status)
            RETURNING *
            """,
            {'room_id': room_id, 'name': name, 'stake': stake, 'status': status}
        )
        return cur.fetchone()


# --- Joining ---
def _create_game(room, user_id):
    game_id = uuid.uuid4().hex
    with db.cursor() as cur:
        cur.execute(
            """
            INSERT INTO games (game_id, room_id, status, countdown_time, players, stake, prize_pool)
            VALUES (%s, %s, 'waiting', %s, %s, %s, 0)
            RETURNING *
            """,
            (game_id, room['room_id'], config.COUNTDOWN_SECONDS, [user_id], room['stake'])
        )
        return cur.fetchone()


def _cleanup_stale_for_user(user_id):
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT game_id FROM games
            WHERE %s = ANY(players) AND status IN ('waiting', 'waiting_for_players', 'countdown')
              AND created_at < CURRENT_TIMESTAMP - make_interval(mins => %s)
            """,
            (user_id, config.STUCK_GAME_MINUTES)
        )
        stale = [row['game_id'] for row in cur.fetchall()]
    for game_id in stale:
        finish_without_winner(game_id, 'stale')
    if stale:
        logger.info(f"Cleaned up user {user_id} from {len(stale)} stuck games")
    return len(stale)


def join_game(room_id, user_id):
    room = get_room(room_id)
    if room['status'] != 'active':
        raise InvalidRequest(f"Room '{room_id}' is closed")
    users.require_user(user_id)
    _cleanup_stale_for_user(user_id)

    with db.cursor() as cur:
        cur.execute(
            "SELECT * FROM games WHERE room_id = %s AND status = 'active' ORDER BY created_at DESC LIMIT 1",
            (room_id,)
        )
        running = cur.fetchone()
        cur.execute(
            """
            SELECT * FROM games WHERE room_id = %s AND status IN ('waiting', 'waiting_for_players', 'countdown')
            ORDER BY created_at DESC LIMIT 1
            """,
            (room_id,)
        )
        open_game = cur.fetchone()

    if running:
        if user_id in running['players']:
            logger.info(f"User {user_id} rejoining active game {running['game_id']} as player")
            action = 'already_joined_active'
        else:
            action = 'spectate'
        return {'success': True, 'action': action, 'game_id': running['game_id'], 'game': public_view(running)}

    if open_game is None:
        try:
            game = _create_game(room, user_id)
        except errors.UniqueViolation:
            logger.info(f"Race creating game in room {room_id}, joining the existing one")
            with db.cursor() as cur:
                cur.execute(
                    """
                    SELECT * FROM games WHERE room_id = %s
                      AND status IN ('waiting', 'waiting_for_players', 'countdown')
                    """,
                    (room_id,)
                )
                open_game = cur.fetchone()
            if open_game is None:
                raise Conflict("Game not found after join attempt")
        else:
            logger.info(f"Created new game {game['game_id']} in room {room_id}")
            return {'success': True, 'action': 'created', 'game_id': game['game_id'], 'game': public_view(game)}

    return _add_player(open_game['game_id'], user_id)


def _add_player(game_id, user_id):
    start_waiting = False
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if game['status'] not in OPEN_STATUSES:
            raise Conflict("Game already started", status=game['status'])
        updates = {}
        players = list(game['players'])
        if user_id in players:
            action = 'already_joined'
        else:
            action = 'joined'
            players.append(user_id)
            updates['players'] = players
        if len(players) >= config.MIN_PLAYERS and game['status'] == 'waiting':
            updates.update(status='waiting_for_players', countdown_time=config.WAITING_PERIOD_SECONDS,
                           waiting_started_at=_now())
            start_waiting = True
        if updates:
            _update_game(cur, game_id, updates)
            game.update(updates)

    if start_waiting or (game['status'] == 'waiting_for_players' and not timers.has_active(game_id)):
        timers.schedule(game_id, config.WAITING_PERIOD_SECONDS, _auto_start_countdown, game_id)
    logger.info(f"User {user_id} {action} game {game_id} ({len(game['players'])} players)")
    return {'success': True, 'action': action, 'game_id': game_id, 'game': public_view(game)}


def _auto_start_countdown(game_id):
    try:
        result = transition(game_id, 'start_countdown')
        logger.info(f"Waiting period over for game {game_id}: {result}")
    except Exception:
        logger.exception(f"Error starting countdown for game {game_id}")


# --- Staking and cards ---
def confirm_join(game_id, user_id):
    """Deduct the stake and deal the player's card. Safe to repeat."""
    users.require_user(user_id)
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if user_id not in (game['players'] or []):
            raise Forbidden("User is not a player in this game")
        if game['status'] not in OPEN_STATUSES:
            raise InvalidRequest("Game is not in a state that allows staking", status=game['status'])

        if _stake_paid(cur, game_id, user_id):
            cur.execute("SELECT card FROM player_cards WHERE game_id = %s AND user_id = %s", (game_id, user_id))
            row = cur.fetchone()
            return {'success': True, 'already_staked': True, 'card': row['card'] if row else None}

        stake = game['stake']
        cur.execute(
            "UPDATE users SET wallet = wallet - %s WHERE user_id = %s AND wallet >= %s RETURNING wallet",
            (stake, user_id, stake)
        )
        row = cur.fetchone()
        if row is None:
            raise InsufficientBalance(f"Insufficient balance for {stake} ETB stake")
        new_balance = row['wallet']
        cur.execute(
            """
            INSERT INTO transactions (tx_id, user_id, amount, transaction_type, status, game_id)
            VALUES (%s, %s, %s, 'stake', 'completed', %s)
            """,
            (generate_tx_id(user_id), user_id, -stake, game_id)
        )
        cur.execute("UPDATE games SET prize_pool = prize_pool + %s WHERE game_id = %s RETURNING prize_pool",
                    (stake, game_id))
        prize_pool = cur.fetchone()['prize_pool']

        cur.execute("SELECT card FROM player_cards WHERE game_id = %s", (game_id,))
        card = bingo.generate_card([r['card'] for r in cur.fetchall()])
        cur.execute(
            """
            INSERT INTO player_cards (game_id, user_id, card) VALUES (%s, %s, %s)
            ON CONFLICT (game_id, user_id) DO UPDATE SET card = EXCLUDED.card
            """,
            (game_id, user_id, Json(card))
        )
    logger.info(f"User {user_id} staked {stake} ETB in game {game_id}")
    return {'success': True, 'card': card, 'balance': new_balance, 'prize_pool': prize_pool}


def player_card(game_id, user_id):
    with db.cursor() as cur:
        cur.execute("SELECT card FROM player_cards WHERE game_id = %s AND user_id = %s", (game_id, user_id))
        row = cur.fetchone()
    if not row:
        raise NotFound("Player card not found")
    return row['card']


# --- Leaving ---
def leave_game(game_id, user_id):
    clear_timer = False
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if game['status'] == 'finished':
            return {'success': True, 'message': 'Game already finished'}
        if user_id not in game['players']:
            return {'success': True, 'message': 'Player not in game'}

        if game['status'] in STAKE_REFUNDABLE:
            remaining = [p for p in game['players'] if p != user_id]
            updates = {'players': remaining}
            tx_id = _stake_paid(cur, game_id, user_id)
            if tx_id:
                _refund_stake(cur, game, user_id, tx_id)
                updates['prize_pool'] = max(0, game['prize_pool'] - game['stake'])
                cur.execute("DELETE FROM player_cards WHERE game_id = %s AND user_id = %s", (game_id, user_id))
            if game['status'] == 'waiting_for_players' and len(remaining) < config.MIN_PLAYERS:
                updates.update(status='waiting', countdown_time=config.COUNTDOWN_SECONDS, waiting_started_at=None)
                clear_timer = True
            _update_game(cur, game_id, updates)
            if not remaining:
                _finish(cur, game, 'abandoned')
                clear_timer = True
                result = {'success': True, 'message': 'All players left, game ended'}
            else:
                result = {'success': True, 'message': 'Player left game', 'refunded': bool(tx_id)}
        else:
            result = _drop_running_player(cur, game, user_id, 'opponent_left')
            clear_timer = result.get('finished', False)

    if clear_timer:
        timers.clear(game_id)
    if result.get('auto_win'):
        notify.notify_game_result(game['players'], result['winner_id'], result['prize'])
    logger.info(f"Player {user_id} left game {game_id}: {result['message']}")
    return result


# --- Transitions ---
def transition(game_id, action):
    if action not in TRANSITIONS:
        raise InvalidRequest(f"Unknown action: {action}")
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        status = game['status']

        if action == 'start_countdown':
            if status not in STAKE_REFUNDABLE:
                return {'success': False, 'message': f"Cannot start countdown from status: {status}",
                        'current_status': status}
            if len(game['players']) < config.MIN_PLAYERS:
                return {'success': False, 'message': 'Not enough players', 'current_status': status}
            _update_game(cur, game_id, {'status': 'countdown', 'countdown_time': config.COUNTDOWN_SECONDS,
                                        'countdown_started_at': _now()})
            result = {'success': True, 'new_status': 'countdown'}

        elif action == 'start_game':
            if status != 'countdown':
                return {'success': False, 'message': f"Cannot start game from status: {status}",
                        'current_status': status}
            updates = _start_updates(_now())
            _update_game(cur, game_id, updates)
            _count_games_played(cur, game_id)
            result = {'success': True, 'new_status': 'active', 'sequence_hash': updates['number_sequence_hash']}

        else:
            new_time = max(0, (game['countdown_time'] or 0) - 1)
            _update_game(cur, game_id, {'countdown_time': new_time})
            result = {'success': True, 'countdown_time': new_time}

    if action == 'start_countdown':
        timers.clear(game_id)
    logger.info(f"Game transition {game_id} -> {action}: {result}")
    return result


def tick(game_id):
    """Advance ``game_id`` by one step; concurrent ticks on a locked game skip."""
    with db.cursor() as cur:
        game = _lock_game(cur, game_id, skip_locked=True)
        if not game:
            return {'success': True, 'action': 'skip', 'message': 'Game locked or not found'}
        action, updates = plan_tick(game)
        if updates:
            _update_game(cur, game_id, updates)
        if action == 'start':
            _count_games_played(cur, game_id)
        elif action == 'timeout':
            _refund_all_stakes(cur, game)
            _finish(cur, game, 'timeout')

    if action == 'countdown':
        return {'success': True, 'action': action, 'countdown_time': updates['countdown_time'],
                'message': f"Countdown: {updates['countdown_time']}"}
    if action == 'start':
        logger.info(f"Game {game_id} started with hash: {updates['number_sequence_hash'][:16]}...")
        return {'success': True, 'action': action, 'message': 'Game started!',
                'sequence_hash': updates['number_sequence_hash']}
    if action == 'call_number':
        number = updates['latest_number']
        total = len(updates['called_numbers'])
        latest = {'letter': bingo.letter_for(number), 'number': number}
        logger.info(f"[{total}/{bingo.MAX_NUMBER}] Called {latest['letter']}{number} for game {game_id}")
        return {'success': True, 'action': action, 'latest_number': latest, 'total_called': total,
                'message': f"Called {latest['letter']}{number}"}
    if action == 'all_numbers_called':
        if timers.schedule(game_id, config.GRACE_PERIOD_SECONDS, finish_without_winner, game_id, 'no_winner'):
            logger.info(f"Game {game_id} - all numbers called, waiting {config.GRACE_PERIOD_SECONDS}s for claims")
        return {'success': True, 'action': action,
                'message': 'All 75 numbers called, waiting for bingo claims...'}
    if action == 'timeout':
        timers.clear(game_id)
        logger.info(f"Game {game_id} exceeded max runtime, ended without winner")
        return {'success': True, 'action': action, 'message': 'Game exceeded max runtime'}
    if action == 'end':
        return {'success': True, 'action': action, 'message': 'Game has a winner'}
    if action == 'paused':
        return {'success': True, 'action': action, 'message': 'Game is paused'}
    return {'success': True, 'action': 'none', 'status': game['status'], 'message': f"Game is {game['status']}"}


# --- Claims ---
def claim_bingo(game_id, user_id):
    """Validate a claim against the stored card and pay the first valid claimant."""
    disqualified = None
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if game['status'] != 'active':
            raise InvalidRequest("Game is not active", status=game['status'])
        if game['winner_id']:
            raise Conflict("Game already has a winner", code="ALREADY_WON")
        if user_id not in game['players']:
            raise Forbidden("User is not a player in this game")
        cur.execute("SELECT card FROM player_cards WHERE game_id = %s AND user_id = %s", (game_id, user_id))
        row = cur.fetchone()
        if not row:
            raise NotFound("Player card not found")

        lines = bingo.winning_lines(bingo.validate_card(row['card']), game['called_numbers'])
        if lines:
            commission, net = _award(cur, game, user_id, 'bingo')
        else:
            cur.execute("UPDATE users SET invalid_bingo_count = invalid_bingo_count + 1 WHERE user_id = %s",
                        (user_id,))
            disqualified = _drop_running_player(cur, game, user_id, 'opponent_disqualified')

    if disqualified is not None:
        logger.info(f"User {user_id} disqualified from game {game_id} for a false bingo")
        if disqualified.get('auto_win'):
            timers.clear(game_id)
            notify.notify_game_result(game['players'], disqualified['winner_id'], disqualified['prize'])
        raise InvalidRequest("Not a valid bingo", code="FALSE_BINGO", disqualified=True)

    timers.clear(game_id)
    notify.notify_game_result(game['players'], user_id, net)
    return {'success': True, 'message': 'Bingo claimed successfully!', 'prize': net,
            'gross_prize': game['prize_pool'], 'commission': commission, 'lines': lines}


def finish_without_winner(game_id, reason='no_winner'):
    with db.cursor() as cur:
        game = _lock_game(cur, game_id)
        if not game or game['status'] == 'finished' or game['winner_id']:
            logger.info(f"Game {game_id} already finished")
            return False
        refunded = _refund_all_stakes(cur, game)
        _finish(cur, game, reason)
    logger.info(f"Game {game_id} finished - NO WINNER ({reason}, {refunded} stakes refunded)")
    if game['status'] == 'active':
        notify.notify_game_result(game['players'], None, 0)
    return True


def get_game(game_id, reveal=False):
    with db.cursor() as cur:
        cur.execute("SELECT * FROM games WHERE game_id = %s", (game_id,))
        game = cur.fetchone()
    if not game:
        raise NotFound("Game not found")
    return public_view(game, reveal=reveal)


def current_game(user_id):
    """The unfinished game ``user_id`` is seated in, or None."""
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT g.*, r.name AS room_name FROM games g LEFT JOIN rooms r ON r.room_id = g.room_id
            WHERE %s = ANY(g.players) AND g.status <> 'finished'
            ORDER BY g.created_at DESC LIMIT 1
            """,
            (user_id,)
        )
        game = cur.fetchone()
    return public_view(game) if game else None


def cleanup(user_id=None):
    """Remove ``user_id`` from open games, or finish every stale game."""
    with db.cursor() as cur:
        if user_id is not None:
            cur.execute(
                """
                SELECT game_id FROM games
                WHERE %s = ANY(players) AND status IN ('waiting', 'waiting_for_players', 'countdown')
                """,
                (user_id,)
            )
        else:
            cur.execute(
                """
                SELECT game_id FROM games
                WHERE (status IN ('waiting', 'waiting_for_players', 'countdown')
                       AND created_at < CURRENT_TIMESTAMP - make_interval(mins => %s))
                   OR (status = 'active' AND started_at < %s)
                """,
                (config.STUCK_GAME_MINUTES, _now() - timedelta(minutes=config.MAX_GAME_MINUTES))
            )
        game_ids = [row['game_id'] for row in cur.fetchall()]

    for game_id in game_ids:
        if user_id is not None:
            leave_game(game_id, user_id)
        else:
            finish_without_winner(game_id, 'stale')
            timers.clear(game_id)
    return len(game_ids)


# --- Admin operations ---
def live_games():
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT g.*, r.name AS room_name FROM games g LEFT JOIN rooms r ON r.room_id = g.room_id
            WHERE g.status <> 'finished' ORDER BY g.created_at DESC
            """
        )
        return [public_view(game) for game in cur.fetchall()]


def completed_games(limit=50):
    limit = max(1, min(int(limit), 200))
    with db.cursor() as cur:
        cur.execute(
            """
            SELECT g.*, r.name AS room_name, u.username AS winner_username
            FROM games g
            LEFT JOIN rooms r ON r.room_id = g.room_id
            LEFT JOIN users u ON u.user_id = g.winner_id
            WHERE g.status = 'finished' ORDER BY g.ended_at DESC NULLS LAST LIMIT %s
            """,
            (limit,)
        )
        return [public_view(game, reveal=True) for game in cur.fetchall()]


def force_end(game_id):
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if game['status'] == 'finished':
            raise Conflict("Game already finished")
        refunded = _refund_all_stakes(cur, game)
        _update_game(cur, game_id, {'is_paused': False})
        _finish(cur, game, 'admin_force_end')
    timers.clear(game_id)
    logger.info(f"Game {game_id} force-ended by admin ({refunded} stakes refunded)")
    return refunded


def set_paused(game_id, paused):
    with db.cursor() as cur:
        game = _require_game(cur, game_id)
        if game['status'] == 'finished':
            raise Conflict("Game already finished")
        _update_game(cur, game_id, {'is_paused': bool(paused)})
    logger.info(f"Game {game_id} {'paused' if paused else 'resumed'}")
