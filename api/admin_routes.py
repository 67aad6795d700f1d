"""Admin dashboard endpoints. Everything except login requires a session."""
import logging

from flask import Blueprint, g, jsonify, request

from . import admin, config, games, ratelimit, users, wallet
from .errors import InvalidRequest, missing_fields
from .routes import as_user_id, payload

logger = logging.getLogger('api.admin_routes')

bp = Blueprint('admin_api', __name__, url_prefix='/api/admin')


@bp.route('/login', methods=['POST'])
@ratelimit.limiter.limit(ratelimit.login_limit, key_func=ratelimit.login_key)
def login():
    data = payload()
    missing_fields(data, 'username', 'password')
    token, profile = admin.login(data['username'], data['password'],
                                 ratelimit.client_ip(request), request.headers.get('User-Agent', ''))
    response = jsonify({'success': True, 'sessionToken': token, 'admin': profile})
    response.set_cookie(admin.SESSION_COOKIE, token, max_age=config.ADMIN_SESSION_HOURS * 3600,
                        httponly=True, secure=request.is_secure, samesite='Lax')
    return response


@bp.route('/logout', methods=['POST'])
def logout():
    admin.logout(admin.request_token())
    response = jsonify({'success': True, 'message': 'Logged out successfully'})
    response.delete_cookie(admin.SESSION_COOKIE)
    return response


@bp.route('/me', methods=['GET'])
@admin.require_admin
def me():
    return jsonify({'success': True, 'admin': g.admin})


@bp.route('/stats', methods=['GET'])
@admin.require_admin
def stats():
    return jsonify(admin.stats())


@bp.route('/live-games', methods=['GET'])
@admin.require_admin
def live_games():
    return jsonify({'games': games.live_games()})


@bp.route('/completed-games', methods=['GET'])
@admin.require_admin
def completed_games():
    return jsonify({'games': games.completed_games(request.args.get('limit', 50, type=int))})


@bp.route('/games/force-end', methods=['POST'])
@admin.require_admin
def force_end():
    data = payload()
    missing_fields(data, 'gameId')
    refunded = games.force_end(data['gameId'])
    admin.audit(g.admin['id'], 'game_force_end', {'game_id': data['gameId'], 'refunded': refunded})
    return jsonify({'success': True, 'refunded': refunded})


@bp.route('/games/pause', methods=['POST'])
@admin.require_admin
def pause():
    data = payload()
    missing_fields(data, 'gameId')
    paused = bool(data.get('paused'))
    games.set_paused(data['gameId'], paused)
    admin.audit(g.admin['id'], 'game_pause' if paused else 'game_resume', {'game_id': data['gameId']})
    return jsonify({'success': True})


def _review_action(data):
    action = data.get('action')
    if action not in ('approve', 'reject'):
        raise InvalidRequest("Invalid action")
    return action == 'approve'


@bp.route('/withdrawals', methods=['GET', 'POST'])
@admin.require_admin
def withdrawals():
    if request.method == 'GET':
        return jsonify({'success': True, 'data': wallet.list_withdrawals(request.args.get('status', 'pending'))})
    data = payload()
    missing_fields(data, 'action', 'withdrawalId')
    result = wallet.review_withdrawal(data['withdrawalId'], _review_action(data), data.get('adminNote'))
    admin.audit(g.admin['id'], f"withdrawal_{data['action']}", {'withdrawal_id': data['withdrawalId']})
    return jsonify({'success': True, **result})


@bp.route('/deposits', methods=['GET', 'POST'])
@admin.require_admin
def deposits():
    if request.method == 'GET':
        return jsonify({'success': True, 'data': wallet.pending_deposits()})
    data = payload()
    missing_fields(data, 'action', 'txId')
    result = wallet.review_deposit(data['txId'], _review_action(data))
    admin.audit(g.admin['id'], f"deposit_{data['action']}", {'tx_id': data['txId']})
    return jsonify({'success': True, **result})


@bp.route('/users', methods=['GET'])
@admin.require_admin
def search_users():
    return jsonify({'users': users.search_users(request.args.get('q', ''))})


@bp.route('/users/suspension', methods=['POST'])
@admin.require_admin
def suspension():
    data = payload()
    missing_fields(data, 'userId')
    user_id = as_user_id(data['userId'])
    suspended = bool(data.get('suspended', True))
    users.set_suspended(user_id, suspended)
    admin.audit(g.admin['id'], 'user_suspend' if suspended else 'user_unsuspend', {'user_id': user_id})
    return jsonify({'success': True})


@bp.route('/wallet/adjust-balance', methods=['POST'])
@admin.require_admin
def adjust_balance():
    data = payload()
    missing_fields(data, 'userId', 'amount', 'reason')
    user_id = as_user_id(data['userId'])
    new_balance = wallet.adjust_balance(user_id, data['amount'], data['reason'])
    admin.audit(g.admin['id'], 'adjust_balance',
                {'user_id': user_id, 'amount': data['amount'], 'reason': data['reason']})
    return jsonify({'success': True, 'balance': new_balance})


@bp.route('/broadcast', methods=['POST'])
@admin.require_admin
def broadcast():
    data = payload()
    missing_fields(data, 'message')
    sent, total = admin.broadcast(data['message'])
    admin.audit(g.admin['id'], 'broadcast', {'sent': sent, 'total': total})
    return jsonify({'success': True, 'sent': sent, 'total': total})


@bp.route('/rooms', methods=['GET', 'POST'])
@admin.require_admin
def rooms():
    if request.method == 'GET':
        return jsonify({'rooms': games.list_rooms(include_inactive=True)})
    data = payload()
    missing_fields(data, 'roomId')
    room = games.save_room(data['roomId'], data.get('name'), data.get('stake'), data.get('status'))
    admin.audit(g.admin['id'], 'room_save', {'room_id': data['roomId']})
    return jsonify({'success': True, 'room': room})


@bp.route('/audit', methods=['GET'])
@admin.require_admin
def audit_log():
    return jsonify({'entries': admin.recent_audit(request.args.get('limit', 100, type=int))})
