"""JSON endpoints used by the player mini-app."""
import logging

from flask import Blueprint, jsonify, request

from . import games, ratelimit, users, wallet
from .errors import InvalidRequest, missing_fields

logger = logging.getLogger('api.routes')

bp = Blueprint('player_api', __name__, url_prefix='/api')


def payload():
    return request.get_json(force=True, silent=True) or {}


def as_user_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidRequest("Valid userId is required")


@bp.route('/rooms', methods=['GET'])
def rooms():
    return jsonify({'rooms': games.list_rooms()})


@bp.route('/game/join', methods=['POST'])
def join():
    data = payload()
    missing_fields(data, 'roomId', 'userId')
    return jsonify(games.join_game(data['roomId'], as_user_id(data['userId'])))


@bp.route('/game/confirm-join', methods=['POST'])
def confirm_join():
    """Pay the stake for a joined game and receive the bingo card."""
    data = payload()
    missing_fields(data, 'gameId', 'userId')
    return jsonify(games.confirm_join(data['gameId'], as_user_id(data['userId'])))


@bp.route('/game/player-card', methods=['POST'])
def player_card():
    data = payload()
    missing_fields(data, 'gameId', 'userId')
    return jsonify({'card': games.player_card(data['gameId'], as_user_id(data['userId']))})


@bp.route('/game/leave', methods=['POST'])
def leave():
    data = payload()
    missing_fields(data, 'gameId', 'userId')
    return jsonify(games.leave_game(data['gameId'], as_user_id(data['userId'])))


@bp.route('/game/transition', methods=['POST'])
def transition():
    data = payload()
    missing_fields(data, 'gameId', 'action')
    return jsonify(games.transition(data['gameId'], data['action']))


@bp.route('/game/tick', methods=['POST'])
def tick():
    """Advance the game by one step; clients call this on an interval."""
    data = payload()
    missing_fields(data, 'gameId')
    return jsonify(games.tick(data['gameId']))


@bp.route('/game/claim-bingo', methods=['POST'])
def claim_bingo():
    data = payload()
    missing_fields(data, 'gameId', 'userId')
    return jsonify(games.claim_bingo(data['gameId'], as_user_id(data['userId'])))


@bp.route('/game/cleanup', methods=['POST'])
def cleanup():
    data = payload()
    user_id = as_user_id(data['userId']) if data.get('userId') else None
    count = games.cleanup(user_id)
    if user_id is None:
        return jsonify({'success': True, 'message': f"Cleaned up {count} old games"})
    return jsonify({'success': True, 'message': f"Removed user from {count} games"})


@bp.route('/games/<game_id>', methods=['GET'])
def game_state(game_id):
    return jsonify({'game': games.get_game(game_id)})


@bp.route('/wallet/deposit', methods=['POST'])
def deposit():
    data = payload()
    missing_fields(data, 'userId', 'amount')
    result = wallet.request_deposit(as_user_id(data['userId']), data['amount'],
                                    data.get('paymentMethod'), data.get('transactionRef'))
    return jsonify({'success': True, 'message': 'Deposit request submitted successfully', **result})


@bp.route('/wallet/withdraw', methods=['POST'])
def withdraw():
    data = payload()
    missing_fields(data, 'userId', 'amount', 'bankName', 'accountNumber', 'accountHolder')
    result = wallet.request_withdrawal(as_user_id(data['userId']), data['amount'], data['bankName'],
                                       data['accountNumber'], data['accountHolder'])
    return jsonify({'success': True, **result})


@bp.route('/wallet/history', methods=['GET'])
def wallet_history():
    user_id = as_user_id(request.args.get('user_id'))
    limit = request.args.get('limit', 20, type=int)
    return jsonify({'transactions': wallet.history(user_id, limit)})


@bp.route('/user_data', methods=['GET'])
def user_data():
    """Used by the webapp to query user data from the shared DB"""
    user_id = request.args.get('user_id')
    if not user_id or not user_id.isdigit():
        raise InvalidRequest("Valid user_id is required")
    return jsonify(users.user_data(int(user_id)))


@bp.route('/leaderboard', methods=['GET'])
def leaderboard():
    limit = request.args.get('limit', 10, type=int)
    return jsonify({'leaders': users.leaderboard(limit)})


@bp.route('/security/register-device', methods=['POST'])
def register_device():
    data = payload()
    missing_fields(data, 'userId', 'deviceHash')
    shared = users.register_device(as_user_id(data['userId']), data['deviceHash'], ratelimit.client_ip(request))
    return jsonify({'success': True, 'shared_accounts': shared})
