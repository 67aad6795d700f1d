"""Outgoing Telegram messages sent from HTTP handlers.

Route handlers run outside the bot's event loop, so they talk to the Bot API
directly over HTTP. Failures are logged and reported, never raised.
"""
import logging

import requests

from . import config

logger = logging.getLogger('api.notify')

API_URL = "https://api.telegram.org/bot{token}/{method}"


def send_message(chat_id, text, reply_markup=None, parse_mode=None, timeout=10):
    if not config.TOKEN or not chat_id:
        return {'ok': False, 'error': 'bot not configured'}

    payload = {'chat_id': chat_id, 'text': text}
    if parse_mode:
        payload['parse_mode'] = parse_mode
    if reply_markup:
        payload['reply_markup'] = reply_markup

    try:
        response = requests.post(API_URL.format(token=config.TOKEN, method='sendMessage'),
                                 json=payload, timeout=timeout)
        result = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Failed to send message to {chat_id}: {e}")
        return {'ok': False, 'error': str(e)}

    if not result.get('ok'):
        logger.warning(f"Telegram rejected message to {chat_id}: {result.get('description')}")
    return result


def notify_admins(text, reply_markup=None):
    return send_message(config.ADMIN_CHAT_ID, text, reply_markup=reply_markup)


def deposit_review_markup(tx_id):
    return {'inline_keyboard': [[
        {'text': '✅ Approve', 'callback_data': f'approve_deposit_{tx_id}'},
        {'text': '❌ Reject', 'callback_data': f'reject_deposit_{tx_id}'},
    ]]}


def notify_game_result(players, winner_id, net_prize):
    for player in players:
        if player == winner_id:
            text = f"🎉 BINGO! You won {net_prize} ETB!"
        elif winner_id:
            text = "🎱 Game over. Better luck next round!"
        else:
            text = "🎱 Game over. No winner this round."
        send_message(player, text)
