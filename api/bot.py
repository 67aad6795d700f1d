import asyncio
import logging

import click
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded

from telegram import (
    Update, WebAppInfo, InlineKeyboardButton, InlineKeyboardMarkup,
    KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove
)
from telegram.ext import (
    ApplicationBuilder, CommandHandler, MessageHandler, CallbackQueryHandler,
    ContextTypes, filters
)
from telegram.error import TelegramError
from telegram.helpers import escape_markdown

from werkzeug.exceptions import HTTPException

from . import admin as admin_service, bingo, config, db, games, ratelimit, users, wallet
from .admin_routes import bp as admin_bp
from .errors import BingoError, NotFound, RateLimited
from .routes import bp as player_bp

# --- Logging ---
config.configure_logging()
logger = logging.getLogger('api.bot')

BACK_BUTTON_TEXT = "🔙 Back"
MAX_PENDING_SHOWN = 10

# --- Telegram Bot Logic ---
application = None  # Built by setup_bot()


def back_markup(target='back_to_menu'):
    return InlineKeyboardMarkup([[InlineKeyboardButton(BACK_BUTTON_TEXT, callback_data=target)]])


def play_url(user_id):
    separator = '&' if '?' in config.WEB_APP_URL else '?'
    return f"{config.WEB_APP_URL}{separator}user_id={user_id}"


def main_menu_keyboard(user_id):
    keyboard = []
    if users.is_registered(user_id):
        keyboard.extend([
            [InlineKeyboardButton("🎮 Play", callback_data='play')],
            [InlineKeyboardButton("💰 Check Balance", callback_data='check_balance')],
            [InlineKeyboardButton("🏆 Leaderboard", callback_data='leaderboard')],
            [InlineKeyboardButton("💳 Deposit", callback_data='deposit')],
            [InlineKeyboardButton("👥 Invite Friends", callback_data='invite')],
            [InlineKeyboardButton("📖 Instructions", callback_data='instructions')],
            [InlineKeyboardButton("🛟 Contact Support", callback_data='support')]
        ])
    else:
        keyboard.extend([
            [InlineKeyboardButton("📝 Register", callback_data='register')],
            [InlineKeyboardButton("📖 Instructions", callback_data='instructions')],
            [InlineKeyboardButton("🛟 Contact Support", callback_data='support')]
        ])
    return InlineKeyboardMarkup(keyboard)


async def respond(update: Update, text, reply_markup=None, parse_mode=None):
    """Edit the message behind a button press, or reply to a command."""
    if update.callback_query:
        await update.callback_query.answer()
        await update.callback_query.edit_message_text(text=text, reply_markup=reply_markup, parse_mode=parse_mode)
    else:
        await update.message.reply_text(text, reply_markup=reply_markup, parse_mode=parse_mode)


async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user = update.effective_user
    if context.args and context.args[0].startswith('ref_'):
        context.user_data['referred_by'] = context.args[0][len('ref_'):]
        logger.info(f"User {user.id} arrived with referral code {context.user_data['referred_by']}")
    message = "🎉 Welcome to ዜቢ ቢንጎ! 🎉\n💰 Win prizes\n🎱 Play with friends!"
    await update.message.reply_text(
        text=message,
        reply_markup=main_menu_keyboard(user.id)
    )


# --- Registration ---
async def register(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    if users.is_registered(update.effective_user.id):
        await update.callback_query.edit_message_text(
            text="✅ You are already registered.",
            reply_markup=main_menu_keyboard(update.effective_user.id)
        )
        return
    # Reply keyboards cannot be attached to an edited message
    await update.effective_chat.send_message(
        text="ለመቀጠል ስልክ ቁጥሮን ያጋሩ!",
        reply_markup=ReplyKeyboardMarkup([
            [KeyboardButton("📲 Share Contact", request_contact=True)]
        ], resize_keyboard=True, one_time_keyboard=True)
    )


async def contact_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    contact = update.message.contact
    user = update.effective_user
    if contact.user_id != user.id:
        logger.warning(f"User {user.id} shared someone else's contact")
        await update.message.reply_text("❌ Please share your own contact using the button.")
        return
    context.user_data['phone'] = contact.phone_number
    context.user_data['name'] = contact.first_name or user.username
    context.user_data['awaiting_username'] = True
    await update.message.reply_text(
        "Please enter your desired username:",
        reply_markup=ReplyKeyboardRemove()
    )


async def username_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_id = update.effective_user.id
    username = update.message.text.strip()
    try:
        users.register_user(user_id, context.user_data.get('phone'), context.user_data.get('name'),
                            username, context.user_data.get('referred_by'))
    except BingoError as e:
        await update.message.reply_text(f"❌ {e.message}. Try again:")
        return

    context.user_data.pop('awaiting_username', None)
    context.user_data.pop('referred_by', None)
    message = f"🎉 Registration successful, {username}! {config.STARTING_BONUS} ETB credited."
    bonus = users.check_referral_bonus(user_id)
    if bonus > 0:
        message += f"\nYou earned {bonus} ETB for referrals!"
    await update.message.reply_text(message, reply_markup=main_menu_keyboard(user_id))


# --- Menu ---
async def instructions(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(
        text=(
            "📋 *የዜቢ ቢንጎ መመሪያዎች*\n\n"
            "🔹 *Getting started*\n"
            "1. Tap Register and share your phone number\n"
            "2. Deposit funds from the menu\n"
            "3. Open Play and pick a room by stake\n\n"
            "🎮 *Playing (5x5 card, numbers 1-75)*\n"
            "1. Confirming your seat pays the stake and deals your card\n"
            f"2. The game starts after a {config.COUNTDOWN_SECONDS} second countdown "
            f"once {config.MIN_PLAYERS} players have joined\n"
            "3. Numbers are called one at a time; the centre cell is free\n"
            "4. Complete a row, column or diagonal and press BINGO\n"
            "5. A false BINGO removes you from the game\n\n"
            "💰 *Prizes*\n"
            f"The winner takes the prize pool minus {config.COMMISSION_PERCENT}% commission. "
            "If nobody wins, stakes are refunded."
        ),
        reply_markup=back_markup(),
        parse_mode='Markdown'
    )


async def invite_friends(update: Update, context: ContextTypes.DEFAULT_TYPE):
    referral_code = users.ensure_referral_code(update.effective_user.id)
    invite_link = f"https://t.me/{context.bot.username}?start=ref_{referral_code}"
    message = (f"👥 Invite friends and earn {config.REFERRAL_BONUS} ETB for every "
               f"{config.REFERRAL_THRESHOLD} who join!\nYour link: {invite_link}")
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(text=message, reply_markup=back_markup())


async def contact_support(update: Update, context: ContextTypes.DEFAULT_TYPE):
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(
        text=f"🛟 Contact Support\n\nFor help, contact {config.SUPPORT_HANDLE}\nAvailable 24/7!",
        reply_markup=back_markup()
    )


async def check_balance(update: Update, context: ContextTypes.DEFAULT_TYPE):
    balance = users.balance(update.effective_user.id)
    await respond(update, f"💰 Your balance: {balance} ETB", back_markup())


async def show_leaderboard(update: Update, context: ContextTypes.DEFAULT_TYPE):
    leaderboard_text = "🏆 Top 10 Players:\n"
    for row in users.leaderboard(10):
        leaderboard_text += (f"{row['rank']}. {row['username']} - {row['games_won']} wins, "
                             f"{row['total_winnings']} ETB won\n")
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(text=leaderboard_text, reply_markup=back_markup())


async def play(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_id = update.effective_user.id
    if not users.is_registered(user_id):
        await respond(update, "📝 Please register first.", main_menu_keyboard(user_id))
        return
    if not config.WEB_APP_URL:
        await respond(update, "🚧 The game is not available right now.", back_markup())
        return
    await respond(update, "🎮 Tap below to open the game:", InlineKeyboardMarkup([
        [InlineKeyboardButton("🎮 Play Bingo", web_app=WebAppInfo(url=play_url(user_id)))],
        [InlineKeyboardButton(BACK_BUTTON_TEXT, callback_data='back_to_menu')]
    ]))


async def game_status(update: Update, context: ContextTypes.DEFAULT_TYPE):
    game = games.current_game(update.effective_user.id)
    if not game:
        await update.message.reply_text("🎱 You are not in a game right now. Use /play to join one.")
        return
    lines = [
        f"🎱 {escape_markdown(game.get('room_name') or game['room_id'])} ({game['stake']} ETB)",
        f"Status: {game['status'].replace('_', ' ')}",
        f"Players: {game['player_count']}",
        f"Prize pool: {game['prize_pool']} ETB",
    ]
    if game['status'] == 'countdown':
        lines.append(f"Starting in {game['countdown_time']}s")
    if game['latest_number']:
        latest = game['latest_number']
        lines.append(f"Last call: {latest['letter']}{latest['number']} "
                     f"({len(game['called_numbers'] or [])}/75)")
    try:
        card = games.player_card(game['game_id'], update.effective_user.id)
        lines.append(f"\n```\n{bingo.format_card(card)}\n```")
    except NotFound:
        lines.append("\nConfirm your stake in the game to get a card.")
    await update.message.reply_text("\n".join(lines), parse_mode='Markdown')


# --- Deposits ---
async def deposit(update: Update, context: ContextTypes.DEFAULT_TYPE):
    context.user_data['awaiting_deposit'] = True
    context.user_data.pop('deposit_amount', None)
    context.user_data.pop('deposit_method', None)
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(
        text=f"💳 Please enter the deposit amount (ETB, minimum {config.MINIMUM_DEPOSIT}):",
        reply_markup=back_markup()
    )


async def process_deposit_amount(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_id = update.effective_user.id
    amount_text = update.message.text.strip()
    if not amount_text.isdigit() or int(amount_text) <= 0:
        await update.message.reply_text("⚠️ Please enter a valid positive number for the deposit amount.")
        return  # Do not pop here, let them try again

    amount = int(amount_text)
    if amount < config.MINIMUM_DEPOSIT:
        await update.message.reply_text(f"⚠️ Minimum deposit is {config.MINIMUM_DEPOSIT} ETB")
        return

    context.user_data['deposit_amount'] = amount
    context.user_data.pop('awaiting_deposit', None)
    logger.info(f"User {user_id} entered deposit amount: {amount} ETB")
    await show_payment_options(update, context)


async def show_payment_options(update: Update, context: ContextTypes.DEFAULT_TYPE):
    amount = context.user_data['deposit_amount']
    keyboard = InlineKeyboardMarkup([
        [InlineKeyboardButton("Telebirr", callback_data="payment_telebirr")],
        [InlineKeyboardButton("CBE", callback_data="payment_cbe")],
        [InlineKeyboardButton(BACK_BUTTON_TEXT, callback_data='back_to_menu')]
    ])
    await update.message.reply_text(
        f"💳 Select payment method for {amount} ETB:",
        reply_markup=keyboard
    )


def payment_details(method, amount):
    if method == 'telebirr':
        return (
            "📋 Telebirr Payment Instructions:\n"
            f"Amount: {amount} ETB\n"
            f"Account: {config.TELEBIRR_ACCOUNT}\n\n"
            "1. Open the Telebirr App\n"
            "2. Select 'Send Money'\n"
            f"3. Enter the account number: {config.TELEBIRR_ACCOUNT}\n"
            f"4. Enter the exact amount: {amount} Birr\n"
            "5. Complete the transaction\n"
            "6. Send the transaction confirmation code here"
        )
    return (
        "📋 CBE Payment Details:\n"
        f"Amount: {amount} ETB\n"
        f"Account: {config.CBE_ACCOUNT}\n"
        f"Name: {config.CBE_ACCOUNT_NAME}\n\n"
        f"1. ከላይ ባለው የኢትዮጵያ ንግድ ባንክ አካውንት {amount} ብር ያስገቡ\n"
        "2. Send exactly the amount entered here\n"
        "3. Paste the full SMS you receive from CBE, or the transaction number, here"
    )


async def handle_payment_method(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    user_id = query.from_user.id
    await query.answer()

    if 'deposit_amount' not in context.user_data:
        logger.warning(f"User {user_id} selected payment without amount")
        await query.edit_message_text("⚠️ Deposit session expired. Please start over.", reply_markup=back_markup())
        return

    method = query.data.split('_', 1)[1].lower()
    amount = context.user_data['deposit_amount']
    context.user_data['deposit_method'] = method
    context.user_data['awaiting_reference'] = True
    logger.info(f"User {user_id} selected {method} payment for {amount} ETB")
    await query.edit_message_text(
        f"✅ Payment method selected\n\n{payment_details(method, amount)}",
        reply_markup=back_markup()
    )


async def process_deposit_reference(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_id = update.effective_user.id
    amount = context.user_data.get('deposit_amount')
    method = context.user_data.get('deposit_method')
    try:
        result = wallet.request_deposit(user_id, amount, method, update.message.text.strip())
    except BingoError as e:
        await update.message.reply_text(f"❌ {e.message}", reply_markup=back_markup())
        return
    finally:
        for key in ('awaiting_reference', 'deposit_amount', 'deposit_method'):
            context.user_data.pop(key, None)
    await update.message.reply_text(
        f"✅ Deposit request {result['tx_id']} for {result['amount']} ETB submitted.\n"
        "Your balance will be updated once an admin verifies the payment.",
        reply_markup=back_markup()
    )


# --- Admin ---
def admin_panel_markup():
    return InlineKeyboardMarkup([
        [InlineKeyboardButton("📊 Stats", callback_data="admin_stats")],
        [InlineKeyboardButton("✅ Verify Payments", callback_data="admin_verify")],
        [InlineKeyboardButton("💸 Manage Withdrawals", callback_data="admin_withdrawals")],
        [InlineKeyboardButton("📢 Broadcast", callback_data="admin_broadcast")]
    ])


async def admin(update: Update, context: ContextTypes.DEFAULT_TYPE):
    if update.effective_user.id not in config.ADMIN_IDS:
        return
    await respond(update, "🛠 Admin Panel", admin_panel_markup())


async def admin_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    query = update.callback_query
    user_id = update.effective_user.id
    await query.answer()

    if user_id not in config.ADMIN_IDS:
        logger.warning(f"Unauthorized admin access attempt by {user_id}")
        await query.edit_message_text("⛔ Unauthorized access.")
        return

    action = query.data.split('_', 1)[1]
    if action == "stats":
        stats = admin_service.stats()
        await query.edit_message_text(
            "📊 Stats\n\n"
            f"Users: {stats['users']}\n"
            f"Live games: {stats['live_games']}\n"
            f"Finished games: {stats['finished_games']}\n"
            f"Commission earned: {stats['commission']} ETB\n"
            f"Pending deposits: {stats['pending_deposits']}\n"
            f"Pending withdrawals: {stats['pending_withdrawals']}",
            reply_markup=back_markup('admin')
        )
    elif action == "verify":
        pending_txs = wallet.pending_deposits()
        if not pending_txs:
            await query.edit_message_text("✅ No pending deposits.", reply_markup=back_markup('admin'))
            return
        lines = [f"📋 Pending Deposits ({len(pending_txs)}):"]
        keyboard = []
        for tx in pending_txs[:MAX_PENDING_SHOWN]:
            lines.append(f"{tx['tx_id']}: {tx['username']} {tx['amount']} ETB via {tx['method']}, ref {tx['reference']}")
            keyboard.append([InlineKeyboardButton(f"✅ {tx['tx_id']}", callback_data=f"approve_deposit_{tx['tx_id']}"),
                             InlineKeyboardButton("❌ Reject", callback_data=f"reject_deposit_{tx['tx_id']}")])
        keyboard.append([InlineKeyboardButton(BACK_BUTTON_TEXT, callback_data='admin')])
        await query.edit_message_text("\n".join(lines), reply_markup=InlineKeyboardMarkup(keyboard))
    elif action == "withdrawals":
        pending = wallet.list_withdrawals('pending')
        if not pending:
            await query.edit_message_text("✅ No pending withdrawals.", reply_markup=back_markup('admin'))
            return
        lines = [f"💸 Pending Withdrawals ({len(pending)}):"]
        keyboard = []
        for w in pending[:MAX_PENDING_SHOWN]:
            lines.append(f"{w['withdraw_id']}: {w['username']} {w['amount']} ETB -> "
                         f"{w['method']} {w['account_number']} ({w['account_holder']})")
            keyboard.append([
                InlineKeyboardButton(f"✅ {w['withdraw_id']}", callback_data=f"approve_withdrawal_{w['withdraw_id']}"),
                InlineKeyboardButton("❌ Reject", callback_data=f"reject_withdrawal_{w['withdraw_id']}")
            ])
        keyboard.append([InlineKeyboardButton(BACK_BUTTON_TEXT, callback_data='admin')])
        await query.edit_message_text("\n".join(lines), reply_markup=InlineKeyboardMarkup(keyboard))
    elif action == "broadcast":
        context.user_data['awaiting_broadcast'] = True
        await query.edit_message_text("📢 Send the message to broadcast:", reply_markup=back_markup('admin'))


async def review_callback(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Approve or reject a deposit or withdrawal from its inline buttons."""
    query = update.callback_query
    user_id = update.effective_user.id
    await query.answer()
    if user_id not in config.ADMIN_IDS:
        logger.warning(f"Unauthorized review attempt by {user_id}")
        return

    decision, kind, ref = query.data.split('_', 2)
    approve = decision == 'approve'
    try:
        if kind == 'deposit':
            result = wallet.review_deposit(ref, approve)
            text = f"{'✅' if approve else '❌'} Deposit {ref} ({result['amount']} ETB) {result['status']}."
        else:
            result = wallet.review_withdrawal(ref, approve)
            text = f"{'✅' if approve else '❌'} Withdrawal {ref} {result['status']}."
    except BingoError as e:
        text = f"⚠️ {ref}: {e.message}"
    logger.info(f"Admin {user_id} reviewed {kind} {ref}: {decision}")
    await query.edit_message_text(text, reply_markup=back_markup('admin'))


async def process_admin_input(update: Update, context: ContextTypes.DEFAULT_TYPE):
    text = update.message.text
    user_ids = users.all_user_ids()
    success = 0
    try:
        for uid in user_ids:
            try:
                await context.bot.send_message(chat_id=uid, text=f"📢 Announcement:\n\n{text}")
                success += 1
            except TelegramError as e:
                logger.warning(f"Failed to send to user {uid}: {e}")
    finally:
        context.user_data.pop('awaiting_broadcast', None)

    logger.info(f"Admin {update.effective_user.id} broadcast to {success}/{len(user_ids)} users")
    await update.message.reply_text(
        f"📢 Broadcast sent to {success}/{len(user_ids)} users.",
        reply_markup=back_markup('admin')
    )


async def text_handler(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Route free text to whichever conversation step is waiting for it."""
    user_data = context.user_data
    if 'awaiting_broadcast' in user_data and update.effective_user.id in config.ADMIN_IDS:
        await process_admin_input(update, context)
    elif 'awaiting_username' in user_data:
        await username_handler(update, context)
    elif 'awaiting_deposit' in user_data:
        await process_deposit_amount(update, context)
    elif 'awaiting_reference' in user_data:
        await process_deposit_reference(update, context)


async def back_to_menu(update: Update, context: ContextTypes.DEFAULT_TYPE):
    for key in ('awaiting_deposit', 'awaiting_reference', 'awaiting_broadcast'):
        context.user_data.pop(key, None)
    await update.callback_query.answer()
    await update.callback_query.edit_message_text(
        text="🎉 Welcome back to ዜቢ ቢንጎ!",
        reply_markup=main_menu_keyboard(update.effective_user.id)
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error(f"Update {update} caused error {context.error}", exc_info=context.error)
    try:
        if isinstance(update, Update) and update.effective_chat:
            await context.bot.send_message(
                chat_id=update.effective_chat.id,
                text="❌ Error occurred. Please try again or contact support."
            )
    except TelegramError as e:
        logger.error(f"Error in error_handler: {str(e)}", exc_info=True)


def setup_bot():
    global application
    config.require("TOKEN")
    application = ApplicationBuilder().token(config.TOKEN).build()
    # Register handlers
    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("balance", check_balance))
    application.add_handler(CommandHandler("play", play))
    application.add_handler(CommandHandler("status", game_status))
    application.add_handler(CommandHandler("admin", admin))
    application.add_handler(CallbackQueryHandler(register, pattern='^register$'))
    application.add_handler(CallbackQueryHandler(play, pattern='^play$'))
    application.add_handler(CallbackQueryHandler(instructions, pattern='^instructions$'))
    application.add_handler(CallbackQueryHandler(invite_friends, pattern='^invite$'))
    application.add_handler(CallbackQueryHandler(contact_support, pattern='^support$'))
    application.add_handler(CallbackQueryHandler(check_balance, pattern='^check_balance$'))
    application.add_handler(CallbackQueryHandler(show_leaderboard, pattern='^leaderboard$'))
    application.add_handler(CallbackQueryHandler(deposit, pattern='^deposit$'))
    application.add_handler(CallbackQueryHandler(handle_payment_method, pattern='^payment_'))
    application.add_handler(CallbackQueryHandler(admin, pattern='^admin$'))
    application.add_handler(CallbackQueryHandler(admin_handler, pattern='^admin_'))
    application.add_handler(CallbackQueryHandler(review_callback, pattern='^(approve|reject)_(deposit|withdrawal)_'))
    application.add_handler(CallbackQueryHandler(back_to_menu, pattern='^back_to_menu$'))
    application.add_handler(MessageHandler(filters.CONTACT, contact_handler))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_handler), group=1)
    application.add_error_handler(error_handler)
    return application


async def process_update(data):
    async with application:
        await application.process_update(Update.de_json(data, application.bot))


# --- Flask App for Vercel ---
def create_app():
    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS, supports_credentials=config.CORS_ORIGINS != '*')
    ratelimit.limiter.init_app(app)
    app.register_blueprint(player_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(BingoError)
    def handle_bingo_error(e):
        response = jsonify(e.to_dict())
        if e.status == 429:
            response.headers['Retry-After'] = str(e.retry_after)
        return response, e.status

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(e):
        return handle_bingo_error(RateLimited("Too many attempts, try again later",
                                              retry_after=ratelimit.retry_after()))

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.error(f"Unhandled error on {request.path}: {e}", exc_info=True)
        return jsonify({'error': 'Internal server error'}), 500

    @app.route('/api/webhook', methods=['GET', 'POST'])
    def webhook():
        """Telegram webhook endpoint for Vercel"""
        if request.method == 'GET':
            return jsonify({'status': 'ok', 'bot_configured': application is not None})
        if application is None:
            return jsonify({'error': 'Bot not configured'}), 503
        if config.WEBHOOK_SECRET and \
                request.headers.get('X-Telegram-Bot-Api-Secret-Token') != config.WEBHOOK_SECRET:
            logger.warning(f"Rejected webhook call from {request.remote_addr}")
            return jsonify({'error': 'Unauthorized'}), 401
        asyncio.run(process_update(request.get_json(force=True)))
        return jsonify({'status': 'ok'})

    @app.cli.command('init-db')
    def init_db_command():
        db.init_db()
        click.echo("Database ready")

    @app.cli.command('create-admin')
    @click.argument('username')
    @click.option('--email', default=None)
    @click.option('--role', default='admin')
    @click.password_option()
    def create_admin_command(username, email, role, password):
        admin_id = admin_service.create_admin(username, password, email=email, role=role)
        click.echo(f"Created admin {username} (id {admin_id})")

    return app


app = create_app()

# Initialize DB and Bot on cold start
if config.DATABASE_URL:
    db.init_db()
if config.TOKEN:
    setup_bot()
