"""Bingo card, number calling and win detection for 75-ball bingo.

Cards are 5x5, row-major, with the centre cell holding ``FREE``. Column
``c`` only ever holds numbers from ``COLUMNS[c]``.
"""
import hashlib
import logging
import secrets

from .errors import InvalidRequest

logger = logging.getLogger('api.bingo')

FREE = "FREE"
SIZE = 5
MAX_NUMBER = 75
MAX_CARD_ATTEMPTS = 100
LETTERS = "BINGO"
COLUMNS = [(1, 15), (16, 30), (31, 45), (46, 60), (61, 75)]


def letter_for(number):
    for letter, (low, high) in zip(LETTERS, COLUMNS):
        if low <= number <= high:
            return letter
    return ''


def shuffled(values):
    """Fisher-Yates shuffle driven by the OS CSPRNG."""
    result = list(values)
    for i in range(len(result) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        result[i], result[j] = result[j], result[i]
    return result


def card_hash(card):
    numbers = sorted(n for row in card for n in row if n != FREE)
    return ','.join(str(n) for n in numbers)


def _random_card():
    columns = []
    for col, (low, high) in enumerate(COLUMNS):
        picked = shuffled(range(low, high + 1))[:SIZE]
        if col == 2:
            picked[2] = FREE
        columns.append(picked)
    return [[columns[col][row] for col in range(SIZE)] for row in range(SIZE)]


def generate_card(existing=()):
    """Return a card whose number set differs from every card in ``existing``."""
    taken = {card_hash(card) for card in existing}
    for attempt in range(1, MAX_CARD_ATTEMPTS + 1):
        card = _random_card()
        if card_hash(card) not in taken:
            logger.debug(f"Generated unique bingo card (attempt {attempt})")
            return card
    logger.warning("Could not generate unique card after max attempts, returning non-unique card")
    return _random_card()


def generate_number_sequence():
    return shuffled(range(1, MAX_NUMBER + 1))


def sequence_hash(sequence):
    return hashlib.sha256(','.join(str(n) for n in sequence).encode()).hexdigest()


def next_number(sequence, called):
    called = set(called or ())
    for number in sequence:
        if number not in called:
            return number
    return None


def validate_card(card):
    if not isinstance(card, list) or len(card) != SIZE or any(
            not isinstance(row, list) or len(row) != SIZE for row in card):
        raise InvalidRequest("Card must be a 5x5 grid")
    seen = set()
    for r, row in enumerate(card):
        for c, value in enumerate(row):
            if (r, c) == (2, 2):
                if value != FREE:
                    raise InvalidRequest("Centre cell must be FREE")
                continue
            low, high = COLUMNS[c]
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                raise InvalidRequest(f"Invalid number {value!r} in column {LETTERS[c]}")
            if value in seen:
                raise InvalidRequest(f"Duplicate number {value} on card")
            seen.add(value)
    return card


def marked_cells(card, called):
    called = set(called or ())
    return [[value == FREE or value in called for value in row] for row in card]


def winning_lines(card, called):
    marked = marked_cells(card, called)
    lines = []
    for i in range(SIZE):
        if all(marked[i]):
            lines.append(f"row{i}")
    for j in range(SIZE):
        if all(row[j] for row in marked):
            lines.append(f"col{j}")
    if all(marked[i][i] for i in range(SIZE)):
        lines.append("diag")
    if all(marked[i][SIZE - 1 - i] for i in range(SIZE)):
        lines.append("anti_diag")
    return lines


def has_bingo(card, called):
    return bool(winning_lines(card, called))


def format_card(card):
    lines = ["  B    I    N    G    O", "─" * 24]
    for row in card:
        lines.append(' '.join(' ★ ' if n == FREE else str(n).rjust(3) for n in row))
    return '\n'.join(lines)
