import hashlib
import hmac
import secrets

SALT_BYTES = 16
ITERATIONS = 100000
KEY_LENGTH = 64
ALGORITHM = 'sha512'


def _derive(password, salt):
    return hashlib.pbkdf2_hmac(ALGORITHM, password.encode(), salt.encode(), ITERATIONS, KEY_LENGTH).hex()


def hash_password(password):
    """Hash a password as ``salt:hash`` using PBKDF2-HMAC-SHA512."""
    salt = secrets.token_hex(SALT_BYTES)
    return f"{salt}:{_derive(password, salt)}"


def needs_rehash(stored):
    return ':' not in (stored or '')


def verify_password(password, stored):
    if not stored:
        return False
    # Accounts created before hashing store the plain password
    if needs_rehash(stored):
        return hmac.compare_digest(password.encode(), stored.encode())
    salt, expected = stored.split(':', 1)
    try:
        expected_bytes = bytes.fromhex(expected)
    except ValueError:
        return False
    return hmac.compare_digest(expected_bytes, bytes.fromhex(_derive(password, salt)))


def generate_token(nbytes=32):
    return secrets.token_hex(nbytes)


def hash_token(token):
    return hashlib.sha256(token.encode()).hexdigest()
