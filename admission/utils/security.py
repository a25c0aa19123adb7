import hashlib
import hmac
import secrets
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

ph = PasswordHasher(time_cost=3, memory_cost=65536, parallelism=4)

# No 0/O, 1/I/L: the password is read off an email or a phone screen.
PASSWORD_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(stored_hash: str, password: str) -> bool:
    try:
        return ph.verify(stored_hash, password)
    except VerifyMismatchError:
        return False


def generate_token() -> str:
    return secrets.token_hex(32)


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


def generate_password(length: int = 7) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def declaration_hash(secret: str, *parts: object, length: int = 16) -> str:
    """Keyed HMAC-SHA256 over ``parts`` joined with ``|``, shortened for display."""
    message = "|".join(str(p) for p in parts).encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return digest[:length].upper()


def generate_verification_code(digits: int = 6) -> str:
    """Numeric one-time code; never starts with 0 so it survives spreadsheets and phones."""
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))
