import secrets
import string
import time

_ALPHABET = string.ascii_uppercase + string.digits


def _base36(number: int) -> str:
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    out = ""
    while number:
        number, remainder = divmod(number, 36)
        out = digits[remainder] + out
    return out or "0"


def random_token(length: int) -> str:
    """Return an uppercase alphanumeric token from a CSPRNG."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def now_ms() -> int:
    return time.time_ns() // 1_000_000


def generate_transaction_reference() -> str:
    """Opaque payment reference, e.g. ``TXN-1718000000000-K3J9QZ2M``."""
    return f"TXN-{now_ms()}-{random_token(8)}"


def generate_order_number() -> str:
    """Human-friendly order number, e.g. ``ORD-LX2K9A1B-7QF3ZP``."""
    return f"ORD-{_base36(now_ms())}-{random_token(6)}"


def generate_ticket_number() -> str:
    """Ticket number printed on admissions, e.g. ``TKT-LX2K9A1B-Q8W2E4R6``."""
    return f"TKT-{_base36(now_ms())}-{random_token(8)}"
