"""ID generation for worklog items."""
import random
import time

DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
TIME_LENGTH = 9     # base36 milliseconds, good until the year 5188
RANDOM_LENGTH = 7   # base36 of 32 random bits
MAX_ATTEMPTS = 10


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(DIGITS[rem])
    return "".join(reversed(out))


def generate_id(prefix: str = "WL") -> str:
    """Generate a time-ordered ID like 'WL-0MB2Z7K1Q0F3A9XC'.

    Nine characters of millisecond timestamp keep IDs created later
    sorting later; seven random characters separate same-millisecond IDs.
    """
    time_part = to_base36(time.time_ns() // 1_000_000).rjust(TIME_LENGTH, "0")
    if len(time_part) > TIME_LENGTH:
        raise RuntimeError("Timestamp overflow while generating ID")
    random_part = to_base36(random.getrandbits(32)).rjust(RANDOM_LENGTH, "0")
    return f"{prefix}-{time_part}{random_part}"


def generate_unique_id(prefix: str, existing_ids: set[str]) -> str:
    """Generate ID that doesn't collide with existing."""
    for _ in range(MAX_ATTEMPTS):
        new_id = generate_id(prefix)
        if new_id not in existing_ids:
            return new_id
    raise RuntimeError(f"Failed to generate unique ID after {MAX_ATTEMPTS} attempts")
