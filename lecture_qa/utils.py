import time
import uuid
from datetime import datetime, timezone

# -------------------------------------------------------------- #
# Generators
# -------------------------------------------------------------- #


def generate_variable_char_uuid(length: int) -> str:
    """Generate a unique identifier of specified length."""
    if length <= 0 or length > 32:
        raise ValueError("Length must be between 1 and 32")
    return uuid.uuid4().hex[:length]


def generate_16_char_uuid() -> str:
    """Generate a unique 16-character identifier."""
    return generate_variable_char_uuid(16)


# -------------------------------------------------------------- #
# Util Functions
# -------------------------------------------------------------- #


def get_current_timestamp_utc() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def truncate_for_log(text: str, limit: int = 50) -> str:
    """Shorten text for a single log line."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def sanitize_filename_part(value: str) -> str:
    """Keep only characters that are safe inside a file name."""
    cleaned = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in value)
    return cleaned or "anonymous"
