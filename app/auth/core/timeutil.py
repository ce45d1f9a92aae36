from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp; every DateTime column here is timezone=True."""
    return datetime.now(timezone.utc)
