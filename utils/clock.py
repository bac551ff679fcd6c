from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; every stored timestamp in this app is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
