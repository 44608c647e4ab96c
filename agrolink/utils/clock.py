from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every table in the schema stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
