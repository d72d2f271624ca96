from datetime import datetime, timezone

def parse_iso(value):
    """
    Parse an ISO-8601 timestamp into naive UTC (the storage convention).
    Offsets are converted, naive input is taken as UTC. Returns None when
    the value is missing or unparseable.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
