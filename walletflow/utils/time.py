from datetime import datetime, timezone


def iso_from_epoch(epoch_sec: float) -> str:
    return datetime.fromtimestamp(float(epoch_sec), tz=timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp_ms(ts, default_ms: int = 0) -> int:
    """
    Normalize timestamps to epoch milliseconds (int).
    Accepts:
    - int/float: treated as epoch ms (or seconds if suspiciously small)
    - ISO-8601 string: parsed via datetime.fromisoformat (supports trailing 'Z')
    Fallback: default_ms.
    """
    try:
        if ts is None:
            return default_ms
        if isinstance(ts, bool):
            return default_ms
        if isinstance(ts, (int, float)):
            v = int(ts)
            # Heuristic: if looks like seconds (< 10^12), convert to ms.
            return v * 1000 if 0 < v < 10**12 else v
        if isinstance(ts, str):
            s = ts.strip()
            if not s:
                return default_ms
            if s.endswith("Z"):
                s = s[:-1] + "+00:00"
            dt = datetime.fromisoformat(s)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return int(dt.timestamp() * 1000)
    except (ValueError, OverflowError):
        pass
    return default_ms
