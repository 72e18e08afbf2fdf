import json
import time
from walletflow.settings import settings

# Never printed in clear when redaction is enabled
SENSITIVE_KEYS = {"pin", "token", "authorization", "credential", "password"}


def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    if isinstance(v, list):
        return [_redact_value(x) for x in v]
    return v


def _scrub(fields: dict) -> dict:
    clean = {}
    for k, v in fields.items():
        if str(k).lower() in SENSITIVE_KEYS:
            clean[k] = _redact_value(v)
        elif isinstance(v, dict):
            clean[k] = _scrub(v)
        elif isinstance(v, list):
            clean[k] = [_scrub(x) if isinstance(x, dict) else x for x in v]
        else:
            clean[k] = v
    return clean


def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}

    if settings.ENABLE_LOG_REDACTION:
        payload.update(_scrub(fields))
    else:
        payload.update(fields)

    print(json.dumps(payload, ensure_ascii=False, default=str))
