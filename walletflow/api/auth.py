from fastapi import Header, HTTPException
from walletflow.settings import settings


def require_api_key(x_api_key: str = Header(default="", alias="x-api-key")):
    """
    Optional guard for the local driver surface.
    - DRIVER_API_KEY empty: allow all requests.
    - DRIVER_API_KEY set: require a matching x-api-key header.
    """
    if not settings.DRIVER_API_KEY:
        return
    if x_api_key != settings.DRIVER_API_KEY:
        raise HTTPException(status_code=401, detail="Invalid API key")
