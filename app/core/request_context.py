from typing import Optional, Dict
from fastapi import Request

# Headers carrying request correlation and the acting user
HDR_REQUEST_ID = "X-Request-Id"
HDR_ACTOR_ID = "X-Actor-Id"


def get_request_context(request: Request) -> Dict[str, Optional[str]]:
    """Endpoint, client address, request id and raw actor id for access logging.

    The actor id is reported as sent; it is validated by the API dependencies.
    """
    return {
        "ip_address": request.client.host if request.client else None,
        "endpoint": f"{request.method} {request.url.path}",
        "request_id": request.headers.get(HDR_REQUEST_ID) or None,
        "actor_id": request.headers.get(HDR_ACTOR_ID) or None,
    }
