"""FastAPI authentication dependencies."""

from fastapi import HTTPException, Request


async def verify_api_key(request: Request) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The incoming FastAPI request (provides app.state).

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    provided_key = request.headers.get("X-Api-Key")
    if not provided_key or provided_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key.")


async def get_owner_id(request: Request) -> str:
    """Return the caller's user id from the X-Owner-Id header.

    User authentication happens in front of this service; the gateway
    forwards the authenticated user id in this header.

    Raises:
        HTTPException: 401 if the header is missing or blank.
    """
    owner_id = (request.headers.get("X-Owner-Id") or "").strip()
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing owner id.")
    return owner_id
