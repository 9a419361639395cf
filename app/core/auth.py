"""Client credential handling for the analytics API.

The API has no accounts of its own. Callers may forward their own Doma API
key, either as an ``x-doma-api-key`` header, a bearer token, or an ``apiKey``
field in the request body; otherwise the server's configured key is used,
and without any key the service runs in demo mode.
"""
from typing import Optional
from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.logging import get_logger

logger = get_logger(__name__)

# Optional bearer scheme: a missing Authorization header is not an error
security_optional = HTTPBearer(auto_error=False)


def mask_api_key(api_key: Optional[str]) -> str:
    """Render a key safe for logs: first and last four characters only."""
    if not api_key:
        return "none"
    if len(api_key) <= 8:
        return "****"
    return f"{api_key[:4]}...{api_key[-4:]}"


async def get_client_api_key(
    x_doma_api_key: Optional[str] = Header(default=None, alias="x-doma-api-key"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_optional),
) -> Optional[str]:
    """FastAPI dependency returning the Doma key forwarded by the caller, if any.

    The ``x-doma-api-key`` header wins over a bearer token.

    Example:
        >>> @router.get("/api/quick-score/{domain_name}")
        >>> async def quick(domain_name: str, api_key: Optional[str] = Depends(get_client_api_key)):
        ...     ...
    """
    if x_doma_api_key and x_doma_api_key.strip():
        return x_doma_api_key.strip()
    if credentials and credentials.credentials:
        return credentials.credentials.strip()
    return None


def resolve_api_key(header_key: Optional[str], body_key: Optional[str] = None) -> Optional[str]:
    """Combine header-supplied and body-supplied keys; headers take precedence."""
    key = header_key or (body_key.strip() if body_key else None) or None
    logger.debug(f"Client API key: {mask_api_key(key)}")
    return key
