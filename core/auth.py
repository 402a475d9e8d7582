import hmac
from typing import Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from core.config import logger
from core import config


def _extract_secret(request: Request) -> str:
    # Header takes precedence if provided
    h = (request.headers.get("X-Admin-Secret") or "").strip()
    if h:
        return h
    return (request.query_params.get("secret") or "").strip()


def require_admin(request: Request) -> Optional[JSONResponse]:
    """Returns an error response when the caller is not an admin, else None."""
    configured = config.ADMIN_SECRET
    if not configured:
        return JSONResponse({"error": "admin_not_configured"}, status_code=503)
    provided = _extract_secret(request)
    if not provided or not hmac.compare_digest(provided, configured):
        logger.warning(f"[auth] rejected admin request to {request.url.path}")
        return JSONResponse({"error": "unauthorized"}, status_code=401)
    return None
