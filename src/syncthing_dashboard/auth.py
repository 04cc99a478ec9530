"""Bearer token authentication middleware for the HTTP surface."""

import hmac

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

PUBLIC_PATHS = ("/health",)


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Validate ``Authorization: Bearer <token>`` on every request.

    Requests without a valid token receive a 401 response.  Paths listed in
    ``public_paths`` (by default only ``/health``, for container health
    checks) pass through unauthenticated.
    """

    def __init__(self, app, token: str, public_paths: tuple[str, ...] = PUBLIC_PATHS) -> None:
        super().__init__(app)
        self.token = token
        self.public_paths = public_paths

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.public_paths:
            return await call_next(request)

        auth = request.headers.get("authorization", "")
        supplied = auth[7:] if auth.startswith("Bearer ") else ""
        if not supplied or not hmac.compare_digest(supplied, self.token):
            return JSONResponse(
                {"error": "Invalid or missing bearer token"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        return await call_next(request)
