"""Security headers middleware.

Learn: Adds standard security headers to every response. For a site
whose pages sit behind a session cookie these matter:
- X-Content-Type-Options: prevents MIME-type sniffing
- X-Frame-Options: the login form can't be framed (clickjacking)
- Referrer-Policy: the OAuth callback's ?code= never leaks via Referer
- Cache-Control on pages rendered for a signed-in user
- Strict-Transport-Security: forces HTTPS (only on HTTPS connections)
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    def __init__(self, app, session_cookie_name: str):
        super().__init__(app)
        self.session_cookie_name = session_cookie_name

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "same-origin"
        if self.session_cookie_name in request.cookies:
            response.headers.setdefault("Cache-Control", "no-store")
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response
