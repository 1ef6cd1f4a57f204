"""Security headers applied to every posauth response."""

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Auth responses carry tokens and profiles; nothing may be cached or framed
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS_VALUE = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Middleware to add security headers to all responses."""

    def __init__(self, app, docs_enabled: bool = False):
        super().__init__(app)
        self.docs_enabled = docs_enabled

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value

        # Swagger UI needs scripts and styles from its CDN
        if self.docs_enabled and request.url.path in ("/docs", "/redoc"):
            del response.headers["Content-Security-Policy"]

        forwarded_proto = request.headers.get("x-forwarded-proto", "")
        if forwarded_proto == "https" or request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = HSTS_VALUE

        return response
