"""
Security headers middleware.

The service only ever returns JSON (scan images travel inline as data
URLs), so the policy is the strictest one that still lets API clients work.

Usage:
    from lotflow.middleware.security_headers import init_security_headers
    init_security_headers(app)
"""


def init_security_headers(app):
    """Register after_request handler that injects security headers."""

    @app.after_request
    def _add_security_headers(response):
        response.headers.setdefault(
            "Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'"
        )

        # Prevent MIME-type sniffing
        response.headers.setdefault("X-Content-Type-Options", "nosniff")

        # Clickjacking protection
        response.headers.setdefault("X-Frame-Options", "DENY")

        response.headers.setdefault(
            "Strict-Transport-Security", "max-age=31536000; includeSubDomains"
        )
        response.headers.setdefault("Referrer-Policy", "no-referrer")

        # Token-bearing responses must not be cached by intermediaries
        response.headers.setdefault("Cache-Control", "no-store")

        response.headers.pop("Server", None)

        return response
