"""
Framing proxy.

``GET /proxy?url=<absolute url>`` fetches a page on behalf of the browser,
drops the response headers that forbid embedding it (X-Frame-Options,
Content-Security-Policy and friends) and injects a ``<base>`` tag into HTML so
relative links keep resolving against the original site.

Example usage with curl:
    curl -i "http://localhost:3000/proxy?url=https%3A%2F%2Fexample.com"
"""

from .headers import DENIED_HEADERS, filter_headers
from .html_rewriter import origin_of, rewrite_html

__all__ = [
    "DENIED_HEADERS",
    "filter_headers",
    "origin_of",
    "rewrite_html",
]
