import html
import re
from urllib.parse import urlsplit

DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}

# <head> or <head ...>, but not <header>
HEAD_TAG_PATTERN = re.compile(r"<head(?:\s[^>]*)?/?>", re.IGNORECASE)

PROVENANCE_META_NAME = "x-proxied-from"


def origin_of(url: str) -> str:
    """
    Scheme, host and non-default port of ``url``.

    Userinfo, path, query and fragment are dropped, which is what a
    ``<base href>`` needs to resolve root-relative and relative resources
    against the site that served the page.
    """
    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = parts.netloc.rpartition("@")[2]

    hostname, sep, port = host.rpartition(":")
    # An IPv6 literal without a port ends in "]"
    if sep and not port:
        # "host:" carries no port at all
        host = hostname
    elif sep and not port.endswith("]") and port.isdigit():
        if DEFAULT_PORTS.get(scheme) == int(port):
            host = hostname
        else:
            host = f"{hostname}:{int(port)}"

    return f"{scheme}://{host.lower()}"


def build_injection(target_url: str) -> str:
    origin = html.escape(origin_of(target_url), quote=True)
    source = html.escape(target_url, quote=True)
    return (
        f'<base href="{origin}">'
        f'<meta name="{PROVENANCE_META_NAME}" content="{source}">'
    )


def rewrite_html(body: str, target_url: str) -> str:
    """
    Insert a ``<base>`` tag right after the first opening ``<head>`` tag.

    A provenance ``<meta>`` naming the full target URL follows the base tag.
    Everything else in ``body`` is left byte-identical. Bodies without a head
    tag are returned unchanged. Applying this twice inserts two base tags.
    """
    match = HEAD_TAG_PATTERN.search(body)
    if match is None:
        return body

    end = match.end()
    return body[:end] + build_injection(target_url) + body[end:]
