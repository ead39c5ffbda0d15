from typing import Any, Iterable, List, Mapping, Tuple, Union

# Headers that exist to stop the page from being framed or rewritten
FRAMING_HEADERS = {
    "x-frame-options",
    "content-security-policy",
    "content-security-policy-report-only",
    "strict-transport-security",
}

# The body is always re-served fully decoded, so the original encoding
# metadata no longer describes it
ENCODING_HEADERS = {
    "content-encoding",
    "transfer-encoding",
}

DENIED_HEADERS = frozenset(FRAMING_HEADERS | ENCODING_HEADERS)

HeaderItems = Union[Mapping[Any, Any], Iterable[Tuple[Any, Any]]]


def _header_items(headers: HeaderItems) -> Iterable[Tuple[Any, Any]]:
    """Yield (name, value) pairs, keeping duplicates where the source has them."""
    if headers is None:
        return []
    multi_items = getattr(headers, "multi_items", None)
    if callable(multi_items):
        return multi_items()
    if isinstance(headers, Mapping):
        return headers.items()
    return headers


def is_denied(name: Any) -> bool:
    try:
        return str(name).strip().lower() in DENIED_HEADERS
    except Exception:
        return True


def filter_headers(headers: HeaderItems) -> List[Tuple[str, str]]:
    """
    Return every upstream response header that is safe to re-emit.

    Accepts an ``httpx.Headers``, a plain mapping or an iterable of
    ``(name, value)`` pairs. Duplicates and their order are preserved; names
    are compared case-insensitively against the deny-list.
    """
    safe = []
    for item in _header_items(headers):
        try:
            name, value = item
        except (TypeError, ValueError):
            continue
        if is_denied(name):
            continue
        safe.append((str(name), str(value)))
    return safe
