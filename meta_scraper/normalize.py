"""URL validation and canonicalisation for incoming scrape batches."""
from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}
_INNER_WHITESPACE = re.compile(r"[\t\n\r]")
_FORBIDDEN_HOST_CHARS = re.compile(r"[\s<>\\^|%#/?@\[\]]")

_SPECIAL_SCHEMES = frozenset(_DEFAULT_PORTS) | {"file"}
_PRINTABLE_ASCII = "".join(chr(code) for code in range(0x21, 0x7F))


def _safe_except(encoded: str) -> str:
    return "".join(char for char in _PRINTABLE_ASCII if char not in encoded)


# Percent-encode sets of the WHATWG URL standard; space, controls and
# non-ASCII are always encoded by quote().
_PATH_SAFE = _safe_except('"#<>?`{}')
_QUERY_SAFE = _safe_except('"#<>')
_SPECIAL_QUERY_SAFE = _safe_except('"#<>\'')
_FRAGMENT_SAFE = _safe_except('"<>`')

_SINGLE_DOT = {".", "%2e"}
_DOUBLE_DOT = {"..", ".%2e", "%2e.", "%2e%2e"}


def _canonical_host(hostname: str) -> Optional[str]:
    if ":" in hostname:
        # urlsplit strips the brackets around IPv6 literals.
        return f"[{hostname}]"
    if _FORBIDDEN_HOST_CHARS.search(hostname):
        return None
    if hostname.isascii():
        labels = hostname.rstrip(".").split(".")
        if any(not label for label in labels):
            return None
        return hostname
    try:
        return hostname.encode("idna").decode("ascii")
    except UnicodeError:
        return None


def _remove_dot_segments(path: str) -> str:
    segments = path.split("/")[1:]
    output: List[str] = []
    for index, segment in enumerate(segments):
        last = index == len(segments) - 1
        lowered = segment.lower()
        if lowered in _DOUBLE_DOT:
            if output:
                output.pop()
            if last:
                output.append("")
        elif lowered in _SINGLE_DOT:
            if last:
                output.append("")
        else:
            output.append(segment)
    return "/" + "/".join(output)


def normalize_url(raw: Any) -> Optional[str]:
    """Return the canonical absolute form of ``raw`` or ``None`` when invalid.

    Scheme and host are lower-cased, non-ASCII hosts are IDNA encoded, the
    scheme's default port is dropped, an empty path becomes ``/`` and ``.``/``..``
    path segments are resolved. Remaining characters are percent-encoded the
    way a browser serialises the URL, so existing escapes are kept as given.
    """

    if not isinstance(raw, str):
        return None
    candidate = _INNER_WHITESPACE.sub("", raw.strip())
    if not candidate:
        return None

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    if not scheme or not parts.hostname:
        return None

    host = _canonical_host(parts.hostname)
    if host is None:
        return None

    userinfo = ""
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        userinfo += "@"

    netloc = f"{userinfo}{host}"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc += f":{port}"

    special = scheme in _SPECIAL_SCHEMES
    path = parts.path or "/"
    if special:
        path = path.replace("\\", "/")
    path = quote(_remove_dot_segments(path), safe=_PATH_SAFE)
    query = quote(parts.query, safe=_SPECIAL_QUERY_SAFE if special else _QUERY_SAFE)
    fragment = quote(parts.fragment, safe=_FRAGMENT_SAFE)
    return urlunsplit((scheme, netloc, path, query, fragment))


def normalize_urls(raw_urls: Iterable[Any]) -> List[str]:
    """Canonicalise a batch, silently dropping entries that are not URLs.

    Order is preserved and duplicates are kept; the cache key takes care of
    repeated URLs.
    """

    normalised: List[str] = []
    dropped = 0
    for raw in raw_urls:
        url = normalize_url(raw)
        if url is None:
            dropped += 1
            continue
        normalised.append(url)
    if dropped:
        logger.debug("Dropped %d invalid URL(s) from batch", dropped)
    return normalised
