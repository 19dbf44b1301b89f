# btu_api/storage/references.py
"""
Stored image reference normalization.

The news.image_url column has carried three formats over the years without a
data migration:
- Bare Drive file id ("1AbC...", 25+ chars)
- Absolute URL on a host that has since been retired (Drive content links,
  the old FTP web host)
- Proxy path ("/proxy-image/{token}"), the current format

Every read goes through to_external(), and every write goes through
to_proxy_path(), so old and new rows render the same way in one listing.
Pure functions, no I/O.
"""

import logging
import re
from enum import Enum
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)

PROXY_PREFIX = "/proxy-image/"

_BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{25,}$")
_ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_DRIVE_PATH_ID_RE = re.compile(r"/d/([A-Za-z0-9_-]{25,})(?:/|$)")


class ReferenceKind(str, Enum):
    """Closed set of shapes an image_url value can take."""
    NULL = "null"
    PROXY_PATH = "proxy_path"
    BARE_ID = "bare_id"
    LEGACY_URL = "legacy_url"
    UNKNOWN = "unknown"


def classify(stored: str | None) -> ReferenceKind:
    if stored is None or not stored.strip():
        return ReferenceKind.NULL
    value = stored.strip()
    if value.startswith(PROXY_PREFIX) and len(value) > len(PROXY_PREFIX):
        return ReferenceKind.PROXY_PATH
    if _BARE_ID_RE.match(value):
        return ReferenceKind.BARE_ID
    if _ABSOLUTE_URL_RE.match(value):
        return ReferenceKind.LEGACY_URL
    return ReferenceKind.UNKNOWN


def extract_blob_token(path_or_id: str) -> str:
    """
    Reduce a path, proxy path or id to the bare backend token.

    Drops any query string or fragment and every leading path segment.
    Idempotent: extract_blob_token(extract_blob_token(x)) == extract_blob_token(x).
    """
    value = path_or_id.strip()
    for sep in ("#", "?"):
        value = value.split(sep, 1)[0]
    segments = [s for s in value.split("/") if s.strip()]
    return segments[-1].strip() if segments else ""


def to_proxy_path(token: str) -> str:
    """Encode a backend token as the column value / client-facing URL."""
    token = extract_blob_token(token)
    if not token:
        raise ValueError("Cannot build a proxy path from an empty token")
    return f"{PROXY_PREFIX}{token}"


def to_external(stored: str | None) -> str | None:
    """
    Map a stored image_url to the URL clients should use.

    Returns:
        A proxy path, or None when there is no image or the reference points
        at a retired host (the UI shows no image rather than a broken one)
    """
    kind = classify(stored)
    if kind is ReferenceKind.PROXY_PATH:
        return stored.strip()
    if kind is ReferenceKind.BARE_ID:
        return to_proxy_path(stored)
    if kind in (ReferenceKind.LEGACY_URL, ReferenceKind.UNKNOWN):
        logger.debug(f"Dropping unrenderable image reference ({kind.value}): {stored!r}")
    return None


def stored_blob_token(stored: str | None) -> str | None:
    """
    Backend token a stored reference owns, for deletion.

    Retired absolute URLs still name their blob: Drive links carry the file id
    in an `id=` query value or a `/d/<id>/` path segment, and old web-host
    URLs end in the uploaded filename. A token sent to the wrong backend is a
    harmless not-found.
    """
    kind = classify(stored)
    if kind is ReferenceKind.NULL:
        return None
    value = stored.strip()
    if kind is ReferenceKind.LEGACY_URL:
        parts = urlsplit(value)
        ids = parse_qs(parts.query).get("id", [])
        if ids and _BARE_ID_RE.match(ids[0]):
            return ids[0]
        match = _DRIVE_PATH_ID_RE.search(parts.path)
        if match:
            return match.group(1)
        return extract_blob_token(parts.path) or None
    return extract_blob_token(value.removeprefix(PROXY_PREFIX)) or None
