"""
Result policies: which decoded payloads go to which destination, in what order.

Two independent selections run over the same spatially filtered results:

    select_open(results, OpenPolicy)  → reorder → URL-eligible only → truncate
    select_copy(results, CopyPolicy)  → reorder → truncate

"first" and "last" always refer to decode order. Nothing here mutates the
input list.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence, TypeVar, Union
from urllib.parse import urlsplit

from clickscan.config import CopyBehavior, CopyPolicy, OpenBehavior, OpenPolicy, Ordering
from clickscan.detection import DetectedBarcode
from clickscan.errors import InvalidPolicyValueError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*$")
_WHITESPACE_RE = re.compile(r"[\s\x00-\x1f\x7f]")

# Schemes whose URLs are invalid without a host.
_HOST_REQUIRED_SCHEMES = {"http", "https", "ws", "wss", "ftp"}


def reorder(items: Sequence[T], behavior: Union[OpenBehavior, CopyBehavior]) -> List[T]:
    """Apply a behavior's ordering to a sequence.

    Raises:
        InvalidPolicyValueError: If behavior is not an open/copy behavior.
    """
    if not isinstance(behavior, (OpenBehavior, CopyBehavior)):
        raise InvalidPolicyValueError(f"Unknown behavior: {behavior!r}.")

    ordering = behavior.ordering
    if ordering is Ordering.ALL:
        return list(items)
    if ordering is Ordering.ALL_REVERSE:
        return list(reversed(items))
    if ordering is Ordering.FIRST:
        return list(items[:1])
    if ordering is Ordering.LAST:
        return list(items[-1:])
    raise InvalidPolicyValueError(f"Unhandled ordering: {ordering!r}.")


def url_scheme(text: str) -> Optional[str]:
    """Return the lowercased scheme if text parses as an absolute URL.

    Leading and trailing whitespace is ignored. Spaces in the path, query
    or fragment are allowed, as a browser percent-encodes them. Anything
    a browser URL parser would reject (no scheme, whitespace in the
    authority, an http-like URL without a host) yields None.
    """
    candidate = text.strip()
    if not candidate:
        return None

    try:
        parts = urlsplit(candidate)
        parts.port  # raises on a malformed port
    except ValueError:
        return None

    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        return None
    if candidate[len(parts.scheme)] != ":":
        return None
    if _WHITESPACE_RE.search(parts.netloc):
        return None

    scheme = parts.scheme.lower()
    if scheme in _HOST_REQUIRED_SCHEMES and not parts.hostname:
        return None
    return scheme


def is_url_eligible(
    text: str,
    whitelist: Iterable[str] = (),
    blacklist: Iterable[str] = (),
) -> bool:
    """Whether text is a URL whose scheme may be opened.

    A non-empty whitelist takes precedence: the scheme must be in it.
    Otherwise the scheme must not be in the blacklist.
    """
    scheme = url_scheme(text)
    if scheme is None:
        return False

    allowed = set(whitelist)
    if allowed:
        return scheme in allowed
    return scheme not in set(blacklist)


def select_open(
    results: Sequence[DetectedBarcode],
    policy: OpenPolicy,
) -> List[DetectedBarcode]:
    """Results to open, in dispatch order."""
    if not policy.enabled:
        return []

    ordered = reorder(results, policy.behavior)
    eligible = [
        r for r in ordered
        if is_url_eligible(r.raw_value, policy.url_scheme_whitelist, policy.url_scheme_blacklist)
    ]
    selected = eligible[:policy.max_count]

    logger.debug(
        "Open selection: %d decoded, %d eligible, %d selected (%s)",
        len(results), len(eligible), len(selected), policy.behavior.value,
    )
    return selected


def select_copy(
    results: Sequence[DetectedBarcode],
    policy: CopyPolicy,
) -> List[DetectedBarcode]:
    """Results to copy, in dispatch order."""
    if not policy.enabled:
        return []

    selected = reorder(results, policy.behavior)[:policy.max_count]
    logger.debug(
        "Copy selection: %d decoded, %d selected (%s)",
        len(results), len(selected), policy.behavior.value,
    )
    return selected
