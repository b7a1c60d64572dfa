"""
Tests for the result policy module.
"""

import pytest

from clickscan.config import CopyBehavior, CopyPolicy, OpenBehavior, OpenPolicy
from clickscan.detection import DetectedBarcode
from clickscan.errors import InvalidPolicyValueError
from clickscan.policy import (
    is_url_eligible,
    reorder,
    select_copy,
    select_open,
    url_scheme,
)

BOX = ((0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0))


def barcodes(*values):
    return [DetectedBarcode(value, BOX) for value in values]


def payloads(results):
    return [r.raw_value for r in results]


def test_reorder_laws():
    """Test the relations between the four orderings."""
    items = [1, 2, 3, 4]

    every = reorder(items, CopyBehavior.COPY_ALL)
    assert every == items
    assert list(reversed(every)) == reorder(items, CopyBehavior.COPY_ALL_REVERSE)
    assert every[:1] == reorder(items, CopyBehavior.COPY_FIRST)
    assert every[-1:] == reorder(items, CopyBehavior.COPY_LAST)

    # Open behaviors follow the same rules.
    assert reorder(items, OpenBehavior.OPEN_LAST) == [4]
    assert reorder(items, OpenBehavior.OPEN_ALL_REVERSE) == [4, 3, 2, 1]


def test_reorder_empty_and_input_untouched():
    """Test empty input and that the input list is not mutated."""
    for behavior in CopyBehavior:
        assert reorder([], behavior) == []

    items = [1, 2, 3]
    reorder(items, CopyBehavior.COPY_ALL_REVERSE)
    assert items == [1, 2, 3]


def test_reorder_rejects_unknown_behavior():
    """Test that raw strings are not accepted as behaviors."""
    with pytest.raises(InvalidPolicyValueError):
        reorder([1, 2], "copy-all")


def test_url_scheme():
    """Test URL parsing and scheme extraction."""
    assert url_scheme("https://a.example") == "https"
    assert url_scheme("  HTTPS://A.example/path?q=1  ") == "https"
    assert url_scheme("mailto:someone@example.com") == "mailto"
    assert url_scheme("javascript:alert(1)") == "javascript"
    assert url_scheme("https://example.com/search?q=hello world") == "https"
    assert url_scheme("https://example.com/a b#frag ment") == "https"

    assert url_scheme("plain-text") is None
    assert url_scheme("hello world") is None
    assert url_scheme("example.com/path") is None
    assert url_scheme("http://") is None
    assert url_scheme("https://a b.example") is None
    assert url_scheme("http://example.com:99999") is None
    assert url_scheme("") is None


def test_whitelist_takes_precedence():
    """Test that a non-empty whitelist overrides the blacklist."""
    assert is_url_eligible("https://a.example", ["https"], ["https"])
    assert not is_url_eligible("http://a.example", ["https"], [])
    assert not is_url_eligible("javascript:alert(1)", [], ["javascript"])
    assert is_url_eligible("ftp://files.example", [], ["javascript"])
    assert not is_url_eligible("plain-text", [], [])
    assert is_url_eligible("https://example.com/search?q=hello world", ["https"], [])


def test_select_open_keeps_only_urls():
    """Test that non-URL payloads never reach the open path."""
    results = barcodes("https://a.example", "plain-text")
    policy = OpenPolicy(behavior=OpenBehavior.OPEN_ALL, max_count=10)

    assert payloads(select_open(results, policy)) == ["https://a.example"]


def test_select_open_with_whitelist():
    """Test scheme whitelisting."""
    results = barcodes("http://a.example", "https://b.example")
    policy = OpenPolicy(url_scheme_whitelist=("https",), max_count=10)

    assert payloads(select_open(results, policy)) == ["https://b.example"]


def test_select_open_reorders_before_filtering():
    """Test that first/last refer to decode order, not to eligible items."""
    results = barcodes("https://a.example", "https://b.example", "plain-text")

    last = select_open(results, OpenPolicy(behavior=OpenBehavior.OPEN_LAST))
    assert last == []

    first = select_open(results, OpenPolicy(behavior=OpenBehavior.OPEN_FIRST))
    assert payloads(first) == ["https://a.example"]


def test_select_open_truncates_eligible_items():
    """Test that max_count counts URL-eligible items only."""
    results = barcodes("text", "https://1.example", "more text", "https://2.example", "https://3.example")
    policy = OpenPolicy(behavior=OpenBehavior.OPEN_ALL_REVERSE, max_count=2)

    assert payloads(select_open(results, policy)) == ["https://3.example", "https://2.example"]


def test_select_copy_keeps_everything():
    """Test that the copy path does not filter by URL."""
    results = barcodes("one", "https://two.example", "three")

    assert payloads(select_copy(results, CopyPolicy())) == ["one", "https://two.example", "three"]
    assert payloads(select_copy(results, CopyPolicy(max_count=2))) == ["one", "https://two.example"]
    assert payloads(select_copy(results, CopyPolicy(behavior=CopyBehavior.COPY_LAST))) == ["three"]


def test_disabled_policies_select_nothing():
    """Test that disabled policies short-circuit."""
    results = barcodes("https://a.example")
    assert select_open(results, OpenPolicy(enabled=False)) == []
    assert select_copy(results, CopyPolicy(enabled=False)) == []


def test_filtering_is_idempotent():
    """Test that re-running a filtered, truncated selection changes nothing."""
    results = barcodes("x", "https://a.example", "y", "https://b.example", "https://c.example")
    open_policy = OpenPolicy(max_count=2)
    copy_policy = CopyPolicy(max_count=3)

    opened = select_open(results, open_policy)
    assert select_open(opened, open_policy) == opened

    copied = select_copy(results, copy_policy)
    assert select_copy(copied, copy_policy) == copied


def test_empty_input():
    """Test that empty input yields empty selections."""
    assert select_open([], OpenPolicy()) == []
    assert select_copy([], CopyPolicy()) == []
