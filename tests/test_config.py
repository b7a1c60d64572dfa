"""
Tests for the configuration module.
"""

import pytest

from clickscan.config import (
    AppConfig,
    ConfigProvider,
    CopyBehavior,
    CopyPolicy,
    OpenBehavior,
    OpenPolicy,
    OpenTarget,
    Ordering,
    RegionPolicy,
    RegionStrategy,
    _validate,
    load_config,
    normalize_schemes,
)
from clickscan.errors import InvalidPolicyValueError


def test_load_defaults():
    """Test loading configuration without any file."""
    config = load_config(None)
    assert isinstance(config, AppConfig)
    assert config.region.detect_region is RegionStrategy.DOM_ELEMENT
    assert config.region.fallback_to_under_cursor is True
    assert config.open.target is OpenTarget.ONE_TAB_EACH
    assert config.open.behavior is OpenBehavior.OPEN_ALL
    assert config.open.max_count == 1000
    assert config.copy.behavior is CopyBehavior.COPY_ALL
    assert config.copy.interval_ms == 300


def test_validation_failure():
    """Test fail-fast validation."""
    with pytest.raises(ValueError, match="tolerance"):
        _validate(AppConfig(region=RegionPolicy(tolerance=-1.0)))

    with pytest.raises(ValueError, match="max_count"):
        _validate(AppConfig(open=OpenPolicy(max_count=0)))

    with pytest.raises(ValueError, match="interval_ms"):
        _validate(AppConfig(copy=CopyPolicy(interval_ms=-5)))


def test_yaml_file(tmp_path):
    """Test loading values from a YAML file."""
    path = tmp_path / "config.yaml"
    path.write_text(
        "region:\n"
        "  detect_region: under-cursor\n"
        "  tolerance: 12\n"
        "open:\n"
        "  url_scheme_whitelist: [HTTPS, 'http:']\n"
        "  target: one-window-all\n"
        "copy:\n"
        "  behavior: copy-last\n"
        "  interval_ms: 0\n",
        encoding="utf-8",
    )

    config = load_config(str(path))

    assert config.region.detect_region is RegionStrategy.UNDER_CURSOR
    assert config.region.tolerance == 12.0
    assert config.open.url_scheme_whitelist == ("https", "http")
    assert config.open.target is OpenTarget.ONE_WINDOW_ALL
    assert config.copy.behavior is CopyBehavior.COPY_LAST
    assert config.copy.interval_ms == 0


def test_missing_file():
    """Test that an explicit but missing config path fails loudly."""
    with pytest.raises(FileNotFoundError):
        load_config("does/not/exist.yaml")


def test_unknown_enum_value(tmp_path):
    """Test that unknown choices raise InvalidPolicyValueError."""
    path = tmp_path / "config.yaml"
    path.write_text("open:\n  behavior: open-random\n", encoding="utf-8")

    with pytest.raises(InvalidPolicyValueError, match="open.behavior"):
        load_config(str(path))


def test_env_override(monkeypatch):
    """Test environment variable overrides."""
    monkeypatch.setenv("CLICKSCAN_REGION_DETECT_REGION", "whole-page")
    monkeypatch.setenv("CLICKSCAN_OPEN_URL_SCHEME_BLACKLIST", "javascript,data")
    monkeypatch.setenv("CLICKSCAN_COPY_ENABLED", "false")

    config = load_config(None)

    assert config.region.detect_region is RegionStrategy.WHOLE_PAGE
    assert config.open.url_scheme_blacklist == ("javascript", "data")
    assert config.copy.enabled is False


def test_normalize_schemes():
    """Test scheme normalization and rejection of invalid schemes."""
    assert normalize_schemes([" HTTPS: ", "https", "", "git+ssh"]) == ("https", "git+ssh")
    assert normalize_schemes(None) == ()

    with pytest.raises(ValueError):
        normalize_schemes(["1http"])


def test_behavior_ordering():
    """Test that both behavior enums map onto the shared orderings."""
    assert OpenBehavior.OPEN_FIRST.ordering is Ordering.FIRST
    assert OpenBehavior.OPEN_ALL_REVERSE.ordering is Ordering.ALL_REVERSE
    assert CopyBehavior.COPY_LAST.ordering is Ordering.LAST
    assert CopyBehavior.COPY_ALL.ordering is Ordering.ALL


def test_provider_reads_fresh_snapshot_per_stage():
    """Test that updates are visible to the next read."""
    provider = ConfigProvider()
    assert provider.open_policy().behavior is OpenBehavior.OPEN_ALL

    provider.update("open", behavior="open-first")

    assert provider.open_policy().behavior is OpenBehavior.OPEN_FIRST
    assert provider.snapshot().open.behavior is OpenBehavior.OPEN_FIRST


def test_provider_invalid_value_raises_on_read():
    """Test that an invalid pushed value fails only the read that needs it."""
    provider = ConfigProvider()
    provider.update("copy", behavior="copy-sideways")

    assert provider.open_policy().enabled is True
    with pytest.raises(InvalidPolicyValueError):
        provider.copy_policy()


def test_provider_unknown_section():
    """Test that updating an unknown section is rejected."""
    with pytest.raises(ValueError, match="section"):
        ConfigProvider().update("colors", badge="red")
