"""
Configuration management for the click-to-scan pipeline.

Provides a layered configuration system with the following precedence
(highest to lowest):

    CLI arguments > Environment variables > YAML config file > Defaults

Design constraints:
    - The system MUST run with zero configuration (safe defaults only).
    - Missing or invalid values fail early and loudly.
    - Each pipeline stage reads its own fresh snapshot through
      ConfigProvider; nothing is cached across a cycle boundary.

Non-goals:
    - No options UI and no persisted storage sync. Whatever owns those
      pushes changes in through ConfigProvider.update().
"""

import copy
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import yaml

from clickscan.errors import InvalidPolicyValueError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


# ---------------------------------------------------------------------------
# Closed choice sets
# ---------------------------------------------------------------------------

class RegionStrategy(str, Enum):
    """Which rectangle of the page is analyzed."""

    DOM_ELEMENT = "dom-element"
    WHOLE_PAGE = "whole-page"
    UNDER_CURSOR = "under-cursor"


class OpenTarget(str, Enum):
    """How opened URLs are grouped into tabs and windows."""

    ONE_TAB_EACH = "one-tab-each"
    ONE_WINDOW_EACH = "one-window-each"
    ONE_WINDOW_ALL = "one-window-all"


class Ordering(Enum):
    """Reorder/truncate rule shared by the open and copy behaviors."""

    FIRST = "first"
    LAST = "last"
    ALL = "all"
    ALL_REVERSE = "all-reverse"


class OpenBehavior(str, Enum):
    OPEN_FIRST = "open-first"
    OPEN_LAST = "open-last"
    OPEN_ALL = "open-all"
    OPEN_ALL_REVERSE = "open-all-reverse"

    @property
    def ordering(self) -> Ordering:
        return Ordering(self.value[len("open-"):])


class CopyBehavior(str, Enum):
    COPY_FIRST = "copy-first"
    COPY_LAST = "copy-last"
    COPY_ALL = "copy-all"
    COPY_ALL_REVERSE = "copy-all-reverse"

    @property
    def ordering(self) -> Ordering:
        return Ordering(self.value[len("copy-"):])


# ---------------------------------------------------------------------------
# Configuration dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegionPolicy:
    """Where to look for codes.

    Attributes:
        detect_region: Requested region strategy.
        fallback_to_under_cursor: When no image element sits under the
            click and detect_region is dom-element, analyze a viewport
            capture around the cursor instead.
        tolerance: Slack in CSS pixels when deciding whether a code lies
            under the cursor.
    """

    detect_region: RegionStrategy = RegionStrategy.DOM_ELEMENT
    fallback_to_under_cursor: bool = True
    tolerance: float = 0.0


@dataclass(frozen=True)
class OpenPolicy:
    """How decoded URLs are opened.

    Attributes:
        enabled: Whether results are opened at all.
        url_scheme_whitelist: If non-empty, only these schemes are opened.
        url_scheme_blacklist: Schemes never opened (ignored when a
            whitelist is set).
        change_focus: Whether the opened tab/window takes focus.
        target: Tab/window grouping.
        behavior: Reorder rule applied before truncation.
        max_count: Maximum number of URLs opened per click.
    """

    enabled: bool = True
    url_scheme_whitelist: Tuple[str, ...] = ()
    url_scheme_blacklist: Tuple[str, ...] = ()
    change_focus: bool = False
    target: OpenTarget = OpenTarget.ONE_TAB_EACH
    behavior: OpenBehavior = OpenBehavior.OPEN_ALL
    max_count: int = 1000


@dataclass(frozen=True)
class CopyPolicy:
    """How decoded payloads are copied to the clipboard.

    Attributes:
        enabled: Whether results are copied at all.
        behavior: Reorder rule applied before truncation.
        interval_ms: Pause between successive clipboard writes.
        max_count: Maximum number of payloads copied per click.
    """

    enabled: bool = True
    behavior: CopyBehavior = CopyBehavior.COPY_ALL
    interval_ms: int = 300
    max_count: int = 1000


@dataclass(frozen=True)
class BadgeConfig:
    """Progress indicator timing.

    Attributes:
        clear_delay_ms: How long the final count stays visible before
            the badge is cleared.
    """

    clear_delay_ms: int = 2000


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    region: RegionPolicy = field(default_factory=RegionPolicy)
    open: OpenPolicy = field(default_factory=OpenPolicy)
    copy: CopyPolicy = field(default_factory=CopyPolicy)
    badge: BadgeConfig = field(default_factory=BadgeConfig)


# ---------------------------------------------------------------------------
# Value parsing
# ---------------------------------------------------------------------------

_E = TypeVar("_E", bound=Enum)

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


def _parse_enum(enum_cls: Type[_E], value: Any, key: str) -> _E:
    """Map a raw value onto a closed enum, refusing anything unknown."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = [member.value for member in enum_cls]
        raise InvalidPolicyValueError(
            f"Invalid {key}: '{value}'. Must be one of {choices}."
        ) from None


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"{key} must be a boolean, got '{value}'.")


def normalize_schemes(value: Any, key: str = "url scheme list") -> Tuple[str, ...]:
    """Normalize a scheme list: lowercase, no trailing ':', no duplicates.

    Accepts a YAML list or a comma separated string (environment form).

    Raises:
        ValueError: If an entry is not a syntactically valid URL scheme.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise ValueError(f"{key} must be a list of schemes, got {value!r}.")

    schemes = []
    for item in items:
        scheme = str(item).strip().lower().rstrip(":")
        if not scheme:
            continue
        if not _SCHEME_RE.match(scheme):
            raise ValueError(f"Invalid scheme in {key}: '{item}'.")
        if scheme not in schemes:
            schemes.append(scheme)
    return tuple(schemes)


def _build_region_policy(raw: dict) -> RegionPolicy:
    """Build RegionPolicy from a raw dict."""
    kwargs = {}
    if "detect_region" in raw:
        kwargs["detect_region"] = _parse_enum(
            RegionStrategy, raw["detect_region"], "region.detect_region"
        )
    if "fallback_to_under_cursor" in raw:
        kwargs["fallback_to_under_cursor"] = _parse_bool(
            raw["fallback_to_under_cursor"], "region.fallback_to_under_cursor"
        )
    if "tolerance" in raw:
        kwargs["tolerance"] = float(raw["tolerance"])
    return RegionPolicy(**kwargs)


def _build_open_policy(raw: dict) -> OpenPolicy:
    """Build OpenPolicy from a raw dict."""
    kwargs = {}
    if "enabled" in raw:
        kwargs["enabled"] = _parse_bool(raw["enabled"], "open.enabled")
    if "url_scheme_whitelist" in raw:
        kwargs["url_scheme_whitelist"] = normalize_schemes(
            raw["url_scheme_whitelist"], "open.url_scheme_whitelist"
        )
    if "url_scheme_blacklist" in raw:
        kwargs["url_scheme_blacklist"] = normalize_schemes(
            raw["url_scheme_blacklist"], "open.url_scheme_blacklist"
        )
    if "change_focus" in raw:
        kwargs["change_focus"] = _parse_bool(raw["change_focus"], "open.change_focus")
    if "target" in raw:
        kwargs["target"] = _parse_enum(OpenTarget, raw["target"], "open.target")
    if "behavior" in raw:
        kwargs["behavior"] = _parse_enum(OpenBehavior, raw["behavior"], "open.behavior")
    if "max_count" in raw:
        kwargs["max_count"] = int(raw["max_count"])
    return OpenPolicy(**kwargs)


def _build_copy_policy(raw: dict) -> CopyPolicy:
    """Build CopyPolicy from a raw dict."""
    kwargs = {}
    if "enabled" in raw:
        kwargs["enabled"] = _parse_bool(raw["enabled"], "copy.enabled")
    if "behavior" in raw:
        kwargs["behavior"] = _parse_enum(CopyBehavior, raw["behavior"], "copy.behavior")
    if "interval_ms" in raw:
        kwargs["interval_ms"] = int(raw["interval_ms"])
    if "max_count" in raw:
        kwargs["max_count"] = int(raw["max_count"])
    return CopyPolicy(**kwargs)


def _build_badge_config(raw: dict) -> BadgeConfig:
    """Build BadgeConfig from a raw dict."""
    kwargs = {}
    if "clear_delay_ms" in raw:
        kwargs["clear_delay_ms"] = int(raw["clear_delay_ms"])
    return BadgeConfig(**kwargs)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_region(policy: RegionPolicy) -> None:
    if policy.tolerance < 0:
        raise ValueError(
            f"region.tolerance must be >= 0, got {policy.tolerance}."
        )


def _validate_open(policy: OpenPolicy) -> None:
    if policy.max_count < 1:
        raise ValueError(
            f"open.max_count must be >= 1, got {policy.max_count}."
        )


def _validate_copy(policy: CopyPolicy) -> None:
    if policy.interval_ms < 0:
        raise ValueError(
            f"copy.interval_ms must be >= 0, got {policy.interval_ms}."
        )
    if policy.max_count < 1:
        raise ValueError(
            f"copy.max_count must be >= 1, got {policy.max_count}."
        )


def _validate_badge(config: BadgeConfig) -> None:
    if config.clear_delay_ms < 0:
        raise ValueError(
            f"badge.clear_delay_ms must be >= 0, got {config.clear_delay_ms}."
        )


def _validate(config: AppConfig) -> None:
    """Validate configuration values. Raises ValueError on invalid state."""
    _validate_region(config.region)
    _validate_open(config.open)
    _validate_copy(config.copy)
    _validate_badge(config.badge)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CLICKSCAN_"

_ENV_MAP = {
    f"{_ENV_PREFIX}REGION_DETECT_REGION": ("region", "detect_region"),
    f"{_ENV_PREFIX}REGION_FALLBACK_TO_UNDER_CURSOR": ("region", "fallback_to_under_cursor"),
    f"{_ENV_PREFIX}REGION_TOLERANCE": ("region", "tolerance"),
    f"{_ENV_PREFIX}OPEN_ENABLED": ("open", "enabled"),
    f"{_ENV_PREFIX}OPEN_URL_SCHEME_WHITELIST": ("open", "url_scheme_whitelist"),
    f"{_ENV_PREFIX}OPEN_URL_SCHEME_BLACKLIST": ("open", "url_scheme_blacklist"),
    f"{_ENV_PREFIX}OPEN_CHANGE_FOCUS": ("open", "change_focus"),
    f"{_ENV_PREFIX}OPEN_TARGET": ("open", "target"),
    f"{_ENV_PREFIX}OPEN_BEHAVIOR": ("open", "behavior"),
    f"{_ENV_PREFIX}OPEN_MAX_COUNT": ("open", "max_count"),
    f"{_ENV_PREFIX}COPY_ENABLED": ("copy", "enabled"),
    f"{_ENV_PREFIX}COPY_BEHAVIOR": ("copy", "behavior"),
    f"{_ENV_PREFIX}COPY_INTERVAL_MS": ("copy", "interval_ms"),
    f"{_ENV_PREFIX}COPY_MAX_COUNT": ("copy", "max_count"),
    f"{_ENV_PREFIX}BADGE_CLEAR_DELAY_MS": ("badge", "clear_delay_ms"),
}


def _apply_env_overrides(raw: dict) -> dict:
    """Apply environment variable overrides to the raw config dict.

    Environment variables follow the pattern:
        CLICKSCAN_REGION_DETECT_REGION=under-cursor
        CLICKSCAN_OPEN_URL_SCHEME_WHITELIST=https,http
    """
    for env_var, (section, key) in _ENV_MAP.items():
        value = os.environ.get(env_var)
        if value is not None:
            raw.setdefault(section, {})[key] = value
            logger.debug("Config override from env: %s=%s", env_var, value)

    return raw


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_raw_config(config_path: Optional[str] = None) -> dict:
    """Read the YAML layer and apply environment overrides.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        yaml.YAMLError: If the YAML file is malformed.
    """
    raw: dict = {}

    if config_path is not None:
        resolved = Path(config_path)
        if not resolved.is_absolute():
            resolved = _PROJECT_ROOT / resolved

        if not resolved.is_file():
            raise FileNotFoundError(
                f"Configuration file not found: {resolved}. "
                f"Provide a valid path or omit to use defaults."
            )

        logger.info("Loading config from: %s", resolved)
        with open(resolved, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        if not isinstance(raw, dict):
            raise ValueError(
                f"Configuration file must contain a mapping, got {type(raw).__name__}."
            )

    return _apply_env_overrides(raw)


def build_config(raw: dict) -> AppConfig:
    """Build and validate an AppConfig from a raw layered dict."""
    config = AppConfig(
        region=_build_region_policy(raw.get("region") or {}),
        open=_build_open_policy(raw.get("open") or {}),
        copy=_build_copy_policy(raw.get("copy") or {}),
        badge=_build_badge_config(raw.get("badge") or {}),
    )
    _validate(config)
    return config


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Load and validate application configuration.

    Precedence (highest → lowest):
        Environment variables > YAML file > Hard-coded defaults

    Args:
        config_path: Path to a YAML configuration file. If None,
                     the system runs entirely on defaults.

    Returns:
        A validated, frozen AppConfig instance.

    Raises:
        FileNotFoundError: If config_path is provided but does not exist.
        InvalidPolicyValueError: If an enum value is unknown.
        ValueError: If any other configuration value is invalid.
        yaml.YAMLError: If the YAML file is malformed.
    """
    config = build_config(load_raw_config(config_path))
    logger.debug("Configuration loaded: %s", config)
    return config


class ConfigProvider:
    """Read-only snapshot access to the live configuration.

    Holds the raw layered values and rebuilds the typed policy a stage
    asks for on every read, so a value changed between two stages is
    seen by the later one while each read stays internally consistent.

    Usage:
        provider = ConfigProvider.from_file("config.yaml")
        region = provider.region_policy()
        provider.update("open", behavior="open-first")
    """

    def __init__(self, raw: Optional[Dict[str, dict]] = None) -> None:
        self._raw: Dict[str, dict] = copy.deepcopy(raw) if raw else {}

    @classmethod
    def from_file(cls, config_path: Optional[str] = None) -> "ConfigProvider":
        """Create a provider from the YAML + environment layers.

        The initial values are validated eagerly so a broken file fails at
        startup rather than on the first click.
        """
        raw = load_raw_config(config_path)
        build_config(raw)
        return cls(raw)

    def update(self, section: str, **values: Any) -> None:
        """Replace values in one section (e.g. after a storage sync)."""
        if section not in ("region", "open", "copy", "badge"):
            raise ValueError(f"Unknown configuration section: '{section}'.")
        self._raw.setdefault(section, {}).update(values)
        logger.info("Configuration section '%s' updated: %s", section, sorted(values))

    def region_policy(self) -> RegionPolicy:
        policy = _build_region_policy(self._raw.get("region") or {})
        _validate_region(policy)
        return policy

    def open_policy(self) -> OpenPolicy:
        policy = _build_open_policy(self._raw.get("open") or {})
        _validate_open(policy)
        return policy

    def copy_policy(self) -> CopyPolicy:
        policy = _build_copy_policy(self._raw.get("copy") or {})
        _validate_copy(policy)
        return policy

    def badge_config(self) -> BadgeConfig:
        config = _build_badge_config(self._raw.get("badge") or {})
        _validate_badge(config)
        return config

    def snapshot(self) -> AppConfig:
        """Return the whole configuration as one validated snapshot."""
        return build_config(self._raw)
