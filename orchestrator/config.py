"""
Run configuration: YAML file values merged with command-line overrides.

A run file looks like::

    url: https://example.com
    duration: 20          # minutes
    interval: 10          # seconds between probe starts
    timeout: 45           # per-probe ceiling, seconds
    cache_header: x-nextjs-cache
    follow_redirects: false
    output_dir: results
"""

from pathlib import Path
from typing import Dict, Any, Optional
from urllib.parse import urlparse

import yaml

from prober.models import RunConfig

DEFAULT_DURATION_MINUTES = 20.0
DEFAULT_INTERVAL_SECONDS = 10.0
DEFAULT_TIMEOUT_SECONDS = 45.0
DEFAULT_CACHE_HEADER = "x-nextjs-cache"

KNOWN_KEYS = {"url", "duration", "interval", "timeout", "cache_header", "follow_redirects", "output_dir"}


class ConfigError(ValueError):
    """Invalid or missing run configuration; fatal before any probe is sent"""


def validate_url(url: Optional[str]) -> str:
    if not url:
        raise ConfigError("--url is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ConfigError(f"URL must start with http:// or https://, got {url!r}")
    if not parsed.netloc:
        raise ConfigError(f"URL has no host: {url!r}")
    return url


def _positive_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if not number > 0:
        raise ConfigError(f"{name} must be greater than 0, got {value!r}")
    return number


def _header_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"cache_header must be a header name, got {value!r}")
    return value.strip()


def _flag(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"{name} must be true or false, got {value!r}")
    return value


def load_run_config(path: Path) -> Dict[str, Any]:
    """Read raw settings from a YAML run file"""
    try:
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(cfg, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(cfg).__name__}")

    unknown = set(cfg) - KNOWN_KEYS
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(sorted(unknown))}")
    return cfg


def build_run_config(file_cfg: Optional[Dict[str, Any]] = None, **overrides) -> RunConfig:
    """Merge file settings with overrides (None means not given) and validate"""
    cfg = dict(file_cfg or {})
    cfg.update({k: v for k, v in overrides.items() if v is not None})

    return RunConfig(
        url=validate_url(cfg.get("url")),
        duration_minutes=_positive_number("duration", cfg.get("duration", DEFAULT_DURATION_MINUTES)),
        interval_seconds=_positive_number("interval", cfg.get("interval", DEFAULT_INTERVAL_SECONDS)),
        timeout_seconds=_positive_number("timeout", cfg.get("timeout", DEFAULT_TIMEOUT_SECONDS)),
        cache_header=_header_name(cfg.get("cache_header", DEFAULT_CACHE_HEADER)),
        follow_redirects=_flag("follow_redirects", cfg.get("follow_redirects", False)),
    )
