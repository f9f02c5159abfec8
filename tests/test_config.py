"""
Run configuration: validation happens before any probe is sent.
"""

from __future__ import annotations

import pytest

from orchestrator.config import ConfigError, build_run_config, load_run_config, validate_url


def test_defaults() -> None:
    cfg = build_run_config(url="https://example.com")

    assert cfg.duration_minutes == 20
    assert cfg.interval_seconds == 10
    assert cfg.timeout_seconds == 45
    assert cfg.cache_header == "x-nextjs-cache"
    assert cfg.follow_redirects is False


@pytest.mark.parametrize("url", [None, "", "example.com", "ftp://example.com/file", "https://"])
def test_bad_urls_rejected(url) -> None:
    with pytest.raises(ConfigError):
        validate_url(url)


@pytest.mark.parametrize("field,value", [
    ("duration", "abc"),
    ("duration", 0),
    ("interval", -5),
    ("interval", True),
    ("timeout", "x"),
])
def test_bad_numbers_rejected(field, value) -> None:
    with pytest.raises(ConfigError):
        build_run_config({"url": "https://example.com", field: value})


def test_numeric_strings_accepted() -> None:
    cfg = build_run_config(url="http://localhost:3000/", duration="1.5", interval="2")

    assert cfg.duration_minutes == 1.5
    assert cfg.interval_seconds == 2


def test_yaml_file_with_overrides(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text(
        "url: https://example.com/page\n"
        "duration: 5\n"
        "interval: 30\n"
        "cache_header: x-vercel-cache\n"
        "follow_redirects: true\n"
    )

    cfg = build_run_config(load_run_config(path), interval=15, duration=None)

    assert cfg.url == "https://example.com/page"
    assert cfg.duration_minutes == 5
    assert cfg.interval_seconds == 15
    assert cfg.cache_header == "x-vercel-cache"
    assert cfg.follow_redirects is True


def test_empty_yaml_file(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_run_config(path) == {}


def test_unknown_yaml_keys_rejected(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text("url: https://example.com\nconcurrency: 4\n")

    with pytest.raises(ConfigError, match="concurrency"):
        load_run_config(path)


def test_yaml_must_be_a_mapping(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text("- https://example.com\n")

    with pytest.raises(ConfigError):
        load_run_config(path)


def test_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_run_config(tmp_path / "nope.yaml")


def test_blank_cache_header_rejected(tmp_path) -> None:
    path = tmp_path / "run.yaml"
    path.write_text("url: https://example.com\ncache_header:\n")

    with pytest.raises(ConfigError, match="cache_header"):
        build_run_config(load_run_config(path))


@pytest.mark.parametrize("value", ['"false"', "0", "no-thanks"])
def test_follow_redirects_must_be_boolean(tmp_path, value) -> None:
    path = tmp_path / "run.yaml"
    path.write_text(f"url: https://example.com\nfollow_redirects: {value}\n")

    with pytest.raises(ConfigError, match="follow_redirects"):
        build_run_config(load_run_config(path))
