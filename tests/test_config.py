from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from imgcrawl import CrawlSettings, InvalidSettings, load_settings, save_settings


def test_defaults() -> None:
    settings = CrawlSettings()

    assert settings.max_depth == 2
    assert settings.max_pages == 20
    assert settings.include_external_domains is False
    assert settings.delay_between_requests_ms == 1000
    assert settings.delay_seconds == 1.0
    assert settings.include_svg_images is True
    assert settings.max_image_retries == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_depth": 0},
        {"max_pages": 0},
        {"delay_between_requests_ms": -1},
        {"max_image_retries": -1},
        {"max_download_workers": 0},
        {"image_timeout_seconds": 0},
        {"user_agent": "  "},
    ],
)
def test_out_of_range_values_are_rejected(overrides: dict) -> None:
    with pytest.raises(InvalidSettings):
        CrawlSettings(**overrides)


def test_from_dict_accepts_camel_case_aliases() -> None:
    settings = CrawlSettings.from_dict(
        {
            "maxDepth": 4,
            "maxPages": 50,
            "includeExternalDomains": True,
            "delayBetweenRequests": 500,
            "includeSvgImages": False,
            "maxImageRetries": 1,
        }
    )

    assert settings.max_depth == 4
    assert settings.max_pages == 50
    assert settings.include_external_domains is True
    assert settings.delay_between_requests_ms == 500
    assert settings.include_svg_images is False
    assert settings.max_image_retries == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"max_depth": "deep"},
        {"max_pages": True},
        {"max_pages": 2.5},
        {"include_svg_images": "yes"},
        {"default_headers": ["Accept"]},
        {"crawl_speed": "fast"},
    ],
)
def test_from_dict_rejects_bad_payloads(payload: dict) -> None:
    with pytest.raises(InvalidSettings):
        CrawlSettings.from_dict(payload)


def test_replace_validates() -> None:
    settings = CrawlSettings()

    assert settings.replace(max_pages=5).max_pages == 5
    assert settings.replace(max_pages=None).max_pages == 20
    with pytest.raises(InvalidSettings):
        settings.replace(max_depth=-3)


def test_headers_apply_user_agent() -> None:
    settings = CrawlSettings(user_agent="imgcrawl-test/1.0", default_headers={"Accept": "text/html"})

    assert settings.headers() == {"Accept": "text/html", "User-Agent": "imgcrawl-test/1.0"}


@pytest.mark.parametrize("suffix", [".json", ".yaml", ".yml"])
def test_save_and_load(tmp_path: Path, suffix: str) -> None:
    settings = CrawlSettings(max_depth=3, max_pages=7, include_external_domains=True)
    path = tmp_path / "nested" / f"settings{suffix}"

    save_settings(settings, path)

    assert load_settings(path) == settings


def test_load_ignores_seed_key(tmp_path: Path) -> None:
    path = tmp_path / "crawl.yaml"
    path.write_text(yaml.safe_dump({"seed": "https://example.com", "maxPages": 9}), encoding="utf-8")

    assert load_settings(path).max_pages == 9


def test_load_rejects_unsupported_or_non_mapping(tmp_path: Path) -> None:
    toml_path = tmp_path / "crawl.toml"
    toml_path.write_text("max_pages = 3\n", encoding="utf-8")
    list_path = tmp_path / "crawl.json"
    list_path.write_text(json.dumps([1, 2]), encoding="utf-8")

    with pytest.raises(InvalidSettings):
        load_settings(toml_path)
    with pytest.raises(InvalidSettings):
        load_settings(list_path)
    with pytest.raises(InvalidSettings):
        save_settings(CrawlSettings(), tmp_path / "out.ini")


def test_empty_yaml_gives_defaults(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_settings(path) == CrawlSettings()


@pytest.mark.parametrize(
    ("name", "text"),
    [("crawl.yaml", "max_pages: [1"), ("crawl.json", '{"max_pages": 1')],
)
def test_load_rejects_malformed_files(tmp_path: Path, name: str, text: str) -> None:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")

    with pytest.raises(InvalidSettings, match="Malformed config"):
        load_settings(path)


def test_settings_are_hashable_and_headers_immutable() -> None:
    settings = CrawlSettings(default_headers={"Accept": "text/html"})

    assert settings.default_headers == (("Accept", "text/html"),)
    assert hash(settings) == hash(CrawlSettings(default_headers={"Accept": "text/html"}))
    assert isinstance(hash(CrawlSettings()), int)

    headers = settings.headers()
    headers["Accept"] = "image/png"
    assert settings.default_headers == (("Accept", "text/html"),)
