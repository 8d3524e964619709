from __future__ import annotations

import json
from pathlib import Path
import zipfile

import pytest
from conftest import FakeImageFetcher

from imgcrawl import (
    ImageCandidate,
    ImageLoadFailed,
    ImageRegistry,
    ImageType,
    download_images,
    export_selected,
    retry_failed,
    write_manifest,
)
from imgcrawl.export import unique_filenames
from imgcrawl.url import normalize_url


def make_registry(urls: list[str], max_retries: int = 2) -> ImageRegistry:
    registry = ImageRegistry(max_retries=max_retries)
    registry.register(
        ImageCandidate(
            url=url,
            key=normalize_url(url),
            filename=url.rsplit("/", 1)[-1],
            source_url="https://example.com",
            image_type=ImageType.from_url(url),
        )
        for url in urls
    )
    return registry


def test_downloads_respect_worker_bound() -> None:
    urls = [f"https://example.com/{n}.png" for n in range(10)]
    registry = make_registry(urls)
    fetcher = FakeImageFetcher(delay=0.02)

    outcome = download_images(registry.records(), fetcher, registry=registry, max_workers=3)

    assert len(outcome.succeeded) == 10
    assert outcome.failed == []
    assert 1 <= fetcher.peak <= 3
    assert [record.url for record, _ in outcome.succeeded] == urls


def test_failures_mark_records_and_report_progress() -> None:
    urls = ["https://example.com/good.png", "https://example.com/bad.png"]
    registry = make_registry(urls)
    fetcher = FakeImageFetcher(failures={"https://example.com/bad.png": 5})
    progress: list[str] = []

    outcome = download_images(
        registry.records(),
        fetcher,
        registry=registry,
        on_result=lambda record, result: progress.append(record.filename),
    )

    assert sorted(progress) == ["bad.png", "good.png"]
    assert [record.url for record, _ in outcome.failed] == ["https://example.com/bad.png"]
    assert isinstance(outcome.failed[0][1], ImageLoadFailed)
    assert [record.url for record in registry.failed()] == ["https://example.com/bad.png"]
    assert outcome.attempted == 2


def test_invalid_worker_count() -> None:
    with pytest.raises(ValueError):
        download_images([], FakeImageFetcher(), max_workers=0)


def test_retry_failed_uses_retry_budget() -> None:
    url = "https://example.com/flaky.png"
    registry = make_registry([url], max_retries=1)
    fetcher = FakeImageFetcher(failures={url: 2})

    download_images(registry.records(), fetcher, registry=registry)
    first_retry = retry_failed(registry, fetcher)
    second_retry = retry_failed(registry, fetcher)

    assert [record.url for record, _ in first_retry.failed] == [url]
    assert second_retry.attempted == 0
    record = registry.get(url)
    assert record.retry_count == 1
    assert record.load_failed


def test_export_many_images_writes_zip(tmp_path: Path) -> None:
    registry = make_registry(
        [
            "https://example.com/a/photo.png",
            "https://example.com/b/photo.png",
            "https://example.com/c.gif",
        ]
    )
    registry.set_selected("https://example.com/c.gif", False)

    path, outcome = export_selected(registry, FakeImageFetcher(), tmp_path)

    assert path == tmp_path / "website-images.zip"
    assert len(outcome.succeeded) == 2
    with zipfile.ZipFile(path) as archive:
        assert sorted(archive.namelist()) == ["photo-2.png", "photo.png"]
        assert archive.read("photo.png") == b"bytes:https://example.com/a/photo.png"
    assert not list(tmp_path.glob("*.tmp"))


def test_export_single_image_writes_plain_file(tmp_path: Path) -> None:
    registry = make_registry(["https://example.com/only.png", "https://example.com/other.png"])
    registry.set_selected("https://example.com/other.png", False)

    path, _ = export_selected(registry, FakeImageFetcher(), tmp_path)

    assert path == tmp_path / "only.png"
    assert path.read_bytes() == b"bytes:https://example.com/only.png"


def test_export_with_retry_recovers_transient_failure(tmp_path: Path) -> None:
    url = "https://example.com/flaky.png"
    registry = make_registry([url, "https://example.com/ok.png"])
    fetcher = FakeImageFetcher(failures={url: 1})

    path, outcome = export_selected(registry, fetcher, tmp_path, retry=True)

    assert path.name == "website-images.zip"
    assert outcome.failed == []
    assert len(outcome.succeeded) == 2
    assert registry.get(url).retry_count == 1
    assert not registry.get(url).load_failed


def test_export_without_selection_raises(tmp_path: Path) -> None:
    registry = make_registry(["https://example.com/a.png"])
    registry.select_all(False)

    with pytest.raises(ImageLoadFailed):
        export_selected(registry, FakeImageFetcher(), tmp_path)


def test_export_with_only_failures_writes_nothing(tmp_path: Path) -> None:
    url = "https://example.com/gone.png"
    registry = make_registry([url])

    path, outcome = export_selected(registry, FakeImageFetcher(failures={url: 9}), tmp_path)

    assert path is None
    assert len(outcome.failed) == 1
    assert list(tmp_path.iterdir()) == []


def test_unique_filenames_is_case_insensitive() -> None:
    registry = make_registry(["https://example.com/x/A.png", "https://example.com/y/a.png"])

    assert unique_filenames(registry.records()) == ["A.png", "a-2.png"]


def test_manifest_has_one_line_per_record(tmp_path: Path) -> None:
    registry = make_registry(["https://example.com/a.png", "https://example.com/b.svg"])

    path = write_manifest(registry.records(), tmp_path)

    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["type"] for line in lines] == ["png", "svg"]
    assert json.loads(lines[0])["selected"] is True


def test_export_retry_leaves_deselected_failures_alone(tmp_path: Path) -> None:
    flaky = "https://example.com/b.png"
    old = "https://example.com/old.png"
    registry = make_registry(["https://example.com/a.png", flaky, old])
    registry.mark_load_failed(old)
    registry.set_selected(old, False)
    fetcher = FakeImageFetcher(failures={flaky: 1})

    path, outcome = export_selected(registry, fetcher, tmp_path, retry=True)

    assert path.name == "website-images.zip"
    assert old not in fetcher.calls
    assert sorted(record.url for record, _ in outcome.succeeded) == ["https://example.com/a.png", flaky]
    assert registry.get(old).retry_count == 0
    assert registry.get(old).load_failed
    assert registry.get(flaky).retry_count == 1


def test_retry_failed_limited_to_given_records() -> None:
    urls = ["https://example.com/x.png", "https://example.com/y.png"]
    registry = make_registry(urls)
    for url in urls:
        registry.mark_load_failed(url)
    fetcher = FakeImageFetcher()

    outcome = retry_failed(registry, fetcher, records=[registry.get(urls[0])])

    assert fetcher.calls == [urls[0]]
    assert outcome.attempted == 1
    assert registry.get(urls[1]).load_failed
